"""
Canonical record layer: schema, storage contract, store and retrieval.
"""
