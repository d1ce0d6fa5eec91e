"""
Host-facing layer: directive parsing, dispatch and the engine facade.
"""

from .parser import Directive, DirectiveKind, DirectiveParser
from .dispatcher import DirectiveDispatcher, DirectiveResult, EventType, ProcessResult
from .engine import ContinuityEngine

__all__ = [
    'Directive',
    'DirectiveKind',
    'DirectiveParser',
    'DirectiveDispatcher',
    'DirectiveResult',
    'EventType',
    'ProcessResult',
    'ContinuityEngine'
]
