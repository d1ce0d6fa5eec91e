"""
Structured operation logging for the knowledge engine.
Wraps a named standard-library logger; never touches the root logger.
"""

import logging
from typing import Any, Dict, List


def _truncate(value: str, limit: int = 50) -> str:
    return value[:limit] + "..." if len(value) > limit else value


class StructuredLogger:
    """Structured logger for record, vector and directive operations."""

    def __init__(self, name: str = "continuity"):
        self.logger = logging.getLogger(name)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None,
                      level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_record_operation(self, operation: str, record_id: str, scope: str,
                             content: str = None, status: str = "success"):
        """Log a record store operation."""
        details = {"record_id": record_id, "scope": scope}
        if content is not None:
            details["content"] = _truncate(content)

        self.log_operation(f"record.{operation}", status, details)

    def log_vector_operation(self, operation: str, entry_id: str, details: Dict[str, Any] = None,
                             status: str = "success"):
        """Log a vector index operation."""
        log_details = {"entry_id": entry_id}
        if details:
            log_details.update(details)

        self.log_operation(f"vector.{operation}", status, log_details)

    def log_directive(self, index: int, kind: str, status: str, details: Dict[str, Any] = None):
        """Log the outcome of a single dispatched directive."""
        log_details = {"index": index, "kind": kind}
        if details:
            log_details.update(details)

        level = logging.WARNING if status == "error" else logging.INFO
        self.log_operation("directive.processed", status, log_details, level=level)

    def log_validation_error(self, kind: str, errors: List[Any]):
        """Log directive validation errors without echoing field values."""
        sanitized_errors = [_truncate(str(error), 100) for error in errors]
        log_details = {
            "kind": kind,
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        }
        self.log_operation("directive.validation", "rejected", log_details, level=logging.WARNING)

    def log_eviction(self, scope: str, evicted_ids: List[str], limit: int):
        """Log capacity eviction for a scope."""
        log_details = {
            "scope": scope,
            "evicted_count": len(evicted_ids),
            "limit": limit
        }
        self.log_operation("record.evicted", "success", log_details)

    def warning(self, message: str):
        self.logger.warning(message)

    def error(self, message: str):
        self.logger.error(message)

    def debug(self, message: str):
        self.logger.debug(message)


logger = StructuredLogger()
