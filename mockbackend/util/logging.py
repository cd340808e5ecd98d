"""
Structured logging for store, query, access and auth operations.
Sensitive values (passwords, hashes, tokens) never reach the log output.
"""

import logging
import os
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['password', 'hashedPassword', 'accessToken', 'secret']


class StructuredLogger:
    """Structured logger for mock backend operations."""

    def __init__(self, name: str = "mockbackend"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.info(message)

    def log_store_operation(self, operation: str, collection: str, record_id: str = None, status: str = "success"):
        """Log a collection store mutation."""
        details = {"collection": collection}
        if record_id is not None:
            details["record_id"] = record_id

        self.log_operation(f"store.{operation}", status, details)

    def log_query(self, collection: str, params: Dict[str, Any], result_size: Any = None):
        """Log a query pipeline run. Only the parameter names and result size are kept."""
        details = {
            "collection": collection,
            "params": sorted(k for k, v in params.items() if v is not None),
        }
        if result_size is not None:
            details["result_size"] = result_size

        self.logger.debug(f"Operation: query, Status: success, Details: {details}")

    def log_access_decision(self, action: str, collection: str, granted: bool, redacted: List[str] = None, admin: bool = False):
        """Log a rule engine verdict and any redacted fields."""
        details = {
            "action": action,
            "collection": collection,
            "admin_override": admin,
        }
        if redacted:
            details["redacted"] = sorted(set(redacted))

        self.log_operation("access.decision", "granted" if granted else "denied", details)

    def log_auth_event(self, event: str, email: str = None, status: str = "success"):
        """Log a users service event."""
        details = {}
        if email:
            details["email"] = email

        self.log_operation(f"auth.{event}", status, details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
