"""
Logging configuration with secret redaction.

CRITICAL SECURITY REQUIREMENTS:
- Gateway tokens, API keys and gateway secrets MUST never reach log output
- Any `extra` field whose name suggests a secret is replaced with [REDACTED]

Usage:
    from entitlement_sync.platform.logging_config import configure_logging
    configure_logging("INFO")
"""

import logging
import re
from typing import Any

# Patterns for detecting secrets in log field names
SECRET_PATTERNS = [
    re.compile(r"(api[_-]?key)", re.IGNORECASE),
    re.compile(r"(secret)", re.IGNORECASE),
    re.compile(r"(access[_-]?token)", re.IGNORECASE),
    re.compile(r"(bearer[_-]?token)", re.IGNORECASE),
    re.compile(r"(authorization)", re.IGNORECASE),
    re.compile(r"(password)", re.IGNORECASE),
    re.compile(r"(private[_-]?key)", re.IGNORECASE),
    re.compile(r"(jwt)", re.IGNORECASE),
    re.compile(r"(database[_-]?url)", re.IGNORECASE),
]

# Secret values that may appear inside messages
SECRET_VALUE_PATTERNS = [
    re.compile(r"(Bearer\s+[a-zA-Z0-9._-]+)"),
    re.compile(r"(sk_(?:live|test)_[a-zA-Z0-9]{10,})"),
    re.compile(r"(eyJ[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+\.[a-zA-Z0-9_-]+)"),
]

REDACTED_VALUE = "[REDACTED]"

# Attributes every LogRecord has; anything else came from `extra`
_RESERVED_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()) | {"message", "asctime"}

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def is_secret_key(key: str) -> bool:
    """Check if a field name likely holds a secret."""
    return any(pattern.search(key) for pattern in SECRET_PATTERNS)


def redact_value(value: Any) -> Any:
    """Redact secret patterns from a string value."""
    if not isinstance(value, str):
        return value

    result = value
    for pattern in SECRET_VALUE_PATTERNS:
        result = pattern.sub(REDACTED_VALUE, result)
    return result


def redact_secrets(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact secrets from a data structure.

    Returns:
        Copy of data with secrets redacted
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        return {
            key: REDACTED_VALUE if is_secret_key(str(key)) else redact_secrets(value, _depth + 1)
            for key, value in data.items()
        }

    if isinstance(data, list):
        return [redact_secrets(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_value(data)

    return data


class SecretRedactionFilter(logging.Filter):
    """Redacts secrets from the message and `extra` fields of each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_value(record.msg)
        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_secrets(record.args)
            else:
                record.args = tuple(redact_secrets(arg) for arg in record.args)

        for key in list(vars(record).keys()):
            if key in _RESERVED_ATTRS:
                continue
            value = getattr(record, key)
            setattr(record, key, REDACTED_VALUE if is_secret_key(key) else redact_secrets(value))
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging and install the redaction filter on its handlers."""
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=DEFAULT_FORMAT)
    redaction = SecretRedactionFilter()
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, SecretRedactionFilter) for f in handler.filters):
            handler.addFilter(redaction)
