"""Error sanitization utilities to prevent credential leakage."""

import re
from typing import Any


# Patterns that might expose sensitive information
SENSITIVE_PATTERNS = [
    r"(?:aws_)?access[_\s-]?key[_\s-]?id[\"'\s:=]+([A-Z0-9]{16,128})",
    r"(?:aws_)?secret[_\s-]?access[_\s-]?key[\"'\s:=]+([A-Za-z0-9/+=]{20,})",
    r"session[_\s-]?token[\"'\s:=]+([A-Za-z0-9/+=]+)",
    r"arn:aws:[a-z0-9\-]*:[a-z0-9\-]*:(\d{12})",
]

# Bare AWS access key ids (long-term and temporary)
ACCESS_KEY_ID_PATTERN = r"\b(?:AKIA|ASIA)[A-Z0-9]{16}\b"

# Fields to redact completely
SENSITIVE_FIELDS = {
    "access_key_id",
    "secret_access_key",
    "credentialkeyid",
    "credentialsecretkey",
    "session_token",
    "password",
    "secret",
    "credentials",
    "token",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with sensitive data redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    return re.sub(ACCESS_KEY_ID_PATTERN, "[REDACTED]", sanitized)


def sanitize_exception(error: BaseException) -> str:
    """Sanitize exception message.

    Args:
        error: Exception object

    Returns:
        Sanitized error message
    """
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    if sensitive_keys is None:
        sensitive_keys = set()

    all_sensitive = SENSITIVE_FIELDS | sensitive_keys
    sanitized = {}

    for key, value in data.items():
        key_lower = key.lower()
        # Check if any sensitive field matches this key
        if any(sensitive in key_lower for sensitive in all_sensitive):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
