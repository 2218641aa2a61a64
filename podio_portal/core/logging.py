"""
Logging utilities for the gateway and operator scripts.

Provides a consistent logging format and keeps bearer credentials out of log
output.
"""

import logging
import re
import sys

_SECRET_PATTERNS = (
    re.compile(r"(?i)((?:access|refresh)_token[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"),
    re.compile(r"(?i)(client_secret[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"),
    re.compile(r"(?i)((?:OAuth2|Bearer)\s+)[A-Za-z0-9._~+/=-]+"),
)


def redact(text: str) -> str:
    """Mask token and secret values embedded in ``text``."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1***", text)
    return text


class TokenRedactionFilter(logging.Filter):
    """Rewrite records so credentials never reach a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the portal format and redaction."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, TokenRedactionFilter) for f in handler.filters):
            handler.addFilter(TokenRedactionFilter())


__all__ = ["TokenRedactionFilter", "configure_logging", "redact"]
