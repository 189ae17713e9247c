"""
Structured logging for the authentication service.

JSON logs with a per-request correlation id and masking of credentials:
passwords and raw tokens must never reach a log sink, whether they appear in
the message text or in ``extra`` fields.
"""

import json
import logging
import re
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# Context variable for request correlation
request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


@dataclass
class SensitiveDataConfig:
    """Configuration for sensitive data masking."""

    # Credential-bearing keys
    credential_patterns: list[str] = field(
        default_factory=lambda: [
            r"password",
            r"access[_-]?token",
            r"refresh[_-]?token",
            r"authorization",
            r"secret",
        ]
    )

    # Replacement text
    mask_replacement: str = "***MASKED***"

    # Fields to completely exclude from logs
    excluded_fields: set[str] = field(
        default_factory=lambda: {"password", "password_hash", "token", "private_key"}
    )


class SensitiveDataMasker:
    """Masks sensitive data in log messages and extra fields."""

    def __init__(self, config: SensitiveDataConfig | None = None) -> None:
        self.config = config or SensitiveDataConfig()
        keys = "|".join(self.config.credential_patterns)
        # Matches `key=value`, `key: value` and `"key": "value"`; the key and separator are kept
        self._pair_pattern = re.compile(
            rf'(?P<key>"?(?:{keys})"?)(?P<sep>\s*[=:]\s*)(?P<value>"[^"]*"|[^\s,;]+)',
            re.IGNORECASE,
        )

    def mask_message(self, message: str) -> str:
        """Mask credential values in a log message."""
        return self._pair_pattern.sub(self._replace_value, message)

    def mask_extra_fields(self, extra: dict[str, Any]) -> dict[str, Any]:
        """Mask sensitive data in extra log fields."""
        masked_extra: dict[str, Any] = {}

        for key, value in extra.items():
            if key.lower() in self.config.excluded_fields:
                continue

            if self._is_sensitive_field(key):
                masked_extra[key] = self.config.mask_replacement
            elif isinstance(value, str):
                masked_extra[key] = self.mask_message(value)
            elif isinstance(value, dict):
                masked_extra[key] = self.mask_extra_fields(value)
            else:
                masked_extra[key] = value

        return masked_extra

    def _is_sensitive_field(self, field_name: str) -> bool:
        return any(
            re.search(pattern, field_name, re.IGNORECASE)
            for pattern in self.config.credential_patterns
        )

    def _replace_value(self, match: re.Match[str]) -> str:
        mask = self.config.mask_replacement
        if match.group("value").startswith('"'):
            mask = f'"{mask}"'
        return f"{match.group('key')}{match.group('sep')}{mask}"


class AuthJSONFormatter(logging.Formatter):
    """JSON formatter for structured authentication logs."""

    # Attributes every LogRecord carries; anything else came in through ``extra``
    STANDARD_FIELDS = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "request_id",
    }

    def __init__(
        self,
        sensitive_data_config: SensitiveDataConfig | None = None,
        include_extra: bool = True,
        sort_keys: bool = True,
    ):
        super().__init__()
        self.include_extra = include_extra
        self.sort_keys = sort_keys
        self.masker = SensitiveDataMasker(sensitive_data_config)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": self.masker.mask_message(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = getattr(record, "request_id", None)
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        if self.include_extra:
            extra = {
                key: value
                for key, value in record.__dict__.items()
                if key not in self.STANDARD_FIELDS and not key.startswith("_")
            }
            if extra:
                log_entry["extra"] = self.masker.mask_extra_fields(extra)

        return json.dumps(log_entry, sort_keys=self.sort_keys, default=str)


class RequestContextFilter(logging.Filter):
    """Attach the current request id to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


# Request id management
def generate_request_id() -> str:
    """Generate a new request ID."""
    return str(uuid.uuid4())


def get_request_id() -> str | None:
    """Get current request ID."""
    return request_id_var.get()


@contextmanager
def request_context(request_id: str | None = None) -> Generator[str, None, None]:
    """Context manager for request ID scope."""
    if request_id is None:
        request_id = generate_request_id()

    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    sensitive_data_config: SensitiveDataConfig | None = None,
) -> None:
    """
    Setup structured logging for the service.

    Args:
        level: Logging level
        format_type: Formatter type ('json' or 'text')
        sensitive_data_config: Sensitive data masking configuration
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter: logging.Formatter
    if format_type == "json":
        formatter = AuthJSONFormatter(sensitive_data_config)
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestContextFilter())

    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.addHandler(console_handler)

    logging.getLogger(__name__).info("Structured logging configured")
