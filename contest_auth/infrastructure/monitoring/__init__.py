"""
Monitoring: structured logging with request correlation.
"""

from .logging import (
    AuthJSONFormatter,
    SensitiveDataMasker,
    get_request_id,
    request_context,
    setup_logging,
)

__all__ = [
    "AuthJSONFormatter",
    "SensitiveDataMasker",
    "get_request_id",
    "request_context",
    "setup_logging",
]
