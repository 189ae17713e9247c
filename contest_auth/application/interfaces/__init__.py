"""
Application interfaces consumed by the use cases.
"""

from .email import EmailDispatcher, EmailDispatchError

__all__ = ["EmailDispatcher", "EmailDispatchError"]
