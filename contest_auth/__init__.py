"""
Contest Draw authentication service.

Registration, login, email verification, password reset and refresh-token
rotation behind a small FastAPI router.
"""

__version__ = "1.0.0"
