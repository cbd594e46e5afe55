"""Session implementations.

- ``HttpSession``: drives the backend through its HTTP API
- ``BrowserSession``: drives the backend through the rendered UI
"""

from .base import (
    Credentials,
    FixedField,
    SaveStatus,
    Session,
    SessionSupport,
    to_fixed_fields,
)
from .browser import BrowserSession
from .http import HttpSession, ResponseHeaders

__all__ = [
    "Credentials",
    "FixedField",
    "SaveStatus",
    "Session",
    "SessionSupport",
    "to_fixed_fields",
    "BrowserSession",
    "HttpSession",
    "ResponseHeaders",
]
