"""Failure taxonomy for test sessions.

Every failure a session reports reaches the calling test as one of these
exceptions. Nothing here is retried automatically.
"""

from typing import Any, Optional


class SerialTesterError(Exception):
    """Base exception for session failures."""
    pass


class ProtocolError(SerialTesterError):
    """Malformed or unexpected response shape (status, framing, mode)."""
    pass


class BackendError(SerialTesterError):
    """Explicit ``{"error": {"message", "code"}}`` record sent by the backend."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(f"Backend error: {message}")
        self.backend_message = message
        self.code = code


class ContractViolation(SerialTesterError):
    """The backend answered, but not with what the contract requires."""
    pass


class LoginError(ContractViolation):
    """Login did not land on the configured success page."""

    def __init__(self, message: str, expected: Any = None, obtained: Any = None):
        super().__init__(message)
        self.expected = expected
        self.obtained = obtained


class UnknownTableError(ContractViolation):
    """The backend does not declare the requested table."""
    pass


class UnsafeDatabaseError(ContractViolation):
    """The backend is connected to a database other than the test one."""
    pass


class SchemaValidationError(ContractViolation):
    """A value does not match its declared description."""

    def __init__(self, message: str, value: Any = None, errors: Optional[list] = None):
        super().__init__(message)
        self.value = value
        self.errors = errors or []


class OperationTimeoutError(SerialTesterError):
    """An awaited operation did not finish in time."""
    pass


class UITimeoutError(OperationTimeoutError):
    """A selector or DOM condition wait was exceeded."""

    def __init__(self, message: str, selector: Optional[str] = None):
        super().__init__(message)
        self.selector = selector


class DiscrepancyError(SerialTesterError, AssertionError):
    """Observed data differs from the expected data."""

    def __init__(self, obtained: Any, expected: Any, differences: Optional[dict] = None):
        self.obtained = obtained
        self.expected = expected
        self.differences = differences or {}
        super().__init__(f"Discrepancies found: {self.differences}")


class DecodingError(SerialTesterError):
    """Rendered cell text cannot be decoded with the field description."""

    def __init__(self, text: Optional[str], description: Any):
        super().__init__(f"cannot decode visual representation {text!r} as {description}")
        self.text = text
        self.description = description


class ExpectedErrorNotRaised(SerialTesterError, AssertionError):
    """An action expected to fail finished successfully."""
    pass


class UnexpectedErrorCode(SerialTesterError, AssertionError):
    """An action failed, but with a different error code than expected."""

    def __init__(self, expected_code: str, error: BaseException):
        self.expected_code = expected_code
        self.error = error
        self.code = getattr(error, "code", None)
        super().__init__(
            f'Expected "{expected_code}" error code. Gotten "{self.code}": {error}'
        )
