"""Typed errors raised by the engines and backends.

Every error carries a stable ``code`` (sent in the ``error`` field of a
failed envelope) and the HTTP status the API server answers with, so the
HTTP backend can map a failed response back to the same exception type.
"""


class LendingError(Exception):
    """Base class for every error raised by the client core."""

    code = "LendingError"
    http_status = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class ValidationError(LendingError, ValueError):
    """Bad input to create / decide / rate / repay."""

    code = "ValidationError"
    http_status = 400


class InvalidTransition(LendingError):
    """A state-machine guard refused the requested action."""

    code = "InvalidTransition"
    http_status = 409


class AlreadyRated(LendingError):
    code = "AlreadyRated"
    http_status = 409


class NotFound(LendingError, LookupError):
    code = "NotFound"
    http_status = 404


class AuthExpired(LendingError):
    """The backend answered 401; the session has already been cleared."""

    code = "AuthExpired"
    http_status = 401


class BackendError(LendingError):
    """A failed response that does not name a known error."""

    code = "BackendError"

    def __init__(self, message: str = "", status: int = 500):
        super().__init__(message)
        self.http_status = status


ERRORS_BY_CODE: dict[str, type[LendingError]] = {
    cls.code: cls
    for cls in (ValidationError, InvalidTransition, AlreadyRated, NotFound, AuthExpired)
}
