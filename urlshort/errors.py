"""Error kinds raised by the services and their HTTP status mapping."""
import enum


class ErrorKind(enum.Enum):
    INVALID_ARGUMENT = "INVALID_INPUT"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    UNAUTHORIZED = "AUTHENTICATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    STORAGE_FAILURE = "STORAGE_FAILURE"


STATUS_CODES = {
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.RESOURCE_EXHAUSTED: 409,
    ErrorKind.STORAGE_FAILURE: 500,
}


class AppError(Exception):
    """A failure with a kind, a human-readable message and a machine code.

    ``code`` defaults to the kind's value; the auth gate uses it to tell
    ``NO_TOKEN_PROVIDED`` from ``INVALID_TOKEN`` and ``USER_NOT_FOUND``.
    """

    def __init__(self, kind: ErrorKind, message: str, code: str | None = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code or kind.value

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, "error": self.code}

    def __repr__(self):
        return f"AppError({self.kind.name}, {self.message!r}, code={self.code!r})"


def invalid(message: str) -> AppError:
    return AppError(ErrorKind.INVALID_ARGUMENT, message)


def unauthorized(message: str, code: str) -> AppError:
    return AppError(ErrorKind.UNAUTHORIZED, message, code=code)
