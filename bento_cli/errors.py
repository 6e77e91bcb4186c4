from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class ErrorKind(str, Enum):
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_FAILED = "AUTH_FAILED"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    API_ERROR = "API_ERROR"
    UNKNOWN = "UNKNOWN"


# Process exit codes
EXIT_OK = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_FILE_IO = 5
EXIT_VALIDATION = 6
# non-interactive bulk run without --confirm
EXIT_REFUSED = EXIT_VALIDATION
EXIT_INTERRUPTED = 130

EXIT_CODES: dict = {
    ErrorKind.AUTH_REQUIRED: EXIT_ERROR,
    ErrorKind.AUTH_FAILED: EXIT_ERROR,
    ErrorKind.RATE_LIMITED: EXIT_ERROR,
    ErrorKind.NOT_FOUND: EXIT_ERROR,
    ErrorKind.TIMEOUT: EXIT_ERROR,
    ErrorKind.VALIDATION_ERROR: EXIT_VALIDATION,
    ErrorKind.API_ERROR: EXIT_ERROR,
    ErrorKind.UNKNOWN: EXIT_ERROR,
}


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    status_code: Optional[int] = None


Result = Union[Ok, Err]


class ApiError(Exception):
    """Raised by the API client when a call resolves to an ``Err``."""

    def __init__(self, err: Err):
        super().__init__(err.message)
        self.err = err

    @property
    def kind(self) -> ErrorKind:
        return self.err.kind

    @property
    def status_code(self) -> Optional[int]:
        return self.err.status_code

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.err.kind]


class CommandError(Exception):
    """A user-facing failure that ends the command with ``exit_code``.

    ``details`` optionally carries structured records (e.g. CSV row errors)
    into the JSON error envelope.
    """

    def __init__(self, message: str, exit_code: int = EXIT_ERROR, details: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code
        self.details = details


def usage_error(message: str) -> CommandError:
    return CommandError(message, EXIT_USAGE)
