"""kiln error types.

Render failures are a single exception type tagged with an ``ErrorKind``.
Callers dispatch on ``exc.kind`` instead of walking a class hierarchy::

    match exc.kind:
        case ErrorKind.NOT_FOUND: ...
        case ErrorKind.VALIDATION: ...
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from enum import Enum


class KilnError(Exception):
    """Base for all kiln-specific errors."""


class ConfigurationError(KilnError):
    """Raised when app configuration is invalid.

    Typically caught during ``App._ensure_frozen()`` at startup.
    """


class ChannelError(KilnError):
    """Raised on channel misuse (push to an unjoined topic, closed connection)."""


class ErrorKind(Enum):
    """Classification of a render failure and the HTTP status it maps to."""

    VALIDATION = 400
    NOT_FOUND = 404
    UNCLASSIFIED = 500
    RECOVERY = "recovery"
    TIMEOUT = "timeout"

    @property
    def status(self) -> int:
        """HTTP status reported for this kind."""
        match self:
            case ErrorKind.VALIDATION | ErrorKind.NOT_FOUND | ErrorKind.UNCLASSIFIED:
                return self.value
            case ErrorKind.TIMEOUT:
                return 504
            case _:
                return 500


_DEFAULT_DETAIL = {
    ErrorKind.VALIDATION: "Bad Request",
    ErrorKind.NOT_FOUND: "Not Found",
    ErrorKind.UNCLASSIFIED: "Internal Server Error",
    ErrorKind.RECOVERY: "Error while rendering the error page",
    ErrorKind.TIMEOUT: "Render deadline exceeded",
}


@dataclass(frozen=True, slots=True)
class RenderError(KilnError):
    """A render failure tagged with its ``ErrorKind``.

    Raised by render callbacks (e.g. ``RenderError.not_found()`` when no
    page matches) and by the coordinator itself for validation failures.
    """

    kind: ErrorKind
    detail: str = ""
    stack: str | None = field(default=None, compare=False)

    def __str__(self) -> str:
        return f"{self.status}: {self.message}"

    @property
    def status(self) -> int:
        return self.kind.status

    @property
    def message(self) -> str:
        return self.detail or _DEFAULT_DETAIL[self.kind]

    @classmethod
    def validation(cls, detail: str = "") -> RenderError:
        return cls(ErrorKind.VALIDATION, detail)

    @classmethod
    def not_found(cls, detail: str = "") -> RenderError:
        return cls(ErrorKind.NOT_FOUND, detail)


def classify_error(exc: BaseException) -> RenderError:
    """Map any exception raised during a render to a ``RenderError``.

    ``RenderError`` instances keep their kind; everything else is
    ``UNCLASSIFIED``. The stack is captured from the original exception
    so the error snapshot can carry it.
    """
    stack = "".join(traceback.format_exception(exc)) if exc.__traceback__ else None
    if isinstance(exc, RenderError):
        if exc.stack is None and stack is not None:
            return RenderError(exc.kind, exc.detail, stack)
        return exc
    detail = str(exc) or type(exc).__name__
    return RenderError(ErrorKind.UNCLASSIFIED, detail, stack)
