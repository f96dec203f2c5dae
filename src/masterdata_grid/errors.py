"""Error taxonomy for the grid engine and its persistence collaborators.

Every error derives from :class:`GridError` so the presentation layer can
catch one type and surface a message.  None of them is fatal: the grid
keeps its last-known-good data and the user can retry.
"""

from typing import Any


class GridError(Exception):
    """Base class for all grid engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(GridError):
    """Local, pre-submission validation failure.

    Never reaches the network.  ``field_errors`` maps each offending
    column key to a short message so it can be shown inline.
    """

    def __init__(self, field_errors: dict[str, str]) -> None:
        fields = ", ".join(sorted(field_errors))
        super().__init__(f"Validation failed for: {fields}")
        self.field_errors = dict(field_errors)


class RequestError(GridError):
    """The server received the call and rejected it.

    Args:
        code: Machine-readable error code from the response envelope
            (``NOT_FOUND``, ``VALIDATION_ERROR``, ...).
        message: Human-readable message.
        status: HTTP status, when the transport has one.
        details: Optional structured details from the envelope.
    """

    def __init__(
        self,
        code: str,
        message: str,
        *,
        status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status
        self.details = details or {}

    @property
    def is_not_found(self) -> bool:
        return self.code == "NOT_FOUND" or self.status == 404

    def __str__(self) -> str:
        status = f" (HTTP {self.status})" if self.status is not None else ""
        return f"{self.code}{status}: {self.message}"


class NetworkError(GridError):
    """No response was received (connection refused, timeout, DNS...)."""


class PartialLoadError(GridError):
    """Some of the concurrent fetches in ``load()`` failed.

    ``failures`` maps the name of each failed source (a lookup table
    name, or ``"records"``) to the exception it raised.
    """

    def __init__(self, failures: dict[str, Exception]) -> None:
        names = ", ".join(sorted(failures))
        super().__init__(f"Failed to load: {names}")
        self.failures = dict(failures)


class SubmissionInProgressError(GridError):
    """A create or save for the same target is already in flight."""


class EditSessionError(GridError):
    """An edit intent does not fit the row's current state."""
