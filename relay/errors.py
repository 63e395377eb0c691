from __future__ import annotations


class RelayError(Exception):
    """Base class for errors the HTTP layer knows how to report."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RelayError):
    """A request is missing its message or files."""

    status_code = 400


class UpstreamError(RelayError):
    """The model API failed; ``message`` is the upstream text, unchanged."""

    status_code = 500
