from __future__ import annotations


class StackprepError(Exception):
    """Base stackprep error."""


class InstallError(StackprepError):
    """A package or tool installation step failed."""

    def __init__(self, step: str, details: str | None = None):
        message = f"{step} failed."
        if details:
            message = f"{message} {details}"
        super().__init__(message)
        self.step = step
        self.details = details


class ValidationError(StackprepError):
    """User input was rejected."""


class RenderError(StackprepError):
    """A generated artifact could not be rendered or written."""
