"""Errors raised by the sprint analysis services."""


class SprintAnalysisError(ValueError):
    """Base error for invalid analysis input."""


class InvalidSprintWindow(SprintAnalysisError):
    """Sprint window has start after end or no board columns."""


class PayloadError(SprintAnalysisError):
    """A request payload is missing required data or is malformed."""
