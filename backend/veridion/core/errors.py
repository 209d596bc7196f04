"""Exception types raised by the analytics engines."""

from __future__ import annotations


class AnalysisInputError(ValueError):
    """Input arrays or records cannot be analysed as given."""


class NotFoundError(LookupError):
    """A stored pattern, recommendation or result does not exist."""


class InvalidTransitionError(ValueError):
    """A recommendation status change is not allowed from its current state."""

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move recommendation from {current} to {requested}")
