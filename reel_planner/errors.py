"""Exceptions raised when a plan breaks one of its own invariants."""
from __future__ import annotations


class PlanningError(RuntimeError):
    """Base class for planning bugs that must abort the job."""


class CropBoundsError(PlanningError):
    pass


class HoldTooLongError(PlanningError):
    pass


class TimelineError(PlanningError):
    pass


class DurationShortfallError(PlanningError):
    pass
