"""Composition planner for photo reels."""

__all__ = ["plan_reel"]


def plan_reel(*args, **kwargs):
    from .pipeline import plan_reel as _plan_reel

    return _plan_reel(*args, **kwargs)
