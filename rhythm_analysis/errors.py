"""
Error types raised by the rating engine.

Two failure kinds are surfaced to callers:
- InvalidInput: the inputs violate a precondition (bad delta times,
  negative counts, malformed hit windows)
- NoConvergence: a root search or minimization hit its iteration cap, or
  the requested accuracy cannot be reached

A score without any successful hit is not an error: the unstable rate
estimator returns None for it.
"""


class RatingError(Exception):
    """Base class for rating engine errors."""


class InvalidInput(RatingError, ValueError):
    """Raised when inputs violate a documented precondition."""


class NoConvergence(RatingError, RuntimeError):
    """Raised when an iterative search fails within its iteration budget."""
