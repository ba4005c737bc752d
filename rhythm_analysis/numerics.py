"""
One-dimensional numerical search used across the rating engine.

This module provides:
- Root finding with outward bracket expansion (Brent's method once bracketed)
- Unconstrained scalar minimization from an initial guess

Both take a plain function and search bounds, keep no state between calls,
and raise NoConvergence instead of looping past their iteration cap.
"""

import logging
import math
from typing import Callable

from scipy.optimize import brentq, minimize_scalar

from .errors import NoConvergence

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Growth of the bracket width per expansion step
EXPAND_FACTOR = 1.6

# Hard caps on iterative work
MAX_EXPANSIONS = 100
MAX_ROOT_ITERATIONS = 200
MAX_MINIMIZE_ITERATIONS = 500

# Absolute tolerance on the root location
ROOT_XTOL = 1e-12


# =============================================================================
# Root finding
# =============================================================================

def _evaluate(func: Callable[[float], float], x: float) -> float:
    value = float(func(x))
    if math.isnan(value):
        raise NoConvergence(f"Function evaluated to NaN at x={x}")
    return value


def find_root_expand(
    func: Callable[[float], float],
    lower: float,
    upper: float,
    xtol: float = ROOT_XTOL,
    max_expansions: int = MAX_EXPANSIONS,
    max_iterations: int = MAX_ROOT_ITERATIONS,
) -> float:
    """
    Find a root of func, expanding [lower, upper] until it brackets one.

    The end whose value is closer to zero is pushed outward by
    EXPAND_FACTOR times the current width, which keeps the search on the
    side of a monotone function where the crossing lies.

    Args:
        func: Continuous function of one variable
        lower: Initial lower bound
        upper: Initial upper bound (estimate)
        xtol: Absolute tolerance of the returned root
        max_expansions: Cap on bracket expansion steps
        max_iterations: Cap on Brent iterations once bracketed

    Returns:
        x with func(x) == 0 within tolerance

    Raises:
        NoConvergence: If no sign change is found or Brent's method fails
    """
    if upper <= lower:
        raise NoConvergence(f"Empty search interval [{lower}, {upper}]")

    f_lower = _evaluate(func, lower)
    f_upper = _evaluate(func, upper)

    expansions = 0
    while f_lower * f_upper > 0:
        if expansions >= max_expansions:
            raise NoConvergence(
                f"Could not bracket a root after {max_expansions} expansions "
                f"(last interval [{lower:.6g}, {upper:.6g}])"
            )

        width = upper - lower
        if abs(f_lower) < abs(f_upper):
            lower -= EXPAND_FACTOR * width
            f_lower = _evaluate(func, lower)
        else:
            upper += EXPAND_FACTOR * width
            f_upper = _evaluate(func, upper)
        expansions += 1

    if expansions:
        logger.debug("Bracket expanded %d times to [%g, %g]", expansions, lower, upper)

    if f_lower == 0:
        return lower
    if f_upper == 0:
        return upper

    root, result = brentq(
        func, lower, upper,
        xtol=xtol,
        maxiter=max_iterations,
        full_output=True,
        disp=False,
    )

    if not result.converged:
        raise NoConvergence(
            f"Root search did not converge in {max_iterations} iterations: {result.flag}"
        )

    return float(root)


# =============================================================================
# Minimization
# =============================================================================

def minimize_from(
    func: Callable[[float], float],
    initial_guess: float,
    max_iterations: int = MAX_MINIMIZE_ITERATIONS,
) -> float:
    """
    Minimize a scalar function starting from an initial guess.

    Uses Brent's method with a bracket grown downhill from
    (initial_guess / 2, initial_guess).

    Raises:
        NoConvergence: If the bracket cannot be found or the iteration cap is hit
    """
    try:
        result = minimize_scalar(
            func,
            bracket=(initial_guess / 2.0, initial_guess),
            method="brent",
            options={"maxiter": max_iterations},
        )
    except (RuntimeError, ValueError) as exc:
        raise NoConvergence(f"Minimization from {initial_guess} failed: {exc}") from exc

    if not result.success or not math.isfinite(result.x):
        raise NoConvergence(
            f"Minimization from {initial_guess} did not converge "
            f"in {max_iterations} iterations: {getattr(result, 'message', '')}"
        )

    logger.debug("Minimum at x=%g (f=%g, %d iterations)", result.x, result.fun, result.nit)
    return float(result.x)
