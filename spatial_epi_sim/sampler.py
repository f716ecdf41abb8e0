"""
Random draws used by every stochastic part of the model. All functions take the `numpy.random.Generator` explicitly, so
a run is reproducible given the seed used to create it.
"""
import math

import numpy as np  # type: ignore

# Trial counts above this are approximated by a Poisson draw
EXACT_BINOMIAL_LIMIT = 100


def clampProbability(p: float) -> float:
    """Clamp a computed rate into [0, 1] so it can be passed to :meth:`binomial`.

    >>> clampProbability(1.7)
    1.0
    >>> clampProbability(-0.1)
    0.0
    >>> clampProbability(0.25)
    0.25
    """
    if math.isnan(p):
        raise ValueError("probability is NaN")
    return min(max(p, 0.0), 1.0)


def binomial(n: int, p: float, generator: np.random.Generator) -> int:
    r"""
    Draws the number of successes out of `n` independent trials with success probability `p`. Two modes:

    1. ``n <= 100`` -- exact, one uniform draw per trial compared against `p`.
    2. ``n > 100`` -- approximated by a Poisson draw with mean :math:`n p`, capped at `n`.

    :param n: number of trials, a non-negative integer
    :param p: probability of success, already clamped into [0, 1] by the caller
    :param generator: random number generator used for the model
    :return: number of successes, between 0 and n
    """
    if isinstance(n, bool) or int(n) != n or n < 0:
        raise ValueError(f"number of trials must be a non-negative integer, got {n}")
    if math.isnan(p) or p < 0.0 or p > 1.0:
        raise ValueError(f"probability must be within [0, 1], got {p}")
    n = int(n)

    if n == 0:
        return 0
    if n <= EXACT_BINOMIAL_LIMIT:
        return int(np.count_nonzero(generator.random(n) < p))
    return min(int(generator.poisson(n * p)), n)
