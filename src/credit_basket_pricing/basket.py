# Requires Python 3.12+
# Uses native type hints: list[x], tuple[x, y], X | None (PEP 585, PEP 604)
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Sequence

import numpy as np

from .errors import InvalidInputError

__version__ = "0.1.0"


# =============================================================================
# Basket-Additive Valuation
# =============================================================================
#
# An index or basket whose value is a weighted sum of per-name values can
# evaluate the names independently. Workers only write their own slot of a
# pre-sized array; the weighted sum is always taken afterwards, sequentially,
# in name order. Floating-point addition is not associative, so this is what
# makes a parallel run bit-identical to a serial one.
# =============================================================================

def evaluate_names(
    evaluate: Callable[[int], float],
    count: int,
    parallel: bool = False,
    max_workers: int | None = None,
) -> np.ndarray:
    """
    Evaluate names 0..count-1 into an array indexed by name.

    Args:
        evaluate: Per-name valuation; must not mutate shared state
        count: Number of names
        parallel: Use a thread pool
        max_workers: Thread pool size (None lets the executor choose)

    Returns:
        Array of per-name values, values[i] = evaluate(i)
    """
    if count < 0:
        raise InvalidInputError(f"count must be non-negative, got {count}")
    values = np.empty(count, dtype=np.float64)

    def _evaluate_one(idx: int) -> tuple[int, float]:
        return idx, float(evaluate(idx))

    if parallel and count > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            for idx, v in pool.map(_evaluate_one, range(count)):
                values[idx] = v
    else:
        for idx in range(count):
            values[idx] = _evaluate_one(idx)[1]
    return values


def weighted_sum(weights: Sequence[float], values: np.ndarray) -> float:
    """sum_i weights[i] * values[i], accumulated left to right."""
    total = 0.0
    for w, v in zip(weights, values):
        total += float(w) * float(v)
    return total


def basket_value(
    evaluate: Callable[[int], float],
    weights: Sequence[float],
    parallel: bool = False,
    max_workers: int | None = None,
) -> float:
    """
    Weighted sum of independently evaluated per-name values.

    Returns the same bits whether parallel is True or False.

    Args:
        evaluate: evaluate(i) values name i
        weights: One weight per name
        parallel: Evaluate names on a thread pool
        max_workers: Thread pool size

    Returns:
        sum_i weights[i] * evaluate(i)
    """
    if weights is None:
        raise InvalidInputError("weights are required")
    weights = [float(w) for w in weights]
    values = evaluate_names(evaluate, len(weights), parallel, max_workers)
    return weighted_sum(weights, values)
