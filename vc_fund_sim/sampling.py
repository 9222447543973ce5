"""
sampling.py — Uniform draws over a NumPy Generator.

Every stochastic gate in the engine is a percentage compared against a draw
from ``percent_draw``; every sampled quantity is a ``uniform_between`` over a
``[min, max]`` range.
"""
from __future__ import annotations

from typing import Optional

import numpy as np


def make_rng(seed: Optional[int | np.random.SeedSequence] = None) -> np.random.Generator:
    """Return a fresh Generator (modern NumPy API) for ``seed``."""
    return np.random.default_rng(seed)


def uniform_between(rng: np.random.Generator, low: float, high: float) -> float:
    """Uniform draw in ``[low, high)``; degenerate ranges return ``low``."""
    if high <= low:
        return float(low)
    return float(rng.uniform(low, high))


def percent_draw(rng: np.random.Generator) -> float:
    """Uniform draw in ``[0, 100)`` for comparison against a percentage."""
    return float(rng.uniform(0.0, 100.0))
