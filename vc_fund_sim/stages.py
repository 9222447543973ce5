"""
stages.py — Ordered financing stages and the per-stage parameter table.

Depends on: nothing inside the library.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal, Optional

Stage = Literal["Pre-Seed", "Seed", "Series A", "Series B", "Series C", "IPO"]

STAGES: tuple[Stage, ...] = (
    "Pre-Seed",
    "Seed",
    "Series A",
    "Series B",
    "Series C",
    "IPO",
)

Range = tuple[float, float]

# Time to reach a stage when an investment leaves the range unset
DEFAULT_YEARS_TO_NEXT: dict[Stage, Range] = {
    "Seed": (1.0, 2.0),
    "Series A": (1.0, 3.0),
    "Series B": (1.0, 3.0),
    "Series C": (1.0, 3.0),
    "IPO": (1.0, 2.0),
}

# Minimum tenure for a company that never leaves its final stage
FALLBACK_HOLDING_PERIODS: dict[Stage, Range] = {
    "Pre-Seed": (1.0, 3.0),
    "Seed": (1.0, 4.0),
    "Series A": (2.0, 5.0),
    "Series B": (2.0, 6.0),
    "Series C": (3.0, 7.0),
    "IPO": (1.0, 2.0),
}

# New-round valuation over entry valuation, used to price follow-on checks
FOLLOW_ON_STEP_UPS: dict[Stage, Range] = {
    "Seed": (1.5, 3.0),
    "Series A": (2.0, 4.0),
    "Series B": (1.5, 4.0),
    "Series C": (1.5, 3.0),
}

# camelCase record keys per stage, as used by persisted portfolio payloads
RECORD_KEYS: dict[Stage, str] = {
    "Pre-Seed": "preSeed",
    "Seed": "seed",
    "Series A": "seriesA",
    "Series B": "seriesB",
    "Series C": "seriesC",
    "IPO": "ipo",
}
TRANSITION_KEYS: dict[Stage, str] = {
    "Seed": "toSeed",
    "Series A": "toSeriesA",
    "Series B": "toSeriesB",
    "Series C": "toSeriesC",
    "IPO": "toIPO",
}


def stage_index(stage: str) -> int:
    """Position of ``stage`` in the financing sequence."""
    try:
        return STAGES.index(stage)  # type: ignore[arg-type]
    except ValueError:
        raise ValueError(f"Unknown stage {stage!r}; expected one of {STAGES}") from None


def next_stage(stage: str) -> Optional[Stage]:
    """Stage following ``stage``, or None at IPO."""
    idx = stage_index(stage)
    if idx == len(STAGES) - 1:
        return None
    return STAGES[idx + 1]


@dataclass(frozen=True)
class StageParameters:
    """
    Parameters attached to entering one stage.

    ``progression`` is the chance (percent) of reaching this stage from the
    previous one, ``dilution`` the percent of equity given up on entry.
    ``loss_probability`` and ``exit_valuation`` ($MM) apply when the company's
    walk ends at this stage. ``years_to_next`` is the time taken to reach it.
    """

    progression: float = 0.0
    dilution: float = 0.0
    loss_probability: float = 0.0
    exit_valuation: Range = (0.0, 0.0)
    years_to_next: Optional[Range] = None

    def years_range(self, stage: Stage) -> Range:
        if self.years_to_next is not None:
            return self.years_to_next
        return DEFAULT_YEARS_TO_NEXT.get(stage, (1.0, 2.0))

    def with_changes(self, **changes: object) -> "StageParameters":
        return replace(self, **changes)
