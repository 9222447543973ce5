"""
presets.py — Research-based per-field stage parameters.

Progression, dilution and loss rates by startup field (PitchBook 2023 /
CB Insights 2023 calibration) and exit valuation ranges by field and region
(European baseline, US uplift per field).

Depends on: stages.py
"""
from __future__ import annotations

import math
from typing import Literal

from vc_fund_sim.stages import STAGES, Range, Stage, StageParameters

StartupField = Literal[
    "software",
    "deeptech",
    "biotech",
    "fintech",
    "ecommerce",
    "healthcare",
    "energy",
    "foodtech",
]
Region = Literal["US", "Europe"]

FIELD_LABELS: dict[str, str] = {
    "software": "Software",
    "deeptech": "Deep Tech",
    "biotech": "Biotech",
    "fintech": "FinTech",
    "ecommerce": "E-commerce",
    "healthcare": "Healthcare",
    "energy": "Energy",
    "foodtech": "Food Tech",
}

REGION_LABELS: dict[str, str] = {
    "US": "United States",
    "Europe": "Europe",
}

# Per field: progression into (Seed, A, B, C, IPO), dilution on entering
# (Seed, A, B, C, IPO), loss probability at (Pre-Seed, Seed, A, B, C, IPO).
_FIELD_RATES: dict[str, dict[str, tuple[float, ...]]] = {
    "software": {
        "progression": (65, 45, 55, 48, 35),
        "dilution": (18, 20, 15, 12, 8),
        "loss": (25, 20, 15, 10, 8, 3),
    },
    "deeptech": {
        "progression": (45, 35, 42, 38, 25),
        "dilution": (22, 25, 20, 18, 12),
        "loss": (40, 35, 28, 20, 15, 8),
    },
    "biotech": {
        "progression": (35, 25, 30, 28, 20),
        "dilution": (25, 28, 22, 20, 15),
        "loss": (50, 45, 40, 30, 25, 15),
    },
    "fintech": {
        "progression": (58, 40, 48, 42, 30),
        "dilution": (20, 22, 18, 15, 10),
        "loss": (30, 25, 20, 15, 12, 6),
    },
    "ecommerce": {
        "progression": (55, 38, 45, 40, 28),
        "dilution": (19, 21, 16, 14, 9),
        "loss": (35, 30, 25, 18, 15, 8),
    },
    "healthcare": {
        "progression": (40, 30, 35, 32, 22),
        "dilution": (23, 26, 21, 19, 14),
        "loss": (45, 40, 35, 25, 20, 12),
    },
    "energy": {
        "progression": (38, 28, 32, 30, 18),
        "dilution": (24, 27, 23, 21, 16),
        "loss": (48, 42, 38, 28, 22, 14),
    },
    "foodtech": {
        "progression": (50, 33, 38, 35, 24),
        "dilution": (21, 24, 19, 17, 12),
        "loss": (42, 38, 32, 22, 18, 10),
    },
}

# European baseline exit valuations ($MM) per stage, Pre-Seed .. IPO
_BASE_EXIT_VALUATIONS: dict[str, tuple[Range, ...]] = {
    "software": ((3, 8), (6, 16), (25, 65), (70, 160), (180, 650), (900, 4000)),
    "fintech": ((3, 9), (7, 18), (28, 70), (75, 180), (200, 700), (1000, 4500)),
    "deeptech": ((2, 6), (5, 12), (20, 50), (60, 140), (150, 500), (800, 3500)),
    "biotech": ((4, 12), (8, 25), (35, 90), (100, 250), (300, 1000), (1500, 6000)),
    "healthcare": ((3, 10), (7, 20), (30, 75), (80, 200), (220, 750), (1200, 5000)),
    "ecommerce": ((2, 7), (5, 15), (22, 60), (65, 150), (160, 550), (800, 3800)),
    "energy": ((3, 8), (6, 16), (25, 65), (70, 170), (200, 700), (1000, 4500)),
    "foodtech": ((2, 6), (4, 12), (18, 45), (50, 120), (140, 450), (700, 3000)),
}

# US exit valuation uplift over the European baseline
US_MULTIPLIERS: dict[str, float] = {
    "software": 1.25,
    "fintech": 1.30,
    "deeptech": 1.20,
    "biotech": 1.35,
    "healthcare": 1.25,
    "ecommerce": 1.15,
    "energy": 1.20,
    "foodtech": 1.18,
}


def _check_field(field: str) -> None:
    if field not in _FIELD_RATES:
        raise ValueError(f"Unknown field {field!r}; expected one of {sorted(_FIELD_RATES)}")


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def regional_exit_valuations(field: str, region: str) -> dict[Stage, Range]:
    """Exit valuation range per stage for ``field`` in ``region``, whole $MM."""
    _check_field(field)
    multiplier = US_MULTIPLIERS[field] if region == "US" else 1.0
    return {
        stage: (
            float(_round_half_up(low * multiplier)),
            float(_round_half_up(high * multiplier)),
        )
        for stage, (low, high) in zip(STAGES, _BASE_EXIT_VALUATIONS[field])
    }


def field_stage_parameters(field: str, region: str = "US") -> dict[Stage, StageParameters]:
    """Full per-stage parameter table for a field/region preset."""
    _check_field(field)
    rates = _FIELD_RATES[field]
    exits = regional_exit_valuations(field, region)

    table: dict[Stage, StageParameters] = {
        "Pre-Seed": StageParameters(
            loss_probability=float(rates["loss"][0]),
            exit_valuation=exits["Pre-Seed"],
        )
    }
    for i, stage in enumerate(STAGES[1:]):
        table[stage] = StageParameters(
            progression=float(rates["progression"][i]),
            dilution=float(rates["dilution"][i]),
            loss_probability=float(rates["loss"][i + 1]),
            exit_valuation=exits[stage],
        )
    return table
