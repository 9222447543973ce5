"""
investment.py — Portfolio company records and input validation.

Depends on: stages.py, presets.py, errors.py
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping, Optional

from vc_fund_sim.errors import MalformedInputError
from vc_fund_sim.presets import field_stage_parameters
from vc_fund_sim.stages import (
    RECORD_KEYS,
    STAGES,
    TRANSITION_KEYS,
    Range,
    Stage,
    StageParameters,
)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass(frozen=True)
class Investment:
    """
    A single portfolio company investment.

    ``stages`` maps every stage to the parameters used when the company
    enters (progression, dilution, years) or ends its walk at (loss, exit
    valuation) that stage. Stages missing from the mapping behave as all-zero
    parameters. Monetary amounts are in $MM.
    """

    name: str
    entry_stage: Stage
    entry_valuation: float
    check_size: float
    stages: Mapping[Stage, StageParameters] = field(default_factory=dict)
    sector: str = "software"
    region: str = "US"
    investment_id: str = field(default_factory=_new_id)

    @property
    def entry_ownership(self) -> float:
        """Fraction of the company bought with the initial check."""
        if self.entry_valuation <= 0:
            return 0.0
        return self.check_size / self.entry_valuation

    def params(self, stage: Stage) -> StageParameters:
        return self.stages.get(stage, StageParameters())

    def with_stages(self, stages: Mapping[Stage, StageParameters]) -> "Investment":
        """Copy of this investment with a replaced parameter table."""
        return replace(self, stages=dict(stages))

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_preset(
        cls,
        name: str,
        entry_stage: Stage,
        entry_valuation: float,
        check_size: float,
        sector: str = "software",
        region: str = "US",
        investment_id: Optional[str] = None,
    ) -> "Investment":
        """Build an investment from the research presets for its sector."""
        return cls(
            name=name,
            entry_stage=entry_stage,
            entry_valuation=entry_valuation,
            check_size=check_size,
            stages=field_stage_parameters(sector, region),
            sector=sector,
            region=region,
            investment_id=investment_id or _new_id(),
        )

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Investment":
        """
        Build an investment from a persisted camelCase payload.

        Expected groups: ``stageProgression`` (toSeed..toIPO),
        ``dilutionRates`` (seed..ipo), ``lossProb`` (preSeed..ipo),
        ``exitValuations`` (preSeed..ipo, [min, max]) and ``yearsToNext``
        (toSeed..toIPO, [min, max]). Missing groups or fields count as 0,
        an empty exit range, or the default years range.
        """
        progression = record.get("stageProgression") or {}
        dilution = record.get("dilutionRates") or {}
        loss = record.get("lossProb") or {}
        exits = record.get("exitValuations") or {}
        years = record.get("yearsToNext") or {}

        stages: dict[Stage, StageParameters] = {}
        for stage in STAGES:
            key = RECORD_KEYS[stage]
            transition = TRANSITION_KEYS.get(stage)
            exit_range = exits.get(key)
            years_range = years.get(transition) if transition else None
            stages[stage] = StageParameters(
                progression=float(progression.get(transition) or 0.0) if transition else 0.0,
                dilution=float(dilution.get(key) or 0.0) if transition else 0.0,
                loss_probability=float(loss.get(key) or 0.0),
                exit_valuation=_as_range(exit_range) if exit_range else (0.0, 0.0),
                years_to_next=_as_range(years_range) if years_range else None,
            )

        return cls(
            name=str(record.get("companyName", "")),
            entry_stage=record["entryStage"],
            entry_valuation=float(record["entryValuation"]),
            check_size=float(record["checkSize"]),
            stages=stages,
            sector=str(record.get("field", "software")),
            region=str(record.get("region", "US")),
            investment_id=str(record.get("id") or _new_id()),
        )

    def to_record(self) -> dict[str, Any]:
        """Inverse of ``from_record``."""
        progression: dict[str, float] = {}
        dilution: dict[str, float] = {}
        years: dict[str, list[float]] = {}
        loss: dict[str, float] = {}
        exits: dict[str, list[float]] = {}

        for stage in STAGES:
            p = self.params(stage)
            key = RECORD_KEYS[stage]
            transition = TRANSITION_KEYS.get(stage)
            if transition:
                progression[transition] = p.progression
                dilution[key] = p.dilution
                years[transition] = list(p.years_range(stage))
            loss[key] = p.loss_probability
            exits[key] = list(p.exit_valuation)

        return {
            "id": self.investment_id,
            "companyName": self.name,
            "field": self.sector,
            "region": self.region,
            "entryStage": self.entry_stage,
            "entryValuation": self.entry_valuation,
            "checkSize": self.check_size,
            "stageProgression": progression,
            "dilutionRates": dilution,
            "lossProb": loss,
            "exitValuations": exits,
            "yearsToNext": years,
        }


def _as_range(value: Iterable[float]) -> Range:
    low, high = (float(v) for v in value)
    return (low, high)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _check_percent(name: str, value: float, label: str) -> None:
    if not math.isfinite(value) or value < 0 or value > 100:
        raise MalformedInputError(f"{name}: {label} must be within [0, 100], got {value}")


def _check_range(name: str, value: Range, label: str) -> None:
    low, high = value
    if not (math.isfinite(low) and math.isfinite(high)):
        raise MalformedInputError(f"{name}: {label} must be finite, got {value}")
    if high < low:
        raise MalformedInputError(f"{name}: {label} has max < min ({high} < {low})")
    if low < 0:
        raise MalformedInputError(f"{name}: {label} must be non-negative, got {value}")


def validate_investment(investment: Investment) -> None:
    """Raise MalformedInputError if the investment cannot be walked."""
    name = investment.name or investment.investment_id
    if investment.entry_stage not in STAGES:
        raise MalformedInputError(
            f"{name}: unknown entry stage {investment.entry_stage!r}; expected one of {STAGES}"
        )
    if not investment.entry_valuation > 0:
        raise MalformedInputError(
            f"{name}: entry valuation must be positive, got {investment.entry_valuation}"
        )
    if not investment.check_size >= 0:
        raise MalformedInputError(
            f"{name}: check size must be non-negative, got {investment.check_size}"
        )

    for stage, p in investment.stages.items():
        if stage not in STAGES:
            raise MalformedInputError(f"{name}: unknown stage {stage!r} in parameter table")
        _check_percent(name, p.progression, f"{stage} progression probability")
        _check_percent(name, p.dilution, f"{stage} dilution rate")
        _check_percent(name, p.loss_probability, f"{stage} loss probability")
        _check_range(name, p.exit_valuation, f"{stage} exit valuation range")
        if p.years_to_next is not None:
            _check_range(name, p.years_to_next, f"{stage} years-to-next range")


def validate_portfolio(investments: Iterable[Investment]) -> list[Investment]:
    """Validate every investment; return them as a list."""
    portfolio = list(investments)
    if not portfolio:
        raise MalformedInputError("Portfolio is empty. Add investments before simulating.")
    for investment in portfolio:
        validate_investment(investment)
    return portfolio
