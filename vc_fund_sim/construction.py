"""
construction.py — Allocation-driven fund construction simulator.

Where ``fund.py`` walks a fixed list of named companies, this module builds
the portfolio itself: the deployable fund (size less management fees) is
split across entry stages by percentage, each stage's share is spent on
deals with drawn valuations and check sizes, and every deal is walked
through stage transitions to an exit or write-off.

Depends on: metrics.py, presets.py, sampling.py, stages.py
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import numpy.typing as npt
import pandas as pd

from vc_fund_sim.errors import MalformedInputError
from vc_fund_sim.metrics import calc_moic, newton_irr
from vc_fund_sim.presets import field_stage_parameters
from vc_fund_sim.sampling import make_rng, percent_draw, uniform_between
from vc_fund_sim.stages import STAGES, Range, Stage, stage_index

logger = logging.getLogger(__name__)

# New money is deployed at Series B at the latest
LAST_ENTRY_STAGE: Stage = "Series B"


def transition_key(from_stage: str, to_stage: str) -> str:
    """Key used for per-transition tables, e.g. ``"Seed to Series A"``."""
    return f"{from_stage} to {to_stage}"


TRANSITIONS: tuple[str, ...] = tuple(transition_key(a, b) for a, b in zip(STAGES, STAGES[1:]))


def _default_allocations() -> dict[str, float]:
    return {"Pre-Seed": 20.0, "Seed": 40.0, "Series A": 30.0, "Series B": 10.0}


def _default_valuations() -> dict[str, Range]:
    return {
        "Pre-Seed": (3.0, 8.0),
        "Seed": (8.0, 20.0),
        "Series A": (25.0, 60.0),
        "Series B": (60.0, 150.0),
    }


def _default_check_sizes() -> dict[str, Range]:
    return {
        "Pre-Seed": (0.25, 0.75),
        "Seed": (0.5, 1.5),
        "Series A": (1.5, 4.0),
        "Series B": (3.0, 6.0),
    }


def _default_advancement() -> dict[str, float]:
    stages = field_stage_parameters("software", "US")
    return {transition_key(a, b): stages[b].progression for a, b in zip(STAGES, STAGES[1:])}


def _default_years_to_next() -> dict[str, Range]:
    return dict(zip(TRANSITIONS, [(1.0, 2.0), (1.0, 3.0), (1.0, 3.0), (1.0, 3.0), (1.0, 2.0)]))


def _default_dilution() -> dict[str, Range]:
    return dict(
        zip(TRANSITIONS, [(15.0, 25.0), (18.0, 25.0), (15.0, 22.0), (10.0, 18.0), (5.0, 12.0)])
    )


def _default_exit_valuations() -> dict[str, Range]:
    stages = field_stage_parameters("software", "US")
    return {stage: stages[stage].exit_valuation for stage in STAGES}


def _default_zero_probabilities() -> dict[str, float]:
    stages = field_stage_parameters("software", "US")
    return {stage: stages[stage].loss_probability for stage in STAGES}


@dataclass
class ConstructionParams:
    """
    Fund construction inputs. Amounts in $MM, probabilities in percent.

    Per-stage tables (``stage_allocations``, ``valuations``, ``check_sizes``,
    ``exit_valuations``, ``zero_probabilities``) are keyed by stage name;
    per-transition tables (``prob_advancement``, ``years_to_next``,
    ``dilution``) by ``transition_key``. Missing transition entries mean no
    advancement, one year and no dilution. Defaults follow the US software
    presets.
    """

    fund_size: float = 100.0
    initial_stage: Stage = "Pre-Seed"
    management_fee_pct: float = 2.0
    management_fee_years: int = 10
    deployment_years: int = 3
    num_simulations: int = 1000
    stage_allocations: dict[str, float] = field(default_factory=_default_allocations)
    valuations: dict[str, Range] = field(default_factory=_default_valuations)
    check_sizes: dict[str, Range] = field(default_factory=_default_check_sizes)
    prob_advancement: dict[str, float] = field(default_factory=_default_advancement)
    years_to_next: dict[str, Range] = field(default_factory=_default_years_to_next)
    dilution: dict[str, Range] = field(default_factory=_default_dilution)
    exit_valuations: dict[str, Range] = field(default_factory=_default_exit_valuations)
    zero_probabilities: dict[str, float] = field(default_factory=_default_zero_probabilities)

    @property
    def annual_management_fee(self) -> float:
        return self.fund_size * self.management_fee_pct / 100.0

    @property
    def total_management_fees(self) -> float:
        return self.annual_management_fee * self.management_fee_years

    @property
    def deployable_capital(self) -> float:
        return self.fund_size - self.total_management_fees

    @property
    def entry_stages(self) -> tuple[Stage, ...]:
        """Stages receiving new money, from ``initial_stage`` to Series B."""
        return STAGES[stage_index(self.initial_stage): stage_index(LAST_ENTRY_STAGE) + 1]

    def validate(self) -> None:
        if not isinstance(self.num_simulations, (int, np.integer)) or self.num_simulations <= 0:
            raise MalformedInputError(
                f"num_simulations must be a positive integer, got {self.num_simulations!r}"
            )
        if self.fund_size <= 0:
            raise MalformedInputError(f"fund_size must be positive, got {self.fund_size}")
        if self.initial_stage not in STAGES or stage_index(self.initial_stage) > stage_index(
            LAST_ENTRY_STAGE
        ):
            raise MalformedInputError(
                f"initial_stage must be one of {STAGES[: stage_index(LAST_ENTRY_STAGE) + 1]}, "
                f"got {self.initial_stage!r}"
            )
        if self.deployment_years < 1:
            raise MalformedInputError("deployment_years must be at least 1")
        if self.management_fee_pct < 0 or self.management_fee_years < 0:
            raise MalformedInputError("Management fee terms must be non-negative")
        if self.deployable_capital <= 0:
            raise MalformedInputError(
                f"Management fees ({self.total_management_fees:.2f}) consume the whole fund"
            )

        allocated = 0.0
        for stage in self.entry_stages:
            pct = self.stage_allocations.get(stage, 0.0)
            _check_percent(pct, f"{stage} allocation")
            allocated += pct
            if pct > 0:
                _check_range(self.valuations.get(stage), f"{stage} valuation", positive=True)
                _check_range(self.check_sizes.get(stage), f"{stage} check size", positive=True)
        if allocated > 100.0 + 1e-9:
            raise MalformedInputError(f"Stage allocations sum to {allocated:.1f}% (> 100%)")

        for key, pct in self.prob_advancement.items():
            _check_percent(pct, f"{key} advancement probability")
        for key, value in self.dilution.items():
            _check_range(value, f"{key} dilution")
            _check_percent(value[1], f"{key} dilution")
        for key, value in self.years_to_next.items():
            _check_range(value, f"{key} years to next")
        for stage, pct in self.zero_probabilities.items():
            _check_percent(pct, f"{stage} zero-outcome probability")
        for stage, value in self.exit_valuations.items():
            _check_range(value, f"{stage} exit valuation")


def _check_percent(value: float, label: str) -> None:
    if not math.isfinite(value) or not 0 <= value <= 100:
        raise MalformedInputError(f"{label} must be within [0, 100], got {value}")


def _check_range(value: Optional[Range], label: str, positive: bool = False) -> None:
    if value is None:
        raise MalformedInputError(f"{label} range is missing")
    low, high = value
    if not (math.isfinite(low) and math.isfinite(high)) or high < low:
        raise MalformedInputError(f"{label} range is invalid: {value}")
    if low < 0 or (positive and low <= 0):
        raise MalformedInputError(
            f"{label} range must be {'positive' if positive else 'non-negative'}: {value}"
        )


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------

@dataclass
class ConstructionDeal:
    entry_stage: Stage
    entry_amount: float
    exit_stage: Stage
    exit_amount: float
    deployment_year: int
    holding_period: float


@dataclass
class ConstructionTrial:
    """One simulated fund: its deals and yearly net cash flows."""

    deals: list[ConstructionDeal]
    paid_in: float
    distributed: float
    moic: float
    irr: float  # percent
    cash_flows: npt.NDArray[np.float64] = field(repr=False)


def _walk_deal(
    params: ConstructionParams,
    stage: Stage,
    check: float,
    rng: np.random.Generator,
) -> ConstructionDeal:
    valuation = uniform_between(rng, *params.valuations[stage])
    equity = check / valuation
    current = stage
    holding = 0.0

    for nxt in STAGES[stage_index(stage) + 1:]:
        key = transition_key(current, nxt)
        if percent_draw(rng) > params.prob_advancement.get(key, 0.0):
            break
        equity *= 1.0 - uniform_between(rng, *params.dilution.get(key, (0.0, 0.0))) / 100.0
        holding += uniform_between(rng, *params.years_to_next.get(key, (1.0, 1.0)))
        current = nxt

    exit_amount = 0.0
    if percent_draw(rng) >= params.zero_probabilities.get(current, 0.0):
        exit_amount = equity * uniform_between(
            rng, *params.exit_valuations.get(current, (0.0, 0.0))
        )

    return ConstructionDeal(
        entry_stage=stage,
        entry_amount=check,
        exit_stage=current,
        exit_amount=exit_amount,
        deployment_year=int(rng.integers(params.deployment_years)),
        holding_period=holding,
    )


def simulate_construction(
    params: ConstructionParams,
    rng: np.random.Generator,
) -> ConstructionTrial:
    """
    Build and walk one fund.

    Each entry stage receives ``allocation% x deployable capital``, spent on
    deals until exhausted (the last check is capped at what remains). Exit
    proceeds land ``ceil(holding period)`` years after deployment;
    management fees are paid each year of the fee term.
    """
    deployable = params.deployable_capital
    deals: list[ConstructionDeal] = []

    for stage in params.entry_stages:
        allocation = params.stage_allocations.get(stage, 0.0) / 100.0 * deployable
        deployed = 0.0
        while allocation - deployed > 1e-9:
            check = min(uniform_between(rng, *params.check_sizes[stage]), allocation - deployed)
            deployed += check
            deals.append(_walk_deal(params, stage, check, rng))

    flows: dict[int, float] = {}
    for year in range(params.management_fee_years):
        flows[year] = flows.get(year, 0.0) - params.annual_management_fee
    for deal in deals:
        exit_year = deal.deployment_year + math.ceil(deal.holding_period)
        flows[deal.deployment_year] = flows.get(deal.deployment_year, 0.0) - deal.entry_amount
        flows[exit_year] = flows.get(exit_year, 0.0) + deal.exit_amount

    cash_flows = np.zeros(max(flows) + 1 if flows else 0)
    for year, amount in flows.items():
        cash_flows[year] += amount

    paid_in = sum(d.entry_amount for d in deals)
    distributed = sum(d.exit_amount for d in deals)
    return ConstructionTrial(
        deals=deals,
        paid_in=paid_in,
        distributed=distributed,
        moic=calc_moic(paid_in, distributed),
        irr=newton_irr(cash_flows) * 100.0,
        cash_flows=cash_flows,
    )


@dataclass
class ConstructionResults:
    trials: list[ConstructionTrial]
    avg_paid_in: float
    avg_distributed: float
    avg_moic: float
    avg_irr: float
    avg_investments: float
    total_management_fees: float

    @property
    def sample_deals(self) -> list[ConstructionDeal]:
        return self.trials[0].deals if self.trials else []

    def to_frame(self) -> pd.DataFrame:
        """One row per trial."""
        return pd.DataFrame(
            [
                {
                    "trial": t,
                    "paid_in": trial.paid_in,
                    "distributed": trial.distributed,
                    "moic": trial.moic,
                    "irr": trial.irr,
                    "num_deals": len(trial.deals),
                }
                for t, trial in enumerate(self.trials)
            ]
        )

    def deals_frame(self) -> pd.DataFrame:
        """One row per (trial, deal)."""
        rows = []
        for t, trial in enumerate(self.trials):
            for deal in trial.deals:
                rows.append({"trial": t, **vars(deal)})
        return pd.DataFrame(rows)

    def stage_performance(self) -> pd.DataFrame:
        """Capital, proceeds and multiple by entry stage across all trials."""
        df = self.deals_frame()
        if df.empty:
            return pd.DataFrame()
        n = len(self.trials)
        grouped = df.groupby("entry_stage", sort=False).agg(
            invested=("entry_amount", "sum"),
            returned=("exit_amount", "sum"),
            deals=("entry_amount", "size"),
            loss_rate=("exit_amount", lambda s: float((s == 0).mean())),
        )
        grouped["moic"] = np.where(
            grouped["invested"] > 0, grouped["returned"] / grouped["invested"], 0.0
        )
        grouped["deals_per_fund"] = grouped["deals"] / n
        return grouped.reset_index()

    def __repr__(self) -> str:
        return (
            f"ConstructionResults(trials={len(self.trials)}, avg_moic={self.avg_moic:.2f}x, "
            f"avg_irr={self.avg_irr:.1f}%, avg_investments={self.avg_investments:.1f})"
        )


def run_construction_simulation(
    params: ConstructionParams,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> ConstructionResults:
    """Run ``params.num_simulations`` independent funds and average them."""
    params.validate()
    rng = rng if rng is not None else make_rng(seed)
    trials = [simulate_construction(params, rng) for _ in range(params.num_simulations)]

    n = len(trials)
    results = ConstructionResults(
        trials=trials,
        avg_paid_in=sum(t.paid_in for t in trials) / n,
        avg_distributed=sum(t.distributed for t in trials) / n,
        avg_moic=sum(t.moic for t in trials) / n,
        avg_irr=sum(t.irr for t in trials) / n,
        avg_investments=sum(len(t.deals) for t in trials) / n,
        total_management_fees=params.total_management_fees,
    )
    logger.debug(
        "Constructed %d funds: avg %.1f deals, avg_moic=%.3f", n, results.avg_investments,
        results.avg_moic,
    )
    return results
