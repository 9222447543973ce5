"""
walker.py — Single-investment stage walk with an optional follow-on policy.

Depends on: stages.py, sampling.py, investment.py
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from vc_fund_sim.investment import Investment
from vc_fund_sim.sampling import percent_draw, uniform_between
from vc_fund_sim.stages import (
    FALLBACK_HOLDING_PERIODS,
    FOLLOW_ON_STEP_UPS,
    STAGES,
    Stage,
    stage_index,
)


@dataclass
class FollowOnStrategy:
    """Reserve deployment policy for companies that raise their next round."""

    enable_early_follow_ons: bool = False
    early_follow_on_rate: float = 20.0  # % of advancing companies that get a follow-on
    early_follow_on_multiple: float = 1.0  # follow-on size as multiple of check size
    reserve_ratio: float = 30.0  # % of initial checks reserved for follow-ons
    enable_recycling: bool = False
    recycling_rate: float = 0.0  # % of distributions recycled into new deals


@dataclass(frozen=True)
class FollowOnInjection:
    """One follow-on check written when the company entered ``stage``."""

    stage: Stage
    amount: float
    equity: float


@dataclass
class SimulationResult:
    """Outcome of one investment in one trial."""

    investment_id: str
    company_name: str
    entry_amount: float  # initial check plus follow-ons
    exit_amount: float
    exit_stage: Stage
    moic: float
    holding_period: float  # years
    initial_ownership: float  # percent
    final_ownership: float  # percent
    follow_on_investments: list[FollowOnInjection] = field(default_factory=list)

    @property
    def is_loss(self) -> bool:
        return self.exit_amount == 0.0


def simulate_investment(
    investment: Investment,
    rng: np.random.Generator,
    follow_on: Optional[FollowOnStrategy] = None,
) -> SimulationResult:
    """
    Walk one investment from its entry stage toward IPO once.

    At each boundary a percent draw at or below the next stage's progression
    probability advances the company: an optional follow-on is written,
    the stage's dilution is applied and the years to reach it are added.
    The first failed draw ends the walk. A company that never advanced gets
    a minimum tenure from ``FALLBACK_HOLDING_PERIODS``. The final stage's
    loss probability then decides between a write-off and an exit at a
    valuation drawn from its exit range.

    Parameters
    ----------
    investment:
        The portfolio company.
    rng:
        Random source.
    follow_on:
        Follow-on policy. None, or a policy with follow-ons disabled,
        walks without reserve deployment.

    Returns
    -------
    SimulationResult
    """
    follow_ons_enabled = follow_on is not None and follow_on.enable_early_follow_ons

    current: Stage = investment.entry_stage
    equity = investment.entry_ownership
    initial_ownership = equity * 100.0
    total_invested = investment.check_size
    holding_period = 0.0
    injections: list[FollowOnInjection] = []

    for nxt in STAGES[stage_index(current) + 1:]:
        params = investment.params(nxt)
        if percent_draw(rng) > params.progression:
            break

        if (
            follow_ons_enabled
            and nxt != "IPO"
            and percent_draw(rng) <= follow_on.early_follow_on_rate
        ):
            amount = investment.check_size * follow_on.early_follow_on_multiple
            step_up = uniform_between(rng, *FOLLOW_ON_STEP_UPS[nxt])
            new_equity = amount / (investment.entry_valuation * step_up)
            equity += new_equity
            total_invested += amount
            injections.append(FollowOnInjection(stage=nxt, amount=amount, equity=new_equity))

        equity *= 1.0 - params.dilution / 100.0
        current = nxt
        holding_period += uniform_between(rng, *params.years_range(nxt))

    if holding_period == 0.0:
        holding_period = uniform_between(rng, *FALLBACK_HOLDING_PERIODS[current])

    final = investment.params(current)
    exit_amount = 0.0
    if percent_draw(rng) >= final.loss_probability:
        exit_amount = equity * uniform_between(rng, *final.exit_valuation)

    return SimulationResult(
        investment_id=investment.investment_id,
        company_name=investment.name,
        entry_amount=total_invested,
        exit_amount=exit_amount,
        exit_stage=current,
        moic=exit_amount / total_invested if total_invested > 0 else 0.0,
        holding_period=holding_period,
        initial_ownership=initial_ownership,
        final_ownership=equity * 100.0,
        follow_on_investments=injections,
    )
