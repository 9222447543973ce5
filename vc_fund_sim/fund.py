"""
fund.py — Fund-level Monte Carlo aggregation over a portfolio.

Depends on: metrics.py, investment.py, walker.py
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import numpy.typing as npt
import pandas as pd
from scipy import stats

from vc_fund_sim.errors import MalformedInputError
from vc_fund_sim.investment import Investment, validate_portfolio
from vc_fund_sim.metrics import calc_fund_size, calc_moic, calc_total_fees, newton_irr
from vc_fund_sim.sampling import make_rng
from vc_fund_sim.walker import FollowOnStrategy, SimulationResult, simulate_investment

logger = logging.getLogger(__name__)


@dataclass
class SimulationConfig:
    """Fund-level simulation parameters. Amounts in $MM."""

    num_simulations: int = 100
    setup_fees: float = 2.0
    management_fees: float = 2.0  # per year
    management_fee_years: int = 10
    follow_on: FollowOnStrategy = field(default_factory=FollowOnStrategy)

    @property
    def total_fees(self) -> float:
        return calc_total_fees(self.setup_fees, self.management_fees, self.management_fee_years)

    def validate(self) -> None:
        if not isinstance(self.num_simulations, (int, np.integer)) or self.num_simulations <= 0:
            raise MalformedInputError(
                f"num_simulations must be a positive integer, got {self.num_simulations!r}"
            )
        if self.setup_fees < 0 or self.management_fees < 0 or self.management_fee_years < 0:
            raise MalformedInputError("Fees and fee duration must be non-negative")
        strategy = self.follow_on
        for label, value in (
            ("early_follow_on_rate", strategy.early_follow_on_rate),
            ("reserve_ratio", strategy.reserve_ratio),
            ("recycling_rate", strategy.recycling_rate),
        ):
            if not 0 <= value <= 100:
                raise MalformedInputError(f"{label} must be within [0, 100], got {value}")
        if strategy.early_follow_on_multiple < 0:
            raise MalformedInputError("early_follow_on_multiple must be non-negative")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class PortfolioResults:
    """
    All trials of a portfolio simulation plus fund-level statistics.

    ``simulations[t][i]`` is investment ``i`` in trial ``t``. ``avg_irr`` and
    ``success_rate`` are percentages. ``total_paid_in`` is the reporting fund
    size (checks + fees + follow-on reserve); fees and reserves are not
    deducted from simulated cash flows.
    """

    simulations: list[list[SimulationResult]]
    avg_moic: float
    avg_irr: float
    avg_distributed: float
    total_paid_in: float
    success_rate: float
    avg_total_invested: float
    total_fees: float = 0.0
    follow_on_reserve: float = 0.0
    total_recycled_capital: Optional[float] = None

    @property
    def num_simulations(self) -> int:
        return len(self.simulations)

    def trial_moics(self) -> npt.NDArray[np.float64]:
        """Fund multiple of each trial (distributed / invested)."""
        moics = np.zeros(len(self.simulations), dtype=np.float64)
        for t, trial in enumerate(self.simulations):
            invested = sum(r.entry_amount for r in trial)
            distributed = sum(r.exit_amount for r in trial)
            moics[t] = calc_moic(invested, distributed)
        return moics

    @property
    def moic_percentiles(self) -> dict[str, float]:
        moics = self.trial_moics()
        return {f"p{p}": float(np.percentile(moics, p)) for p in [10, 25, 50, 75, 90]}

    @property
    def loss_probability(self) -> float:
        """Fraction of trials returning less than invested capital."""
        return float(np.mean(self.trial_moics() < 1.0))

    @property
    def moic_standard_error(self) -> float:
        """Standard error of the per-trial multiple; 0 for a single trial."""
        moics = self.trial_moics()
        if len(moics) < 2:
            return 0.0
        return float(stats.sem(moics))

    def to_frame(self) -> pd.DataFrame:
        """One row per (trial, investment)."""
        rows = []
        for t, trial in enumerate(self.simulations):
            for result in trial:
                rows.append(
                    {
                        "trial": t,
                        "investment_id": result.investment_id,
                        "company": result.company_name,
                        "entry_amount": result.entry_amount,
                        "exit_amount": result.exit_amount,
                        "exit_stage": result.exit_stage,
                        "moic": result.moic,
                        "holding_period": result.holding_period,
                        "initial_ownership": result.initial_ownership,
                        "final_ownership": result.final_ownership,
                        "follow_on_count": len(result.follow_on_investments),
                        "follow_on_amount": sum(f.amount for f in result.follow_on_investments),
                    }
                )
        return pd.DataFrame(rows)

    def investment_summary(self) -> pd.DataFrame:
        """Per-investment averages across trials, with exit stage frequencies."""
        df = self.to_frame()
        if df.empty:
            return pd.DataFrame()

        grouped = df.groupby(["investment_id", "company"], sort=False)
        summary = grouped.agg(
            mean_entry=("entry_amount", "mean"),
            mean_exit=("exit_amount", "mean"),
            mean_moic=("moic", "mean"),
            mean_holding_period=("holding_period", "mean"),
            loss_rate=("exit_amount", lambda s: float((s == 0).mean())),
        ).reset_index()

        stage_mix = (
            df.groupby("investment_id")["exit_stage"]
            .agg(lambda s: dict(Counter(s)))
            .rename("exit_stages")
            .reset_index()
        )
        return summary.merge(stage_mix, on="investment_id")

    def summary(self) -> dict[str, float | int | None]:
        return {
            "num_simulations": self.num_simulations,
            "avg_moic": self.avg_moic,
            "avg_irr": self.avg_irr,
            "avg_distributed": self.avg_distributed,
            "avg_total_invested": self.avg_total_invested,
            "total_paid_in": self.total_paid_in,
            "total_fees": self.total_fees,
            "follow_on_reserve": self.follow_on_reserve,
            "success_rate": self.success_rate,
            "total_recycled_capital": self.total_recycled_capital,
        }

    def __repr__(self) -> str:
        return (
            f"PortfolioResults(trials={self.num_simulations}, "
            f"avg_moic={self.avg_moic:.2f}x, avg_irr={self.avg_irr:.1f}%, "
            f"success_rate={self.success_rate:.1f}%)"
        )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def summarize_trials(
    simulations: list[list[SimulationResult]],
    investments: Sequence[Investment],
    config: SimulationConfig,
) -> PortfolioResults:
    """
    Reduce trial results to fund statistics.

    Only sums and counts are taken, so trials can be produced in any order
    or in separate processes.
    """
    n = len(simulations)
    invested = sum(r.entry_amount for trial in simulations for r in trial)
    distributed = sum(r.exit_amount for trial in simulations for r in trial)
    avg_invested = invested / n if n else 0.0
    avg_distributed = distributed / n if n else 0.0

    if avg_invested <= 0:
        logger.warning("Average invested capital is zero; multiple reported as 0")
    avg_moic = calc_moic(avg_invested, avg_distributed)
    avg_irr = newton_irr([-avg_invested, avg_distributed]) * 100.0 if avg_invested > 0 else 0.0

    successes = sum(1 for trial in simulations if any(r.moic > 1 for r in trial))
    success_rate = successes / n * 100.0 if n else 0.0

    strategy = config.follow_on
    total_fees = config.total_fees
    fund_size, reserve = calc_fund_size(
        [inv.check_size for inv in investments], total_fees, strategy.reserve_ratio
    )
    recycled = (
        avg_distributed * strategy.recycling_rate / 100.0
        if strategy.enable_recycling
        else None
    )

    return PortfolioResults(
        simulations=simulations,
        avg_moic=avg_moic,
        avg_irr=avg_irr,
        avg_distributed=avg_distributed,
        total_paid_in=fund_size,
        success_rate=success_rate,
        avg_total_invested=avg_invested,
        total_fees=total_fees,
        follow_on_reserve=reserve,
        total_recycled_capital=recycled,
    )


def run_portfolio_simulation(
    investments: Sequence[Investment],
    config: SimulationConfig,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
) -> PortfolioResults:
    """
    Run ``config.num_simulations`` independent trials over the portfolio.

    Each trial walks every investment once, with the follow-on policy active
    when ``config.follow_on.enable_early_follow_ons`` is set. Inputs are
    validated before any draw is made.

    Parameters
    ----------
    investments:
        Portfolio companies.
    config:
        Fund-level parameters.
    rng:
        Random source. Takes precedence over ``seed``.
    seed:
        Seed for a fresh Generator when ``rng`` is not given.

    Returns
    -------
    PortfolioResults
    """
    portfolio = validate_portfolio(investments)
    config.validate()
    rng = rng if rng is not None else make_rng(seed)

    strategy = config.follow_on if config.follow_on.enable_early_follow_ons else None
    simulations = [
        [simulate_investment(inv, rng, strategy) for inv in portfolio]
        for _ in range(config.num_simulations)
    ]

    results = summarize_trials(simulations, portfolio, config)
    logger.debug(
        "Simulated %d trials over %d investments: avg_moic=%.3f avg_irr=%.2f%%",
        config.num_simulations,
        len(portfolio),
        results.avg_moic,
        results.avg_irr,
    )
    return results


class FundSimulator:
    """
    Portfolio Monte Carlo runner that caches its last result.

    Usage:
        simulator = FundSimulator(investments, SimulationConfig(num_simulations=1_000), seed=7)
        results = simulator.run()
        var_95 = simulator.compute_var(confidence=0.95)
    """

    def __init__(
        self,
        investments: Sequence[Investment],
        config: Optional[SimulationConfig] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.investments = list(investments)
        self.config = config or SimulationConfig()
        self.seed = seed
        self._rng = make_rng(seed)
        self._results: Optional[PortfolioResults] = None

    @property
    def results(self) -> Optional[PortfolioResults]:
        return self._results

    def run(self) -> PortfolioResults:
        """Run the simulation and cache results."""
        self._results = run_portfolio_simulation(self.investments, self.config, rng=self._rng)
        return self._results

    def compute_var(self, confidence: float = 0.95) -> float:
        """
        Value at Risk on the per-trial fund multiple.

        VaR = worst outcome at (1 - confidence) percentile.
        """
        if self._results is None:
            self.run()
        moics = self._results.trial_moics()
        return float(np.percentile(moics, (1 - confidence) * 100))

    def expected_shortfall(self, confidence: float = 0.95) -> float:
        """Average per-trial multiple in the worst (1 - confidence) fraction."""
        if self._results is None:
            self.run()
        moics = self._results.trial_moics()
        var_threshold = self.compute_var(confidence)
        tail = moics[moics <= var_threshold]
        return float(tail.mean()) if len(tail) > 0 else float(var_threshold)
