"""
forecast.py — Macro/sector scenario forecasting over a portfolio.

Each scenario rescales the portfolio's stage parameters through documented
macroeconomic and sector multipliers, then projects the fund year by year
with a lightweight vectorised Monte Carlo (not the stage walker). Results
are combined by scenario probability.

Depends on: investment.py, metrics.py, sampling.py, stages.py
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Literal, Optional, Sequence

import numpy as np
import numpy.typing as npt
import pandas as pd
from scipy import stats

from vc_fund_sim.errors import MalformedInputError
from vc_fund_sim.investment import Investment, validate_portfolio
from vc_fund_sim.metrics import annualized_return, calc_irr, calc_moic
from vc_fund_sim.presets import FIELD_LABELS
from vc_fund_sim.sampling import make_rng
from vc_fund_sim.stages import STAGES, Stage, stage_index

logger = logging.getLogger(__name__)

Cycle = Literal["expansion", "peak", "contraction", "trough"]
Sentiment = Literal["bullish", "neutral", "bearish"]
Liquidity = Literal["abundant", "moderate", "constrained"]
GrowthOutlook = Literal["accelerating", "stable", "decelerating"]
RiskLevel = Literal["low", "medium", "high"]
FundingAvailability = Literal["abundant", "moderate", "limited"]

PROGRESSION_CEILING = 95.0
LOSS_CEILING = 90.0

# Value per dollar invested by entry stage in the yearly projection
STAGE_VALUE_FACTORS: dict[Stage, float] = {
    "Pre-Seed": 2.5,
    "Seed": 2.0,
    "Series A": 1.5,
}
LATE_STAGE_VALUE_FACTOR = 1.2
EXIT_RATE_PER_YEAR = 0.15
NEW_INVESTMENT_YEARS = 5
NEW_DEALS_PER_YEAR = (2.0, 5.0)
RISK_FREE_RATE = 5.0  # percent


# ---------------------------------------------------------------------------
# Scenario definitions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MacroeconomicFactors:
    """Market backdrop. Rates and growth figures are percentages."""

    cycle: Cycle
    sentiment: Sentiment
    interest_rates: float
    inflation_rate: float
    gdp_growth_rate: float
    public_market_multiples: float
    liquidity_environment: Liquidity

    @classmethod
    def neutral(cls) -> "MacroeconomicFactors":
        """Backdrop whose multipliers are all exactly 1."""
        return cls(
            cycle="peak",
            sentiment="neutral",
            interest_rates=2.5,
            inflation_rate=2.0,
            gdp_growth_rate=2.0,
            public_market_multiples=1.0,
            liquidity_environment="moderate",
        )


@dataclass(frozen=True)
class SectorTrends:
    """Outlook for one startup field. ``expected_cagr`` is a percentage."""

    field: str
    growth_outlook: GrowthOutlook
    disruption_risk: RiskLevel
    regulatory_risk: RiskLevel
    competition_intensity: RiskLevel
    funding_availability: FundingAvailability
    expected_cagr: float

    @classmethod
    def neutral(cls, field: str) -> "SectorTrends":
        return cls(
            field=field,
            growth_outlook="stable",
            disruption_risk="medium",
            regulatory_risk="medium",
            competition_intensity="medium",
            funding_availability="moderate",
            expected_cagr=10.0,
        )


@dataclass(frozen=True)
class ForecastScenario:
    """
    A named, weighted market scenario.

    ``probability`` is a relative weight (percent by convention); weights
    are normalised across the scenarios of a forecast. ``confidence_level``
    (percent) sets the width of the yearly portfolio value band.
    """

    scenario_id: str
    name: str
    description: str
    probability: float
    macro: MacroeconomicFactors
    sector_trends: tuple[SectorTrends, ...] = ()
    time_horizon: int = 10
    confidence_level: float = 80.0

    def trend_for(self, sector: str) -> Optional[SectorTrends]:
        for trend in self.sector_trends:
            if trend.field == sector:
                return trend
        return None

    @classmethod
    def neutral(cls, time_horizon: int = 10, confidence_level: float = 80.0) -> "ForecastScenario":
        """Scenario that leaves every investment unadjusted."""
        return cls(
            scenario_id="baseline",
            name="Baseline",
            description="Unadjusted portfolio parameters",
            probability=100.0,
            macro=MacroeconomicFactors.neutral(),
            time_horizon=time_horizon,
            confidence_level=confidence_level,
        )


DEFAULT_MACRO_SCENARIOS: dict[str, MacroeconomicFactors] = {
    "expansion": MacroeconomicFactors(
        cycle="expansion",
        sentiment="bullish",
        interest_rates=2.5,
        inflation_rate=2.0,
        gdp_growth_rate=3.2,
        public_market_multiples=1.2,
        liquidity_environment="abundant",
    ),
    "peak": MacroeconomicFactors(
        cycle="peak",
        sentiment="neutral",
        interest_rates=4.0,
        inflation_rate=3.5,
        gdp_growth_rate=2.1,
        public_market_multiples=1.0,
        liquidity_environment="moderate",
    ),
    "contraction": MacroeconomicFactors(
        cycle="contraction",
        sentiment="bearish",
        interest_rates=1.5,
        inflation_rate=1.2,
        gdp_growth_rate=-0.8,
        public_market_multiples=0.7,
        liquidity_environment="constrained",
    ),
}

DEFAULT_SECTOR_TRENDS: dict[str, SectorTrends] = {
    "software": SectorTrends("software", "stable", "medium", "low", "high", "moderate", 8.5),
    "deeptech": SectorTrends("deeptech", "accelerating", "high", "medium", "medium", "moderate", 12.3),
    "biotech": SectorTrends("biotech", "accelerating", "high", "high", "medium", "limited", 15.7),
    "fintech": SectorTrends("fintech", "stable", "medium", "high", "high", "moderate", 10.2),
    "ecommerce": SectorTrends("ecommerce", "decelerating", "medium", "medium", "high", "limited", 6.8),
    "healthcare": SectorTrends("healthcare", "accelerating", "medium", "high", "medium", "moderate", 11.4),
    "energy": SectorTrends("energy", "accelerating", "high", "high", "medium", "abundant", 14.2),
    "foodtech": SectorTrends("foodtech", "stable", "medium", "medium", "medium", "moderate", 9.1),
}


def default_scenarios() -> list[ForecastScenario]:
    """Optimistic Growth (25%), Base Case (50%) and Downturn Scenario (25%)."""
    trends = tuple(DEFAULT_SECTOR_TRENDS.values())
    return [
        ForecastScenario(
            scenario_id="optimistic",
            name="Optimistic Growth",
            description="Strong economic expansion with abundant capital and favorable conditions",
            probability=25.0,
            macro=DEFAULT_MACRO_SCENARIOS["expansion"],
            sector_trends=tuple(
                replace(
                    t,
                    growth_outlook="accelerating",
                    funding_availability="abundant",
                    expected_cagr=t.expected_cagr * 1.3,
                )
                for t in trends
            ),
            time_horizon=10,
            confidence_level=75.0,
        ),
        ForecastScenario(
            scenario_id="realistic",
            name="Base Case",
            description="Normal market conditions with moderate growth and standard assumptions",
            probability=50.0,
            macro=DEFAULT_MACRO_SCENARIOS["peak"],
            sector_trends=trends,
            time_horizon=10,
            confidence_level=85.0,
        ),
        ForecastScenario(
            scenario_id="pessimistic",
            name="Downturn Scenario",
            description="Economic contraction with limited funding and challenging conditions",
            probability=25.0,
            macro=DEFAULT_MACRO_SCENARIOS["contraction"],
            sector_trends=tuple(
                replace(
                    t,
                    growth_outlook="decelerating",
                    funding_availability="limited",
                    expected_cagr=t.expected_cagr * 0.6,
                )
                for t in trends
            ),
            time_horizon=10,
            confidence_level=70.0,
        ),
    ]


# ---------------------------------------------------------------------------
# Multipliers and parameter adjustment
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AdjustmentMultipliers:
    """Scale factors for exit valuations, progression and loss probabilities."""

    valuation: float = 1.0
    progression: float = 1.0
    loss: float = 1.0

    @classmethod
    def neutral(cls) -> "AdjustmentMultipliers":
        return cls()

    @property
    def is_neutral(self) -> bool:
        return self.valuation == 1.0 and self.progression == 1.0 and self.loss == 1.0


_LIQUIDITY = {"abundant": 1.2, "moderate": 1.0, "constrained": 0.7}
_SENTIMENT = {"bullish": 1.15, "neutral": 1.0, "bearish": 0.85}
_CYCLE_LOSS = {"expansion": 0.8, "peak": 1.0, "contraction": 1.4, "trough": 1.2}
_GROWTH = {"accelerating": 1.25, "stable": 1.0, "decelerating": 0.8}
_COMPETITION = {"low": 1.1, "medium": 1.0, "high": 0.9}
_FUNDING = {"abundant": 1.15, "moderate": 1.0, "limited": 0.85}


def macro_multipliers(macro: MacroeconomicFactors) -> AdjustmentMultipliers:
    """
    Map macro factors to parameter multipliers.

    Valuations scale with ``max(0.5, 1 - (rate - 2.5) * 0.1)`` times the
    liquidity factor times public market multiples; sentiment scales
    progression; the cycle scales loss probabilities.
    """
    interest = max(0.5, 1.0 - (macro.interest_rates - 2.5) * 0.1)
    return AdjustmentMultipliers(
        valuation=interest * _LIQUIDITY[macro.liquidity_environment] * macro.public_market_multiples,
        progression=_SENTIMENT[macro.sentiment],
        loss=_CYCLE_LOSS[macro.cycle],
    )


def sector_multipliers(trend: SectorTrends) -> AdjustmentMultipliers:
    """
    Map sector trends to parameter multipliers.

    Valuations scale with growth outlook and ``1 + (cagr - 10) * 0.05``;
    competition and funding scale progression; high regulatory (x1.2) and
    disruption (x1.15) risk raise loss probabilities.
    """
    cagr = max(0.0, 1.0 + (trend.expected_cagr - 10.0) * 0.05)
    risk = (1.2 if trend.regulatory_risk == "high" else 1.0) * (
        1.15 if trend.disruption_risk == "high" else 1.0
    )
    return AdjustmentMultipliers(
        valuation=_GROWTH[trend.growth_outlook] * cagr,
        progression=_COMPETITION[trend.competition_intensity] * _FUNDING[trend.funding_availability],
        loss=risk,
    )


def _apply_multipliers(investment: Investment, mult: AdjustmentMultipliers) -> Investment:
    if mult.is_neutral:
        return investment

    # Only groups a multiplier moved are clamped; unmoved groups keep their
    # inputs exactly, including values above the 95/90 ceilings.
    table = {}
    for stage in STAGES:
        p = investment.params(stage)
        changes: dict[str, object] = {}
        if mult.valuation != 1.0:
            low, high = p.exit_valuation
            changes["exit_valuation"] = (low * mult.valuation, high * mult.valuation)
        if mult.progression != 1.0:
            changes["progression"] = min(PROGRESSION_CEILING, max(0.0, p.progression * mult.progression))
        if mult.loss != 1.0:
            changes["loss_probability"] = min(LOSS_CEILING, max(0.0, p.loss_probability * mult.loss))
        table[stage] = p.with_changes(**changes) if changes else p
    return investment.with_stages(table)


def apply_macro_adjustments(investment: Investment, macro: MacroeconomicFactors) -> Investment:
    """Copy of ``investment`` rescaled by ``macro_multipliers``."""
    return _apply_multipliers(investment, macro_multipliers(macro))


def apply_sector_adjustments(investment: Investment, trend: SectorTrends) -> Investment:
    """Copy of ``investment`` rescaled by ``sector_multipliers``."""
    return _apply_multipliers(investment, sector_multipliers(trend))


def adjust_investment(investment: Investment, scenario: ForecastScenario) -> Investment:
    """Macro adjustment, then the sector adjustment for the company's field if any."""
    adjusted = apply_macro_adjustments(investment, scenario.macro)
    trend = scenario.trend_for(investment.sector)
    if trend is not None:
        adjusted = apply_sector_adjustments(adjusted, trend)
    return adjusted


def _ratio(new: float, old: float) -> float:
    return new / old if old > 0 else 1.0


def adjustment_ratios(original: Investment, adjusted: Investment) -> tuple[float, float, float]:
    """
    (valuation, progression, survival) ratios of adjusted to original inputs.

    Taken over the stages from entry onward; each ratio is exactly 1 when
    the adjusted parameters equal the originals.
    """
    stages = STAGES[stage_index(original.entry_stage):]
    later = stages[1:]

    valuation = _ratio(
        sum(sum(adjusted.params(s).exit_valuation) for s in stages),
        sum(sum(original.params(s).exit_valuation) for s in stages),
    )
    progression = _ratio(
        sum(adjusted.params(s).progression for s in later),
        sum(original.params(s).progression for s in later),
    )
    survival = _ratio(
        sum(100.0 - adjusted.params(s).loss_probability for s in stages),
        sum(100.0 - original.params(s).loss_probability for s in stages),
    )
    return valuation, progression, survival


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class YearlyForecast:
    """Cross-simulation averages for one forecast year. Amounts in $MM."""

    year: int
    portfolio_value: float
    portfolio_value_low: float
    portfolio_value_high: float
    new_investments: float  # deals
    exit_value: float
    management_fees: float
    net_cash_flow: float
    moic: float
    irr: float  # percent
    active_investments: int
    scenario_probability: float


@dataclass
class SectorPerformance:
    field: str
    moic: float
    irr: float  # percent
    exit_count: float  # mean exits per simulation


@dataclass
class RiskMetrics:
    """Dispersion of the simulated final multiples."""

    volatility: float  # std of final multiples
    max_drawdown: float  # mean peak-to-trough fraction of total value
    sharpe_ratio: float
    probability_of_loss: float  # percent
    value_at_risk: float  # 5th percentile final multiple


@dataclass
class ForecastResults:
    """Projection of one scenario."""

    scenario_id: str
    scenario_name: str
    time_horizon: int
    yearly_forecasts: list[YearlyForecast]
    final_moic: float
    final_irr: float  # percent
    total_distributed: float
    total_paid_in: float
    peak_portfolio_value: float
    cash_flow_irr: float  # percent
    sector_performance: list[SectorPerformance]
    risk_metrics: RiskMetrics
    simulated_moics: npt.NDArray[np.float64] = field(repr=False, default_factory=lambda: np.zeros(0))

    def to_frame(self) -> pd.DataFrame:
        """One row per forecast year."""
        return pd.DataFrame([vars(y) for y in self.yearly_forecasts])

    def __repr__(self) -> str:
        return (
            f"ForecastResults({self.scenario_name!r}, final_moic={self.final_moic:.2f}x, "
            f"final_irr={self.final_irr:.1f}%)"
        )


@dataclass
class SensitivityFactor:
    factor: str
    low_moic: float
    high_moic: float
    impact: float  # swing as percent of the reference multiple
    risk_level: RiskLevel


# ---------------------------------------------------------------------------
# Yearly projection
# ---------------------------------------------------------------------------

def project_scenario(
    investments: Sequence[Investment],
    scenario: ForecastScenario,
    num_simulations: int = 1000,
    management_fee_rate: float = 2.0,
    new_investment_size: float = 2.0,
    rng: Optional[np.random.Generator] = None,
) -> ForecastResults:
    """
    Project a scenario year by year.

    Each company starts active. Every year an active company exits with
    probability ``min(1, 0.15 * year * progression_ratio)`` for
    ``check * stage_factor * (1 + 2u)`` and is otherwise carried at
    ``check * stage_factor * time_decay * U(0.5, 1.5)``, both scaled by
    its valuation and survival ratios. New deals (2-5 a year, each
    ``new_investment_size``) are written in the first five years.

    Parameters
    ----------
    investments:
        Baseline portfolio.
    scenario:
        Scenario to apply.
    num_simulations:
        Monte Carlo paths per year.
    management_fee_rate:
        Annual fee as percent of capital paid in to date.
    new_investment_size:
        Capital per new deal ($MM).
    rng:
        Random source.

    Returns
    -------
    ForecastResults
    """
    portfolio = validate_portfolio(investments)
    rng = rng if rng is not None else make_rng()
    n_sims, n_inv = num_simulations, len(portfolio)
    horizon = scenario.time_horizon

    adjusted = [adjust_investment(inv, scenario) for inv in portfolio]
    ratios = np.array([adjustment_ratios(o, a) for o, a in zip(portfolio, adjusted)])
    valuation_ratio, progression_ratio, survival_ratio = ratios.T

    checks = np.array([inv.check_size for inv in portfolio], dtype=np.float64)
    stage_factors = np.array(
        [STAGE_VALUE_FACTORS.get(inv.entry_stage, LATE_STAGE_VALUE_FACTOR) for inv in portfolio]
    )
    base_value = checks * stage_factors * valuation_ratio * survival_ratio
    z = float(stats.norm.ppf(0.5 + scenario.confidence_level / 200.0))

    active = np.ones((n_sims, n_inv), dtype=bool)
    distributed = np.zeros((n_sims, n_inv))
    new_capital = np.zeros(n_sims)
    total_value = np.zeros((n_sims, horizon))

    yearly: list[YearlyForecast] = []
    cash_flows = [-float(checks.sum())]
    cumulative_distributed = 0.0

    for year in range(1, horizon + 1):
        time_decay = max(0.1, 1.0 - (year - 1) * 0.1)
        random_factor = rng.uniform(0.5, 1.5, size=(n_sims, n_inv))
        exit_draw = rng.random((n_sims, n_inv))
        exit_size = rng.random((n_sims, n_inv))
        if year <= NEW_INVESTMENT_YEARS:
            deals = rng.uniform(*NEW_DEALS_PER_YEAR, size=n_sims)
        else:
            deals = np.zeros(n_sims)

        exit_prob = np.minimum(1.0, EXIT_RATE_PER_YEAR * year * progression_ratio)
        exits = active & (exit_draw < exit_prob)
        exit_values = np.where(exits, base_value * (1.0 + 2.0 * exit_size), 0.0)
        distributed += exit_values
        active &= ~exits

        nav = np.where(active, base_value * time_decay * random_factor, 0.0).sum(axis=1)
        new_capital += deals * new_investment_size
        total_value[:, year - 1] = nav + distributed.sum(axis=1)

        avg_nav = float(nav.mean())
        spread = z * float(nav.std())
        avg_exit = float(exit_values.sum(axis=1).mean())
        avg_deals = float(deals.mean())
        paid_in = float(checks.sum() + new_capital.mean())
        fees = paid_in * management_fee_rate / 100.0
        net = avg_exit - avg_deals * new_investment_size - fees
        cumulative_distributed += avg_exit
        cash_flows.append(net)

        moic = calc_moic(paid_in, cumulative_distributed)
        yearly.append(
            YearlyForecast(
                year=year,
                portfolio_value=avg_nav,
                portfolio_value_low=max(0.0, avg_nav - spread),
                portfolio_value_high=avg_nav + spread,
                new_investments=avg_deals,
                exit_value=avg_exit,
                management_fees=fees,
                net_cash_flow=net,
                moic=moic,
                irr=annualized_return(moic, year) * 100.0,
                active_investments=int(round(float(active.sum(axis=1).mean()))),
                scenario_probability=scenario.probability,
            )
        )

    total_paid_in = float(checks.sum() + new_capital.mean())
    final_moic = calc_moic(total_paid_in, cumulative_distributed)

    sim_paid_in = checks.sum() + new_capital
    sim_moics = np.divide(
        distributed.sum(axis=1),
        sim_paid_in,
        out=np.zeros(n_sims),
        where=sim_paid_in > 0,
    )

    cf_irr = calc_irr(np.array(cash_flows))
    if not np.isfinite(cf_irr):
        logger.debug("Cash-flow IRR undefined for %s; reporting 0", scenario.name)
        cf_irr = 0.0

    return ForecastResults(
        scenario_id=scenario.scenario_id,
        scenario_name=scenario.name,
        time_horizon=horizon,
        yearly_forecasts=yearly,
        final_moic=final_moic,
        final_irr=annualized_return(final_moic, horizon) * 100.0,
        total_distributed=cumulative_distributed,
        total_paid_in=total_paid_in,
        peak_portfolio_value=max(y.portfolio_value for y in yearly) if yearly else 0.0,
        cash_flow_irr=cf_irr * 100.0,
        sector_performance=_sector_performance(portfolio, checks, distributed, active, horizon),
        risk_metrics=_risk_metrics(sim_moics, total_value, horizon),
        simulated_moics=sim_moics,
    )


def _sector_performance(
    portfolio: list[Investment],
    checks: npt.NDArray[np.float64],
    distributed: npt.NDArray[np.float64],
    active: npt.NDArray[np.bool_],
    horizon: int,
) -> list[SectorPerformance]:
    sectors = np.array([inv.sector for inv in portfolio])
    rows = []
    for sector in dict.fromkeys(sectors.tolist()):
        cols = sectors == sector
        moic = calc_moic(float(checks[cols].sum()), float(distributed[:, cols].sum(axis=1).mean()))
        rows.append(
            SectorPerformance(
                field=sector,
                moic=moic,
                irr=annualized_return(moic, horizon) * 100.0,
                exit_count=float((~active[:, cols]).sum(axis=1).mean()),
            )
        )
    return rows


def _risk_metrics(
    sim_moics: npt.NDArray[np.float64],
    total_value: npt.NDArray[np.float64],
    horizon: int,
) -> RiskMetrics:
    sim_irrs = np.where(
        sim_moics > 0,
        np.power(np.maximum(sim_moics, 1e-12), 1.0 / horizon) - 1.0,
        -1.0,
    ) * 100.0
    irr_std = float(sim_irrs.std())
    sharpe = (float(sim_irrs.mean()) - RISK_FREE_RATE) / irr_std if irr_std > 0 else 0.0

    peaks = np.maximum.accumulate(total_value, axis=1)
    drawdowns = np.divide(peaks - total_value, peaks, out=np.zeros_like(peaks), where=peaks > 0)

    return RiskMetrics(
        volatility=float(sim_moics.std()),
        max_drawdown=float(drawdowns.max(axis=1).mean()) if total_value.size else 0.0,
        sharpe_ratio=sharpe,
        probability_of_loss=float(np.mean(sim_moics < 1.0) * 100.0),
        value_at_risk=float(np.percentile(sim_moics, 5)),
    )


# ---------------------------------------------------------------------------
# Sensitivity perturbations
# ---------------------------------------------------------------------------

ScenarioTransform = Callable[[ForecastScenario], ForecastScenario]


def _with_macro(**changes: object) -> ScenarioTransform:
    def transform(scenario: ForecastScenario) -> ForecastScenario:
        return replace(scenario, macro=replace(scenario.macro, **changes))
    return transform


def _shift_rates(delta: float) -> ScenarioTransform:
    def transform(scenario: ForecastScenario) -> ForecastScenario:
        rates = max(0.0, scenario.macro.interest_rates + delta)
        return replace(scenario, macro=replace(scenario.macro, interest_rates=rates))
    return transform


def _with_trends(sectors: Sequence[str], **changes: object) -> ScenarioTransform:
    def transform(scenario: ForecastScenario) -> ForecastScenario:
        trends = list(scenario.sector_trends)
        covered = {t.field for t in trends}
        trends += [SectorTrends.neutral(s) for s in sectors if s not in covered]
        return replace(scenario, sector_trends=tuple(replace(t, **changes) for t in trends))
    return transform


def sensitivity_perturbations(
    sectors: Sequence[str],
) -> list[tuple[str, ScenarioTransform, ScenarioTransform]]:
    """(factor, adverse, favourable) transforms used for the tornado."""
    return [
        ("Interest Rates", _shift_rates(1.5), _shift_rates(-1.5)),
        ("Market Sentiment", _with_macro(sentiment="bearish"), _with_macro(sentiment="bullish")),
        ("Economic Cycle", _with_macro(cycle="contraction"), _with_macro(cycle="expansion")),
        (
            "Sector Growth",
            _with_trends(sectors, growth_outlook="decelerating"),
            _with_trends(sectors, growth_outlook="accelerating"),
        ),
        (
            "Funding Environment",
            _with_trends(sectors, funding_availability="limited"),
            _with_trends(sectors, funding_availability="abundant"),
        ),
        (
            "Regulatory Changes",
            _with_trends(sectors, regulatory_risk="high"),
            _with_trends(sectors, regulatory_risk="low"),
        ),
    ]


def _risk_level(impact: float) -> RiskLevel:
    if impact >= 20.0:
        return "high"
    if impact >= 10.0:
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

@dataclass
class ForecastComparison:
    """
    Probability-weighted view across scenarios.

    ``baseline`` is the projection of the unadjusted portfolio and
    ``macro_only_moic`` the expected multiple with sector trends removed;
    together they decompose ``expected_moic`` in ``waterfall_data``.
    """

    baseline: ForecastResults
    forecast_results: list[ForecastResults]
    scenarios: list[ForecastScenario]
    expected_moic: float
    expected_irr: float
    probability_weighted_value: float
    scenario_range: dict[str, ForecastResults]
    sensitivity_factors: list[SensitivityFactor]
    macro_only_moic: float

    def to_frame(self) -> pd.DataFrame:
        """One row per scenario."""
        rows = []
        for scenario, result in zip(self.scenarios, self.forecast_results):
            rows.append(
                {
                    "scenario_id": scenario.scenario_id,
                    "scenario": scenario.name,
                    "probability": scenario.probability,
                    "final_moic": result.final_moic,
                    "final_irr": result.final_irr,
                    "cash_flow_irr": result.cash_flow_irr,
                    "total_distributed": result.total_distributed,
                    "total_paid_in": result.total_paid_in,
                    "peak_portfolio_value": result.peak_portfolio_value,
                    "probability_of_loss": result.risk_metrics.probability_of_loss,
                    "value_at_risk": result.risk_metrics.value_at_risk,
                }
            )
        return pd.DataFrame(rows)

    def waterfall_data(self) -> pd.DataFrame:
        """Baseline multiple, macro and sector contributions, expected multiple."""
        base = self.baseline.final_moic
        macro = self.macro_only_moic - base
        sector = self.expected_moic - self.macro_only_moic
        return pd.DataFrame(
            [
                {"category": "Baseline MOIC", "value": base, "cumulative": base, "type": "total"},
                {
                    "category": "Macro Impact",
                    "value": macro,
                    "cumulative": base + macro,
                    "type": "positive" if macro >= 0 else "negative",
                },
                {
                    "category": "Sector Trends",
                    "value": sector,
                    "cumulative": base + macro + sector,
                    "type": "positive" if sector >= 0 else "negative",
                },
                {
                    "category": "Expected MOIC",
                    "value": self.expected_moic,
                    "cumulative": self.expected_moic,
                    "type": "total",
                },
            ]
        )

    def heat_map_data(self) -> pd.DataFrame:
        """Sector multiple per scenario, with the scenario's confidence level."""
        rows = []
        for scenario, result in zip(self.scenarios, self.forecast_results):
            for sector in result.sector_performance:
                rows.append(
                    {
                        "scenario": result.scenario_name,
                        "sector": FIELD_LABELS.get(sector.field, sector.field),
                        "year": result.time_horizon,
                        "performance": sector.moic,
                        "confidence": scenario.confidence_level / 100.0,
                    }
                )
        return pd.DataFrame(rows)

    def tornado_data(self) -> pd.DataFrame:
        """
        Percent change of the reference multiple under each factor's
        adverse and favourable setting, largest swing first.
        """
        base = self.scenario_range["realistic"].final_moic
        rows = []
        for f in self.sensitivity_factors:
            rows.append(
                {
                    "factor": f.factor,
                    "low_impact": (f.low_moic - base) / base * 100.0 if base > 0 else 0.0,
                    "high_impact": (f.high_moic - base) / base * 100.0 if base > 0 else 0.0,
                    "baseline_value": base,
                    "risk_level": f.risk_level,
                }
            )
        df = pd.DataFrame(rows)
        if df.empty:
            return df
        df["swing"] = (df["high_impact"] - df["low_impact"]).abs()
        return df.sort_values("swing", ascending=False).reset_index(drop=True)


@dataclass
class ForecastParameters:
    """Inputs to a scenario forecast. Empty ``scenarios`` uses the defaults."""

    baseline_portfolio: list[Investment]
    scenarios: list[ForecastScenario] = field(default_factory=list)
    num_simulations: int = 1000
    management_fee_rate: float = 2.0  # percent of paid-in per year
    new_investment_size: float = 2.0  # $MM per new deal
    include_sensitivity: bool = True

    def validate(self) -> None:
        validate_portfolio(self.baseline_portfolio)
        if not isinstance(self.num_simulations, (int, np.integer)) or self.num_simulations <= 0:
            raise MalformedInputError(
                f"num_simulations must be a positive integer, got {self.num_simulations!r}"
            )
        if self.management_fee_rate < 0 or self.new_investment_size < 0:
            raise MalformedInputError("Fee rate and new investment size must be non-negative")
        for scenario in self.scenarios:
            if scenario.probability < 0:
                raise MalformedInputError(f"{scenario.name}: probability must be non-negative")
            if scenario.time_horizon < 1:
                raise MalformedInputError(f"{scenario.name}: time horizon must be at least 1 year")
            if not 0 < scenario.confidence_level < 100:
                raise MalformedInputError(
                    f"{scenario.name}: confidence level must be within (0, 100)"
                )
        if self.scenarios and sum(s.probability for s in self.scenarios) <= 0:
            raise MalformedInputError("Scenario probabilities must not all be zero")


class ScenarioForecaster:
    """
    Runs every scenario of a forecast and weights the results.

    All projections share one seed sequence, so scenario differences come
    from the factors alone rather than from sampling noise.

    Usage:
        forecaster = ScenarioForecaster(ForecastParameters(investments), seed=3)
        comparison = forecaster.run()
        comparison.to_frame()
    """

    def __init__(self, parameters: ForecastParameters, seed: Optional[int] = None) -> None:
        parameters.validate()
        self.parameters = parameters
        self.scenarios = list(parameters.scenarios) or default_scenarios()
        self._seed_seq = np.random.SeedSequence(seed)

    def project(self, scenario: ForecastScenario) -> ForecastResults:
        p = self.parameters
        return project_scenario(
            p.baseline_portfolio,
            scenario,
            num_simulations=p.num_simulations,
            management_fee_rate=p.management_fee_rate,
            new_investment_size=p.new_investment_size,
            rng=make_rng(self._seed_seq),
        )

    def _weights(self) -> npt.NDArray[np.float64]:
        probs = np.array([s.probability for s in self.scenarios], dtype=np.float64)
        return probs / probs.sum()

    def sensitivity_factors(self, reference: ForecastScenario) -> list[SensitivityFactor]:
        """Swing of the reference multiple under each factor's low/high setting."""
        sectors = list(dict.fromkeys(inv.sector for inv in self.parameters.baseline_portfolio))
        base = self.project(reference).final_moic
        factors = []
        for name, adverse, favourable in sensitivity_perturbations(sectors):
            low = self.project(adverse(reference)).final_moic
            high = self.project(favourable(reference)).final_moic
            impact = abs(high - low) / base * 100.0 if base > 0 else 0.0
            factors.append(
                SensitivityFactor(
                    factor=name,
                    low_moic=low,
                    high_moic=high,
                    impact=impact,
                    risk_level=_risk_level(impact),
                )
            )
        return sorted(factors, key=lambda f: f.impact, reverse=True)

    def run(self) -> ForecastComparison:
        """Project every scenario and combine by probability."""
        weights = self._weights()
        horizon = max(s.time_horizon for s in self.scenarios)

        baseline = self.project(ForecastScenario.neutral(time_horizon=horizon))
        results = []
        for scenario in self.scenarios:
            result = self.project(scenario)
            logger.debug(
                "Scenario %s: final_moic=%.3f final_irr=%.2f%%",
                scenario.name, result.final_moic, result.final_irr,
            )
            results.append(result)
        macro_only = [self.project(replace(s, sector_trends=())) for s in self.scenarios]

        expected_moic = float(sum(w * r.final_moic for w, r in zip(weights, results)))
        expected_irr = float(sum(w * r.final_irr for w, r in zip(weights, results)))
        weighted_value = float(sum(w * r.total_distributed for w, r in zip(weights, results)))

        order = sorted(range(len(results)), key=lambda i: results[i].final_moic, reverse=True)
        scenario_range = {
            "optimistic": results[order[0]],
            "realistic": results[order[len(order) // 2]],
            "pessimistic": results[order[-1]],
        }

        factors: list[SensitivityFactor] = []
        if self.parameters.include_sensitivity:
            factors = self.sensitivity_factors(self.scenarios[order[len(order) // 2]])

        logger.info(
            "Forecast complete: %d scenarios, expected_moic=%.2fx expected_irr=%.1f%%",
            len(self.scenarios), expected_moic, expected_irr,
        )
        return ForecastComparison(
            baseline=baseline,
            forecast_results=results,
            scenarios=self.scenarios,
            expected_moic=expected_moic,
            expected_irr=expected_irr,
            probability_weighted_value=weighted_value,
            scenario_range=scenario_range,
            sensitivity_factors=factors,
            macro_only_moic=float(sum(w * r.final_moic for w, r in zip(weights, macro_only))),
        )


def run_forecast(parameters: ForecastParameters, seed: Optional[int] = None) -> ForecastComparison:
    """Convenience wrapper around ``ScenarioForecaster``."""
    return ScenarioForecaster(parameters, seed=seed).run()
