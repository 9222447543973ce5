"""Tests for vc_fund_sim.forecast — macro/sector scenario forecasting."""
from __future__ import annotations

from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from vc_fund_sim.errors import MalformedInputError
from vc_fund_sim.forecast import (
    DEFAULT_MACRO_SCENARIOS,
    DEFAULT_SECTOR_TRENDS,
    ForecastComparison,
    ForecastParameters,
    ForecastScenario,
    MacroeconomicFactors,
    ScenarioForecaster,
    SectorTrends,
    adjust_investment,
    adjustment_ratios,
    apply_macro_adjustments,
    apply_sector_adjustments,
    default_scenarios,
    macro_multipliers,
    project_scenario,
    sector_multipliers,
)
from vc_fund_sim.investment import Investment
from vc_fund_sim.sampling import make_rng
from vc_fund_sim.stages import STAGES, StageParameters


def _short(scenario: ForecastScenario, years: int = 6) -> ForecastScenario:
    return replace(scenario, time_horizon=years)


@pytest.fixture(scope="module")
def comparison(sample_investments) -> ForecastComparison:
    params = ForecastParameters(
        baseline_portfolio=sample_investments,
        scenarios=[_short(s) for s in default_scenarios()],
        num_simulations=100,
    )
    return ScenarioForecaster(params, seed=21).run()


@pytest.fixture
def high_odds() -> Investment:
    stages = {
        stage: StageParameters(
            progression=90.0,
            dilution=10.0,
            loss_probability=70.0,
            exit_valuation=(10.0, 20.0),
        )
        for stage in STAGES
    }
    stages["Series A"] = replace(stages["Series A"], progression=100.0, loss_probability=0.0)
    return Investment("HighOdds", "Seed", 10.0, 1.0, stages=stages, sector="software")


# ---------------------------------------------------------------------------
# Scenario definitions
# ---------------------------------------------------------------------------

class TestDefaults:
    def test_default_scenarios(self):
        scenarios = default_scenarios()
        assert [s.name for s in scenarios] == ["Optimistic Growth", "Base Case", "Downturn Scenario"]
        assert [s.probability for s in scenarios] == [25.0, 50.0, 25.0]
        assert all(s.time_horizon == 10 for s in scenarios)

    def test_optimistic_trends_boosted(self):
        optimistic = default_scenarios()[0]
        trend = optimistic.trend_for("software")
        assert trend.growth_outlook == "accelerating"
        assert trend.funding_availability == "abundant"
        assert trend.expected_cagr == pytest.approx(8.5 * 1.3)

    def test_downturn_trends_cut(self):
        downturn = default_scenarios()[2]
        trend = downturn.trend_for("biotech")
        assert trend.growth_outlook == "decelerating"
        assert trend.expected_cagr == pytest.approx(15.7 * 0.6)
        assert downturn.macro.cycle == "contraction"

    def test_sector_table_covers_all_fields(self):
        assert len(DEFAULT_SECTOR_TRENDS) == 8

    def test_missing_trend(self):
        assert ForecastScenario.neutral().trend_for("software") is None


# ---------------------------------------------------------------------------
# Multipliers
# ---------------------------------------------------------------------------

class TestMultipliers:
    def test_neutral_factors_are_exactly_one(self):
        assert macro_multipliers(MacroeconomicFactors.neutral()).is_neutral
        assert sector_multipliers(SectorTrends.neutral("software")).is_neutral

    def test_peak_macro(self):
        mult = macro_multipliers(DEFAULT_MACRO_SCENARIOS["peak"])
        assert mult.valuation == pytest.approx(0.85)
        assert mult.progression == 1.0
        assert mult.loss == 1.0

    def test_expansion_macro(self):
        mult = macro_multipliers(DEFAULT_MACRO_SCENARIOS["expansion"])
        assert mult.valuation == pytest.approx(1.0 * 1.2 * 1.2)
        assert mult.progression == pytest.approx(1.15)
        assert mult.loss == pytest.approx(0.8)

    def test_interest_rate_floor(self):
        macro = replace(MacroeconomicFactors.neutral(), interest_rates=20.0)
        assert macro_multipliers(macro).valuation == pytest.approx(0.5)

    def test_software_trend(self):
        mult = sector_multipliers(DEFAULT_SECTOR_TRENDS["software"])
        assert mult.valuation == pytest.approx(1.0 - 1.5 * 0.05)
        assert mult.progression == pytest.approx(0.9)
        assert mult.loss == 1.0

    def test_high_risk_sector(self):
        mult = sector_multipliers(DEFAULT_SECTOR_TRENDS["biotech"])
        assert mult.loss == pytest.approx(1.2 * 1.15)
        assert mult.valuation == pytest.approx(1.25 * (1 + 5.7 * 0.05))

    def test_bullish_beats_bearish(self):
        bull = macro_multipliers(DEFAULT_MACRO_SCENARIOS["expansion"])
        bear = macro_multipliers(DEFAULT_MACRO_SCENARIOS["contraction"])
        assert bull.progression > bear.progression
        assert bull.loss < bear.loss


# ---------------------------------------------------------------------------
# Parameter adjustment
# ---------------------------------------------------------------------------

class TestApplyAdjustments:
    def test_neutral_macro_is_identity(self, sample_investments):
        for inv in sample_investments:
            assert apply_macro_adjustments(inv, MacroeconomicFactors.neutral()) is inv

    def test_neutral_ratios_exactly_one(self, sample_investments):
        for inv in sample_investments:
            assert adjustment_ratios(inv, inv) == (1.0, 1.0, 1.0)

    def test_progression_clamped_to_95(self, high_odds):
        adjusted = apply_macro_adjustments(high_odds, DEFAULT_MACRO_SCENARIOS["expansion"])
        assert adjusted.params("Series B").progression == 95.0
        assert adjusted.params("Series A").progression == 95.0

    def test_loss_clamped_to_90(self, high_odds):
        adjusted = apply_macro_adjustments(high_odds, DEFAULT_MACRO_SCENARIOS["contraction"])
        assert adjusted.params("Series B").loss_probability == 90.0
        assert adjusted.params("Series B").progression == pytest.approx(90.0 * 0.85)

    def test_untouched_groups_not_clamped(self, high_odds):
        # peak cycle leaves progression alone, so 100% stays 100%
        adjusted = apply_macro_adjustments(high_odds, DEFAULT_MACRO_SCENARIOS["peak"])
        assert adjusted.params("Series A").progression == 100.0
        assert adjusted.params("Series A").exit_valuation == pytest.approx((8.5, 17.0))

    def test_sector_adjustment(self, high_odds):
        adjusted = apply_sector_adjustments(high_odds, DEFAULT_SECTOR_TRENDS["software"])
        assert adjusted.params("Series B").progression == pytest.approx(81.0)
        assert adjusted.params("Series B").loss_probability == 70.0

    def test_adjust_uses_matching_sector_only(self, high_odds):
        scenario = ForecastScenario(
            "s", "S", "", 100.0, MacroeconomicFactors.neutral(),
            sector_trends=(DEFAULT_SECTOR_TRENDS["biotech"],),
        )
        assert adjust_investment(high_odds, scenario) is high_odds

    def test_ratios_follow_adjustment(self, high_odds):
        macro = replace(MacroeconomicFactors.neutral(), public_market_multiples=2.0)
        adjusted = apply_macro_adjustments(high_odds, macro)
        valuation, progression, survival = adjustment_ratios(high_odds, adjusted)
        assert valuation == pytest.approx(2.0)
        assert progression == 1.0
        assert survival == 1.0


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

class TestProjection:
    def test_neutral_factors_reproduce_baseline(self, sample_investments):
        neutral_trends = tuple(SectorTrends.neutral(f) for f in DEFAULT_SECTOR_TRENDS)
        scenario = ForecastScenario(
            "n", "Neutral", "", 100.0, MacroeconomicFactors.neutral(), sector_trends=neutral_trends,
            time_horizon=8,
        )
        baseline = project_scenario(
            sample_investments, ForecastScenario.neutral(time_horizon=8), 200, rng=make_rng(4)
        )
        neutral = project_scenario(sample_investments, scenario, 200, rng=make_rng(4))
        assert neutral.final_moic == baseline.final_moic
        assert neutral.to_frame()["portfolio_value"].tolist() == baseline.to_frame()["portfolio_value"].tolist()
        np.testing.assert_array_equal(neutral.simulated_moics, baseline.simulated_moics)

    def test_valuation_multiple_scales_distributions(self, sample_investments):
        doubled = replace(
            ForecastScenario.neutral(time_horizon=6),
            macro=replace(MacroeconomicFactors.neutral(), public_market_multiples=2.0),
        )
        base = project_scenario(sample_investments, ForecastScenario.neutral(time_horizon=6), 200, rng=make_rng(9))
        up = project_scenario(sample_investments, doubled, 200, rng=make_rng(9))
        assert up.total_distributed == pytest.approx(2.0 * base.total_distributed)
        assert up.total_paid_in == pytest.approx(base.total_paid_in)

    def test_yearly_shape(self, sample_investments):
        result = project_scenario(sample_investments, ForecastScenario.neutral(time_horizon=7), 100, rng=make_rng(1))
        df = result.to_frame()
        assert list(df["year"]) == list(range(1, 8))
        assert (df.loc[df["year"] > 5, "new_investments"] == 0).all()
        assert (df.loc[df["year"] <= 5, "new_investments"].between(2, 5)).all()
        assert (df["portfolio_value_low"] <= df["portfolio_value"]).all()
        assert (df["portfolio_value"] <= df["portfolio_value_high"]).all()

    def test_yearly_irr_from_multiple(self, sample_investments):
        result = project_scenario(sample_investments, ForecastScenario.neutral(time_horizon=5), 100, rng=make_rng(2))
        for y in result.yearly_forecasts:
            if y.moic > 0:
                assert y.irr == pytest.approx((y.moic ** (1 / y.year) - 1) * 100)

    def test_fees_on_paid_in(self, sample_investments):
        checks = sum(inv.check_size for inv in sample_investments)
        result = project_scenario(
            sample_investments, ForecastScenario.neutral(time_horizon=3), 50,
            management_fee_rate=2.0, new_investment_size=0.0, rng=make_rng(3),
        )
        assert result.total_paid_in == pytest.approx(checks)
        assert all(y.management_fees == pytest.approx(checks * 0.02) for y in result.yearly_forecasts)

    def test_active_investments_decline(self, sample_investments):
        result = project_scenario(sample_investments, ForecastScenario.neutral(time_horizon=10), 200, rng=make_rng(5))
        active = [y.active_investments for y in result.yearly_forecasts]
        assert active == sorted(active, reverse=True)
        assert active[0] <= len(sample_investments)

    def test_risk_metrics_ranges(self, sample_investments):
        result = project_scenario(sample_investments, ForecastScenario.neutral(time_horizon=6), 200, rng=make_rng(6))
        risk = result.risk_metrics
        assert risk.volatility >= 0
        assert 0 <= risk.max_drawdown <= 1
        assert 0 <= risk.probability_of_loss <= 100
        assert risk.value_at_risk <= np.median(result.simulated_moics)

    def test_sector_performance_per_portfolio_sector(self, sample_investments):
        result = project_scenario(sample_investments, ForecastScenario.neutral(time_horizon=4), 50, rng=make_rng(7))
        assert [s.field for s in result.sector_performance] == [inv.sector for inv in sample_investments]


# ---------------------------------------------------------------------------
# Forecaster and comparison
# ---------------------------------------------------------------------------

class TestScenarioForecaster:
    def test_expected_values_are_probability_weighted(self, comparison: ForecastComparison):
        weights = np.array([s.probability for s in comparison.scenarios]) / 100.0
        moics = np.array([r.final_moic for r in comparison.forecast_results])
        irrs = np.array([r.final_irr for r in comparison.forecast_results])
        assert comparison.expected_moic == pytest.approx(float(weights @ moics))
        assert comparison.expected_irr == pytest.approx(float(weights @ irrs))

    def test_scenario_range_ordering(self, comparison: ForecastComparison):
        r = comparison.scenario_range
        assert r["optimistic"].final_moic >= r["realistic"].final_moic >= r["pessimistic"].final_moic

    def test_optimistic_beats_downturn(self, comparison: ForecastComparison):
        by_id = {r.scenario_id: r for r in comparison.forecast_results}
        assert by_id["optimistic"].final_moic > by_id["pessimistic"].final_moic

    def test_to_frame(self, comparison: ForecastComparison):
        df = comparison.to_frame()
        assert isinstance(df, pd.DataFrame)
        assert list(df["scenario_id"]) == ["optimistic", "realistic", "pessimistic"]

    def test_waterfall_adds_up(self, comparison: ForecastComparison):
        df = comparison.waterfall_data()
        assert list(df["category"]) == ["Baseline MOIC", "Macro Impact", "Sector Trends", "Expected MOIC"]
        assert df.loc[2, "cumulative"] == pytest.approx(comparison.expected_moic)
        assert df.loc[0, "value"] == pytest.approx(comparison.baseline.final_moic)

    def test_heat_map(self, comparison: ForecastComparison, sample_investments):
        df = comparison.heat_map_data()
        assert len(df) == 3 * len({inv.sector for inv in sample_investments})
        assert set(df["confidence"]) == {0.75, 0.85, 0.70}

    def test_tornado(self, comparison: ForecastComparison):
        df = comparison.tornado_data()
        assert len(df) == 6
        assert df["swing"].is_monotonic_decreasing
        assert set(df["risk_level"]) <= {"low", "medium", "high"}

    def test_sensitivity_factor_directions(self, comparison: ForecastComparison):
        factors = {f.factor: f for f in comparison.sensitivity_factors}
        assert factors["Sector Growth"].high_moic > factors["Sector Growth"].low_moic
        assert factors["Interest Rates"].high_moic > factors["Interest Rates"].low_moic

    def test_neutral_only_forecast_matches_baseline(self, sample_investments):
        params = ForecastParameters(
            baseline_portfolio=sample_investments,
            scenarios=[ForecastScenario.neutral(time_horizon=5)],
            num_simulations=50,
            include_sensitivity=False,
        )
        result = ScenarioForecaster(params, seed=8).run()
        assert result.expected_moic == result.baseline.final_moic
        assert result.waterfall_data().loc[1, "value"] == 0.0
        assert result.sensitivity_factors == []

    def test_defaults_used_when_no_scenarios(self, sample_investments):
        forecaster = ScenarioForecaster(ForecastParameters(sample_investments, num_simulations=10))
        assert len(forecaster.scenarios) == 3


class TestForecastValidation:
    def test_empty_portfolio(self):
        with pytest.raises(MalformedInputError):
            ScenarioForecaster(ForecastParameters([]))

    def test_zero_probabilities(self, sample_investments):
        scenarios = [replace(s, probability=0.0) for s in default_scenarios()]
        with pytest.raises(MalformedInputError, match="probabilities"):
            ScenarioForecaster(ForecastParameters(sample_investments, scenarios=scenarios))

    def test_bad_horizon(self, sample_investments):
        scenarios = [replace(default_scenarios()[0], time_horizon=0)]
        with pytest.raises(MalformedInputError, match="horizon"):
            ScenarioForecaster(ForecastParameters(sample_investments, scenarios=scenarios))

    def test_bad_simulation_count(self, sample_investments):
        with pytest.raises(MalformedInputError, match="num_simulations"):
            ScenarioForecaster(ForecastParameters(sample_investments, num_simulations=0))
