"""Tests for vc_fund_sim.sensitivity — target achievability search."""
from __future__ import annotations

import math

import pandas as pd
import pytest

from vc_fund_sim.fund import SimulationConfig
from vc_fund_sim.sensitivity import (
    PARAMETER_TYPES,
    ParameterAdjustments,
    SensitivityAnalyzer,
    achievability_label,
    apply_parameter_adjustments,
    calculate_achievability,
    check_parameter_bounds,
    default_target_moics,
    fallback_combinations,
    max_safe_adjustment,
    portfolio_average_parameters,
    score_explanation,
    strategic_combinations,
)


@pytest.fixture(scope="module")
def analyzer(sample_investments) -> SensitivityAnalyzer:
    return SensitivityAnalyzer(
        sample_investments,
        SimulationConfig(num_simulations=20),
        max_adjustment=20.0,
        step_size=10.0,
        seed=17,
    )


# ---------------------------------------------------------------------------
# Parameter adjustment
# ---------------------------------------------------------------------------

class TestParameterAdjustments:
    def test_single(self):
        adj = ParameterAdjustments.single("exit_valuations", 15.0)
        assert adj.exit_valuations_increase == 15.0
        assert adj.total == 15.0
        assert adj.n_adjusted == 1
        assert adj.value("exit_valuations") == 15.0

    def test_totals(self):
        adj = ParameterAdjustments(10.0, 5.0, 0.0, 20.0)
        assert adj.total == 35.0
        assert adj.max_single == 20.0
        assert adj.n_adjusted == 3
        assert set(adj.as_dict()) == {
            "stage_progression_increase",
            "dilution_rates_decrease",
            "loss_probabilities_decrease",
            "exit_valuations_increase",
        }

    def test_hashable_for_caching(self):
        assert hash(ParameterAdjustments(1.0)) == hash(ParameterAdjustments(1.0))


class TestApplyAdjustments:
    def test_zero_moves_leave_parameters_untouched(self, sample_investments):
        adjusted = apply_parameter_adjustments(sample_investments, ParameterAdjustments())
        for original, new in zip(sample_investments, adjusted):
            assert dict(new.stages) == dict(original.stages)

    def test_progression_scaled(self, sample_investments):
        adjusted = apply_parameter_adjustments(
            sample_investments, ParameterAdjustments(stage_progression_increase=10.0)
        )
        before = sample_investments[0].params("Seed").progression
        assert adjusted[0].params("Seed").progression == pytest.approx(before * 1.1)

    def test_progression_clamped_at_100(self, sample_investments):
        adjusted = apply_parameter_adjustments(
            sample_investments, ParameterAdjustments(stage_progression_increase=200.0)
        )
        assert all(inv.params("Seed").progression <= 100.0 for inv in adjusted)

    def test_decreases_lower_dilution_and_loss(self, sample_investments):
        adjusted = apply_parameter_adjustments(
            sample_investments,
            ParameterAdjustments(dilution_rates_decrease=50.0, loss_probabilities_decrease=50.0),
        )
        original = sample_investments[1].params("Series B")
        assert adjusted[1].params("Series B").dilution == pytest.approx(original.dilution / 2)
        assert adjusted[1].params("Series B").loss_probability == pytest.approx(
            original.loss_probability / 2
        )

    def test_exit_ranges_scaled(self, sample_investments):
        adjusted = apply_parameter_adjustments(
            sample_investments, ParameterAdjustments(exit_valuations_increase=50.0)
        )
        low, high = sample_investments[0].params("IPO").exit_valuation
        assert adjusted[0].params("IPO").exit_valuation == pytest.approx((low * 1.5, high * 1.5))

    def test_negative_moves_worsen(self, sample_investments):
        adjusted = apply_parameter_adjustments(
            sample_investments, ParameterAdjustments(loss_probabilities_decrease=-20.0)
        )
        before = sample_investments[0].params("Seed").loss_probability
        assert adjusted[0].params("Seed").loss_probability == pytest.approx(before * 1.2)

    def test_originals_not_mutated(self, sample_investments):
        before = sample_investments[0].params("Seed").progression
        apply_parameter_adjustments(sample_investments, ParameterAdjustments(30.0, 30.0, 30.0, 30.0))
        assert sample_investments[0].params("Seed").progression == before


class TestBounds:
    def test_progression_overflow_reported(self, sample_investments):
        violations = check_parameter_bounds(
            sample_investments, ParameterAdjustments(stage_progression_increase=60.0)
        )
        assert violations and "exceed 100%" in violations[0]

    def test_valid_adjustment_has_no_violations(self, sample_investments):
        assert check_parameter_bounds(sample_investments, ParameterAdjustments(10.0, 10.0, 10.0, 10.0)) == []

    def test_over_100_decrease_reported(self, sample_investments):
        violations = check_parameter_bounds(
            sample_investments, ParameterAdjustments(dilution_rates_decrease=120.0)
        )
        assert "below 0%" in violations[0]

    def test_max_safe_progression(self, sample_investments):
        # software peaks at 65% progression into Seed
        assert max_safe_adjustment(sample_investments, "stage_progression") == pytest.approx(
            35.0 / 65.0 * 100.0
        )

    def test_max_safe_other_groups(self, sample_investments):
        assert max_safe_adjustment(sample_investments, "dilution_rates") == 100.0
        assert max_safe_adjustment(sample_investments, "exit_valuations") == 1000.0

    def test_portfolio_averages(self, sample_investments):
        averages = portfolio_average_parameters(sample_investments)
        assert averages["check_size"] == pytest.approx(2.0)
        assert 0 < averages["progression"] < 100
        assert portfolio_average_parameters([]) == {}


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

class TestAchievability:
    def test_no_adjustment_scores_100(self):
        score = calculate_achievability(ParameterAdjustments())
        assert score.score == pytest.approx(100.0)
        assert score.explanation == "Highly achievable with normal market conditions"

    def test_single_twenty_percent(self):
        # magnitude 60 * 0.4 + diversity 100 * 0.2 + realism 80 * 0.4
        score = calculate_achievability(ParameterAdjustments.single("exit_valuations", 20.0))
        assert score.score == pytest.approx(76.0)
        assert [f.weight for f in score.factors] == [0.4, 0.2, 0.4]

    def test_many_groups_penalised(self):
        narrow = calculate_achievability(ParameterAdjustments(exit_valuations_increase=20.0))
        wide = calculate_achievability(ParameterAdjustments(5.0, 5.0, 5.0, 5.0))
        assert wide.factors[1].score == pytest.approx(25.0)
        assert narrow.factors[1].score == pytest.approx(100.0)

    def test_large_move_floor(self):
        score = calculate_achievability(ParameterAdjustments.single("stage_progression", 80.0))
        assert score.score == pytest.approx(0.0 * 0.4 + 100.0 * 0.2 + 20.0 * 0.4)

    @pytest.mark.parametrize(
        "score,fragment",
        [(85, "Highly"), (65, "favorable"), (45, "optimistic"), (10, "exceptional")],
    )
    def test_explanation_bands(self, score, fragment):
        assert fragment in score_explanation(score)


class TestCombinations:
    def test_strategic_count(self):
        combos = strategic_combinations(3.0, 50.0)
        assert len(combos) == 8
        assert len({c.name for c in combos}) == 8

    def test_strategic_scaling(self):
        # base intensity is clamped to [0.4, 1.0]
        low = strategic_combinations(2.0, 50.0)[0].adjustments
        high = strategic_combinations(10.0, 50.0)[0].adjustments
        assert low.exit_valuations_increase == pytest.approx(50.0 * 0.4 * 0.4)
        assert high.exit_valuations_increase == pytest.approx(50.0 * 0.4 * 1.0)

    def test_fallbacks_skip_existing(self):
        assert len(fallback_combinations(4.0, 50.0, 0)) == 5
        assert len(fallback_combinations(4.0, 50.0, 2)) == 3

    def test_default_targets(self):
        assert default_target_moics(2.3) == [3.0, 4.0, 5.0, 6.0, 7.0, 8.0]
        assert default_target_moics(5.0) == [6.0, 7.0, 8.0, 9.0, 10.0]
        assert default_target_moics(9.5) == [10.0]

    def test_default_targets_high_baseline(self):
        assert default_target_moics(12.0) == []


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class TestSensitivityAnalyzer:
    def test_zero_adjustment_replays_baseline(self, analyzer: SensitivityAnalyzer):
        again = analyzer.evaluate(ParameterAdjustments())
        assert again.avg_moic == analyzer.baseline().avg_moic

    def test_baseline_target_needs_no_adjustment(self, analyzer: SensitivityAnalyzer):
        target = analyzer.baseline().avg_moic
        for ptype in PARAMETER_TYPES:
            result = analyzer.search_single_parameter(ptype, target)
            assert result.achievable
            assert result.adjustment_percent == 0.0

    def test_unseeded_zero_adjustment_reuses_baseline(self, sample_investments):
        analyzer = SensitivityAnalyzer(sample_investments, SimulationConfig(num_simulations=30))
        baseline = analyzer.baseline()
        assert analyzer.evaluate(ParameterAdjustments()) is baseline
        for ptype in PARAMETER_TYPES:
            assert analyzer.evaluate(ParameterAdjustments.single(ptype, 0.0)) is baseline

    @pytest.mark.parametrize("attempt", range(10))
    def test_unseeded_baseline_target_needs_no_adjustment(self, sample_investments, attempt):
        analyzer = SensitivityAnalyzer(
            sample_investments,
            SimulationConfig(num_simulations=30),
            max_adjustment=10.0,
            step_size=10.0,
        )
        target = analyzer.baseline().avg_moic
        for ptype in PARAMETER_TYPES:
            result = analyzer.search_single_parameter(ptype, target)
            assert result.achievable
            assert result.adjustment_percent == 0.0

    def test_supplied_baseline_used_for_zero_adjustment(self, sample_investments, analyzer):
        baseline = analyzer.baseline()
        fresh = SensitivityAnalyzer(
            sample_investments,
            SimulationConfig(num_simulations=20),
            baseline_results=baseline,
        )
        assert fresh.evaluate(ParameterAdjustments()) is baseline

    def test_baseline_target_scenario(self, analyzer: SensitivityAnalyzer):
        scenario = analyzer.analyze_target(analyzer.baseline().avg_moic)
        assert scenario.achievable
        assert scenario.required_adjustments.total == 0.0
        assert scenario.is_realistic
        assert achievability_label(scenario) == "Realistic"

    def test_unreachable_target(self, analyzer: SensitivityAnalyzer):
        scenario = analyzer.analyze_target(10_000.0)
        assert not scenario.achievable
        assert scenario.achievability_score == 0.0
        assert scenario.required_adjustments is None
        assert all(not s.achievable for s in scenario.single_parameter_options)
        assert all(s.bound_violations for s in scenario.single_parameter_options)

    def test_run_with_targets(self, analyzer: SensitivityAnalyzer):
        baseline = analyzer.baseline().avg_moic
        analysis = analyzer.run([baseline, 10_000.0])
        assert analysis.baseline_moic == baseline
        assert [s.achievable for s in analysis.target_scenarios] == [True, False]

        df = analysis.to_frame()
        assert isinstance(df, pd.DataFrame)
        assert len(df) == 2
        assert math.isnan(df.loc[1, "exit_valuations_increase"])

        singles = analysis.single_parameter_frame()
        assert len(singles) == 2 * len(PARAMETER_TYPES)

    def test_progress_callback(self, sample_investments):
        messages = []
        analyzer = SensitivityAnalyzer(
            sample_investments,
            SimulationConfig(num_simulations=5),
            max_adjustment=10.0,
            step_size=10.0,
            seed=3,
            progress_callback=lambda pct, msg: messages.append((pct, msg)),
        )
        analyzer.run([1.0])
        assert messages[0][0] == 0.0
        assert messages[-1] == (100.0, "Analysis complete!")

    def test_invalid_step(self, sample_investments):
        with pytest.raises(ValueError, match="step_size"):
            SensitivityAnalyzer(sample_investments, step_size=0)

    def test_tornado(self, analyzer: SensitivityAnalyzer):
        df = analyzer.tornado(pct_change=20.0)
        assert list(df.columns) == ["parameter", "low_value", "high_value", "swing"]
        assert set(df["parameter"]) == set(PARAMETER_TYPES)
        assert df["swing"].is_monotonic_decreasing
        exits = df.set_index("parameter").loc["exit_valuations"]
        assert exits["high_value"] >= exits["low_value"]
