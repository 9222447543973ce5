"""
sensitivity.py — Target-return achievability and parameter sensitivity.

Answers "how far must the inputs move for the fund to reach a target
multiple" by re-running the fund simulation under uniformly scaled stage
parameters, and scores how realistic the required move is.

Depends on: investment.py, fund.py, sampling.py
"""
from __future__ import annotations

import logging
import math
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional, Sequence

import numpy as np
import pandas as pd

from vc_fund_sim.fund import PortfolioResults, SimulationConfig, run_portfolio_simulation
from vc_fund_sim.investment import Investment, validate_portfolio
from vc_fund_sim.sampling import make_rng
from vc_fund_sim.stages import STAGES, StageParameters, TRANSITION_KEYS

logger = logging.getLogger(__name__)

ParameterType = Literal[
    "stage_progression",
    "dilution_rates",
    "loss_probabilities",
    "exit_valuations",
]
PARAMETER_TYPES: tuple[ParameterType, ...] = (
    "stage_progression",
    "dilution_rates",
    "loss_probabilities",
    "exit_valuations",
)
ApproachType = Literal["balanced", "exit-focused", "success-focused", "conservative", "aggressive"]

ProgressCallback = Callable[[float, str], None]

# A required single-parameter move at or below this is considered realistic
REALISTIC_ADJUSTMENT = 20.0
# Exit valuations have no natural ceiling; cap the search at a 10x uplift
EXIT_VALUATION_LIMIT = 1000.0


# ---------------------------------------------------------------------------
# Adjustments
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParameterAdjustments:
    """
    Uniform percentage moves applied to every investment's stage parameters.

    Positive values are improvements: more progression, less dilution,
    fewer losses, higher exits.
    """

    stage_progression_increase: float = 0.0
    dilution_rates_decrease: float = 0.0
    loss_probabilities_decrease: float = 0.0
    exit_valuations_increase: float = 0.0

    @classmethod
    def single(cls, parameter_type: ParameterType, value: float) -> "ParameterAdjustments":
        return cls(**{_FIELD_BY_TYPE[parameter_type]: value})

    def value(self, parameter_type: ParameterType) -> float:
        return getattr(self, _FIELD_BY_TYPE[parameter_type])

    def values(self) -> tuple[float, float, float, float]:
        return (
            self.stage_progression_increase,
            self.dilution_rates_decrease,
            self.loss_probabilities_decrease,
            self.exit_valuations_increase,
        )

    @property
    def total(self) -> float:
        return float(sum(self.values()))

    @property
    def max_single(self) -> float:
        return float(max(self.values()))

    @property
    def n_adjusted(self) -> int:
        return sum(1 for v in self.values() if v > 0)

    def as_dict(self) -> dict[str, float]:
        return {name: self.value(ptype) for ptype, name in _FIELD_BY_TYPE.items()}


_FIELD_BY_TYPE: dict[str, str] = {
    "stage_progression": "stage_progression_increase",
    "dilution_rates": "dilution_rates_decrease",
    "loss_probabilities": "loss_probabilities_decrease",
    "exit_valuations": "exit_valuations_increase",
}


def _clamp_percent(value: float) -> float:
    return min(100.0, max(0.0, value))


def apply_parameter_adjustments(
    investments: Sequence[Investment],
    adjustments: ParameterAdjustments,
) -> list[Investment]:
    """
    Return copies of ``investments`` with every stage group scaled.

    Progression is multiplied by ``1 + increase/100``, dilution and loss by
    ``1 - decrease/100`` (all kept within [0, 100]) and both ends of every
    exit range by ``1 + increase/100``. Zero moves leave a group untouched.
    """
    prog = 1.0 + adjustments.stage_progression_increase / 100.0
    dil = 1.0 - adjustments.dilution_rates_decrease / 100.0
    loss = 1.0 - adjustments.loss_probabilities_decrease / 100.0
    exit_mult = max(0.0, 1.0 + adjustments.exit_valuations_increase / 100.0)

    adjusted = []
    for investment in investments:
        table: dict[str, StageParameters] = {}
        for stage in STAGES:
            p = investment.params(stage)
            changes: dict[str, object] = {}
            if adjustments.stage_progression_increase:
                changes["progression"] = _clamp_percent(p.progression * prog)
            if adjustments.dilution_rates_decrease:
                changes["dilution"] = _clamp_percent(p.dilution * dil)
            if adjustments.loss_probabilities_decrease:
                changes["loss_probability"] = _clamp_percent(p.loss_probability * loss)
            if adjustments.exit_valuations_increase:
                low, high = p.exit_valuation
                changes["exit_valuation"] = (low * exit_mult, high * exit_mult)
            table[stage] = p.with_changes(**changes) if changes else p
        adjusted.append(investment.with_stages(table))
    return adjusted


def _progression_values(investment: Investment) -> list[float]:
    return [investment.params(stage).progression for stage in TRANSITION_KEYS]


def check_parameter_bounds(
    investments: Sequence[Investment],
    adjustments: ParameterAdjustments,
) -> list[str]:
    """
    Describe every way ``adjustments`` would push a parameter out of range.

    An empty list means the adjustment is valid for the whole portfolio.
    """
    violations: list[str] = []

    if adjustments.stage_progression_increase > 0:
        multiplier = 1 + adjustments.stage_progression_increase / 100
        peak = max(
            (v * multiplier for inv in investments for v in _progression_values(inv)),
            default=0.0,
        )
        if peak > 100:
            violations.append(f"Stage progression would exceed 100% (max: {peak:.1f}%)")

    if adjustments.dilution_rates_decrease > 100:
        violations.append(
            f"Dilution rates would go below 0% "
            f"(decrease of {adjustments.dilution_rates_decrease:.1f}%)"
        )

    if adjustments.loss_probabilities_decrease > 100:
        violations.append(
            f"Loss probabilities would go below 0% "
            f"(decrease of {adjustments.loss_probabilities_decrease:.1f}%)"
        )

    return violations


def max_safe_adjustment(
    investments: Sequence[Investment],
    parameter_type: ParameterType,
) -> float:
    """Largest move of ``parameter_type`` that keeps every parameter in range."""
    if parameter_type == "exit_valuations":
        return EXIT_VALUATION_LIMIT
    if parameter_type in ("dilution_rates", "loss_probabilities"):
        return 100.0

    limit = 100.0
    for investment in investments:
        peak = max(_progression_values(investment), default=0.0)
        if peak > 0:
            limit = min(limit, max(0.0, (100.0 - peak) / peak * 100.0))
    return limit


def portfolio_average_parameters(investments: Sequence[Investment]) -> dict[str, float]:
    """Portfolio-average exit midpoint, progression, loss, dilution and check size."""
    if not investments:
        return {}

    exit_vals, progressions, losses, dilutions, checks = [], [], [], [], []
    for inv in investments:
        exit_vals.append(np.mean([sum(inv.params(s).exit_valuation) / 2 for s in STAGES]))
        progressions.append(np.mean(_progression_values(inv)))
        losses.append(np.mean([inv.params(s).loss_probability for s in STAGES]))
        nonzero = [inv.params(s).dilution for s in TRANSITION_KEYS if inv.params(s).dilution > 0]
        dilutions.append(np.mean(nonzero) if nonzero else 0.0)
        checks.append(inv.check_size)

    return {
        "exit_valuation": float(np.mean(exit_vals)),
        "progression": float(np.mean(progressions)),
        "loss_probability": float(np.mean(losses)),
        "dilution": float(np.mean(dilutions)),
        "check_size": float(np.mean(checks)),
    }


# ---------------------------------------------------------------------------
# Achievability scoring
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AchievabilityFactor:
    name: str
    score: float
    weight: float
    explanation: str


@dataclass(frozen=True)
class AchievabilityScore:
    score: float
    explanation: str
    factors: tuple[AchievabilityFactor, ...] = ()


def score_explanation(score: float) -> str:
    if score >= 80:
        return "Highly achievable with normal market conditions"
    if score >= 60:
        return "Achievable with favorable market conditions"
    if score >= 40:
        return "Requires optimistic market assumptions"
    return "Requires exceptional market performance"


def calculate_achievability(adjustments: ParameterAdjustments) -> AchievabilityScore:
    """
    Weighted 0-100 score of how realistic a set of adjustments is.

    Factors: total magnitude (weight 0.4, two points lost per percent),
    number of parameter groups touched (0.2, 25 points per extra group)
    and the largest single move (0.4, banded at 15/30/50%).
    """
    total = adjustments.total
    magnitude = AchievabilityFactor(
        name="Adjustment Magnitude",
        score=max(0.0, 100.0 - total * 2),
        weight=0.4,
        explanation=f"{total:.1f}% total adjustments needed",
    )

    n = adjustments.n_adjusted
    diversity = AchievabilityFactor(
        name="Parameter Diversity",
        score=100.0 if n <= 1 else max(0.0, 100.0 - (n - 1) * 25),
        weight=0.2,
        explanation=f"{n} parameter type{'s' if n != 1 else ''} adjusted",
    )

    largest = adjustments.max_single
    if largest <= 15:
        realism_score = 100.0
    elif largest <= 30:
        realism_score = 80.0
    elif largest <= 50:
        realism_score = 50.0
    else:
        realism_score = 20.0
    realism = AchievabilityFactor(
        name="Market Realism",
        score=realism_score,
        weight=0.4,
        explanation=f"Max single parameter: {largest:.1f}%",
    )

    factors = (magnitude, diversity, realism)
    score = sum(f.score * f.weight for f in factors)
    return AchievabilityScore(score=score, explanation=score_explanation(score), factors=factors)


# ---------------------------------------------------------------------------
# Search results
# ---------------------------------------------------------------------------

@dataclass
class SingleParameterResult:
    """Outcome of scanning one parameter group toward a target multiple."""

    parameter_type: ParameterType
    adjustment_percent: float
    achievable: bool
    results: Optional[PortfolioResults]
    actual_requirement: float
    bound_violations: list[str] = field(default_factory=list)

    @property
    def adjustments(self) -> ParameterAdjustments:
        return ParameterAdjustments.single(self.parameter_type, self.adjustment_percent)


@dataclass
class MixedParameterOption:
    """A named multi-parameter combination that reached the target."""

    name: str
    description: str
    approach_type: ApproachType
    adjustments: ParameterAdjustments
    results: PortfolioResults

    @property
    def total_adjustment(self) -> float:
        return self.adjustments.total


@dataclass
class TargetScenario:
    """The cheapest adjustment found for one target multiple, with its score."""

    target_moic: float
    achievable: bool
    required_adjustments: Optional[ParameterAdjustments]
    adjusted_results: Optional[PortfolioResults]
    achievability: AchievabilityScore
    is_realistic: bool
    single_parameter_options: list[SingleParameterResult] = field(default_factory=list)
    mixed_parameter_options: list[MixedParameterOption] = field(default_factory=list)

    @property
    def achievability_score(self) -> float:
        return self.achievability.score


def achievability_label(scenario: TargetScenario) -> str:
    if scenario.is_realistic:
        return "Realistic"
    if scenario.achievability_score >= 50:
        return "Optimistic"
    return "Very Optimistic"


def achievability_color(scenario: TargetScenario) -> str:
    if scenario.is_realistic:
        return "#2E7D32"
    if scenario.achievability_score >= 50:
        return "#FFB74D"
    return "#E57373"


@dataclass
class SensitivityAnalysis:
    """Baseline plus one TargetScenario per requested target multiple."""

    baseline_results: PortfolioResults
    baseline_moic: float
    target_moics: list[float]
    target_scenarios: list[TargetScenario]

    def to_frame(self) -> pd.DataFrame:
        rows = []
        for scenario in self.target_scenarios:
            adj = scenario.required_adjustments
            row = {
                "target_moic": scenario.target_moic,
                "achievable": scenario.achievable,
                "achievability_score": scenario.achievability_score,
                "is_realistic": scenario.is_realistic,
                "label": achievability_label(scenario),
                "adjusted_moic": (
                    scenario.adjusted_results.avg_moic if scenario.adjusted_results else float("nan")
                ),
            }
            for ptype in PARAMETER_TYPES:
                row[_FIELD_BY_TYPE[ptype]] = adj.value(ptype) if adj else float("nan")
            rows.append(row)
        return pd.DataFrame(rows)

    def single_parameter_frame(self) -> pd.DataFrame:
        """One row per (target, parameter group) single-parameter search."""
        rows = []
        for scenario in self.target_scenarios:
            for option in scenario.single_parameter_options:
                rows.append(
                    {
                        "target_moic": scenario.target_moic,
                        "parameter": option.parameter_type,
                        "adjustment_percent": option.adjustment_percent,
                        "actual_requirement": option.actual_requirement,
                        "achievable": option.achievable,
                        "bound_violations": "; ".join(option.bound_violations),
                    }
                )
        return pd.DataFrame(rows)


# ---------------------------------------------------------------------------
# Mixed-parameter candidate generation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Candidate:
    name: str
    description: str
    approach_type: ApproachType
    adjustments: ParameterAdjustments


def _combo(
    name: str,
    description: str,
    approach: ApproachType,
    weights: tuple[float, float, float, float],
    intensities: tuple[float, float, float, float],
    max_adjustment: float,
) -> _Candidate:
    values = [max_adjustment * w * i for w, i in zip(weights, intensities)]
    return _Candidate(name, description, approach, ParameterAdjustments(*values))


def strategic_combinations(target_moic: float, max_adjustment: float) -> list[_Candidate]:
    """Named approaches, scaled up as the target multiple grows."""
    base = min(1.0, max(0.4, (target_moic - 2) / 4))
    boosted = min(1.2, base * 1.5)
    lead = min(1.2, base * 1.3)
    flat = (base, base, base, base)

    return [
        _combo(
            "Conservative Balanced",
            "Moderate improvements across all parameters with emphasis on exit valuations",
            "conservative", (0.2, 0.15, 0.2, 0.4), flat, max_adjustment,
        ),
        _combo(
            "Balanced Optimization",
            "Equal weight to all key performance drivers",
            "balanced", (0.3, 0.25, 0.3, 0.35), flat, max_adjustment,
        ),
        _combo(
            "Exit Value Maximization",
            "Focus on higher exit valuations with minimal other changes",
            "exit-focused", (0.15, 0.15, 0.2, 0.7), flat, max_adjustment,
        ),
        _combo(
            "Success Rate Optimization",
            "Maximize portfolio success rate through progression and risk reduction",
            "success-focused", (0.45, 0.25, 0.5, 0.25), flat, max_adjustment,
        ),
        _combo(
            "Ownership Preservation",
            "Minimize dilution while improving success metrics",
            "balanced", (0.35, 0.6, 0.35, 0.3), flat, max_adjustment,
        ),
        _combo(
            "High-Growth Aggressive",
            "Aggressive improvements across all metrics for ambitious targets",
            "aggressive", (0.6, 0.4, 0.6, 0.8), (boosted,) * 4, max_adjustment,
        ),
        _combo(
            "Market Leadership",
            "Focus on building category leaders with exceptional exits",
            "exit-focused", (0.4, 0.2, 0.3, 0.9), (base, base, base, lead), max_adjustment,
        ),
        _combo(
            "Risk Mitigation Focus",
            "Prioritize loss reduction and steady progression",
            "conservative", (0.4, 0.3, 0.7, 0.25), flat, max_adjustment,
        ),
    ]


def fallback_combinations(
    target_moic: float,
    max_adjustment: float,
    existing_count: int,
) -> list[_Candidate]:
    """Heavier combinations tried while fewer than three approaches succeed."""
    high = min(1.5, max(0.8, (target_moic - 2) / 3))
    flat = (high,) * 4

    fallbacks = [
        _combo(
            "Minimal Exit Focus",
            "Smallest possible adjustments with emphasis on exit valuations",
            "conservative", (0.1, 0.1, 0.1, 0.8), flat, max_adjustment,
        ),
        _combo(
            "Pure Exit Strategy",
            "Maximum focus on exit valuations only",
            "exit-focused", (0.05, 0.05, 0.05, 1.0), flat, max_adjustment,
        ),
        _combo(
            "Aggressive All-In",
            "Maximum adjustments across all parameters",
            "aggressive", (0.8, 0.7, 0.8, 1.0), flat, max_adjustment,
        ),
        _combo(
            "Success-Only Focus",
            "Maximum success rate improvements with minimal exit changes",
            "success-focused", (0.7, 0.5, 0.8, 0.2), flat, max_adjustment,
        ),
        _combo(
            "Linear Scaling",
            "Proportional increases across all parameters",
            "balanced", (0.5, 0.5, 0.5, 0.5), flat, max_adjustment,
        ),
    ]
    return fallbacks[existing_count:]


def default_target_moics(baseline_moic: float) -> list[float]:
    """Whole multiples above the baseline, up to min(10, baseline + 6)."""
    ceiling = min(10.0, baseline_moic + 6)
    targets = [
        float(m)
        for m in range(math.ceil(baseline_moic), int(math.floor(ceiling)) + 1)
        if m > baseline_moic
    ]
    if not targets and baseline_moic < 8:
        targets.append(float(math.ceil(baseline_moic + 0.5)))
    return targets


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------

class SensitivityAnalyzer:
    """
    Searches the parameter space for adjustments that reach target multiples.

    Every tested adjustment is a full fund simulation at the configured trial
    count, judged on a single sample: the first level whose average multiple
    meets the target is accepted. With a ``seed`` every evaluation replays
    the same random stream, so results are reproducible and a zero
    adjustment reproduces the baseline exactly; without one each evaluation
    draws fresh samples.

    Usage:
        analyzer = SensitivityAnalyzer(investments, SimulationConfig(num_simulations=500), seed=1)
        analysis = analyzer.run([2.0, 3.0, 4.0])
        analysis.to_frame()
    """

    def __init__(
        self,
        investments: Sequence[Investment],
        config: Optional[SimulationConfig] = None,
        max_adjustment: float = 50.0,
        step_size: float = 5.0,
        seed: Optional[int] = None,
        baseline_results: Optional[PortfolioResults] = None,
        max_workers: Optional[int] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self.investments = validate_portfolio(investments)
        self.config = config or SimulationConfig()
        self.config.validate()
        if step_size <= 0:
            raise ValueError("step_size must be positive")
        if max_adjustment < 0:
            raise ValueError("max_adjustment must be non-negative")
        self.max_adjustment = max_adjustment
        self.step_size = step_size
        self.seed = seed
        self.max_workers = max_workers
        self.progress_callback = progress_callback
        self._rng = make_rng(seed)
        self._baseline = baseline_results
        self._cache: dict[ParameterAdjustments, PortfolioResults] = {}

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------

    def evaluate(self, adjustments: ParameterAdjustments) -> PortfolioResults:
        """
        Run the fund simulation on adjusted inputs.

        A zero adjustment always resolves to the single baseline run, seeded
        or not; other adjustments are cached only when a seed is set.
        """
        baseline = adjustments == ParameterAdjustments()
        if baseline and self._baseline is not None:
            return self._baseline
        if self.seed is not None and adjustments in self._cache:
            return self._cache[adjustments]

        rng = make_rng(self.seed) if self.seed is not None else self._rng
        adjusted = apply_parameter_adjustments(self.investments, adjustments)
        results = run_portfolio_simulation(adjusted, self.config, rng=rng)

        if baseline:
            self._baseline = results
        elif self.seed is not None:
            self._cache[adjustments] = results
        return results

    def baseline(self) -> PortfolioResults:
        return self.evaluate(ParameterAdjustments())

    # ------------------------------------------------------------------
    # Single-parameter search
    # ------------------------------------------------------------------

    def search_single_parameter(
        self,
        parameter_type: ParameterType,
        target_moic: float,
    ) -> SingleParameterResult:
        """
        Scan one parameter group in ``step_size`` increments toward the target.

        The scan runs from 0 up to the smaller of ``max_adjustment`` and the
        group's safe limit. When the target is not reached the requirement is
        extrapolated linearly from the baseline to the last level tested.
        """
        safe = max_safe_adjustment(self.investments, parameter_type)
        limit = min(self.max_adjustment, safe)
        levels = np.arange(0.0, limit + 1e-9, self.step_size)

        base_moic: Optional[float] = None
        last_level, last_moic = 0.0, 0.0
        for level in levels:
            level = float(level)
            adjustments = ParameterAdjustments.single(parameter_type, level)
            if check_parameter_bounds(self.investments, adjustments):
                break
            results = self.evaluate(adjustments)
            logger.debug(
                "%s +%.1f%% -> avg_moic %.3f (target %.2f)",
                parameter_type, level, results.avg_moic, target_moic,
            )
            if base_moic is None:
                base_moic = results.avg_moic
            if results.avg_moic >= target_moic:
                return SingleParameterResult(
                    parameter_type=parameter_type,
                    adjustment_percent=level,
                    achievable=True,
                    results=results,
                    actual_requirement=level,
                )
            last_level, last_moic = level, results.avg_moic

        violations: list[str] = []
        if safe < self.max_adjustment:
            violations.append(
                f"Cannot exceed {safe:.1f}% adjustment due to parameter bounds"
            )

        requirement = math.inf
        if base_moic is not None and last_level > 0:
            slope = (last_moic - base_moic) / last_level
            if slope > 0:
                requirement = (target_moic - base_moic) / slope
        if math.isfinite(requirement):
            violations.append(
                f"Requires ~{requirement:.1f}% adjustment, beyond the "
                f"{limit:.1f}% searched"
            )
        else:
            violations.append(f"No measurable improvement up to {last_level:.1f}%")

        return SingleParameterResult(
            parameter_type=parameter_type,
            adjustment_percent=limit,
            achievable=False,
            results=None,
            actual_requirement=requirement,
            bound_violations=violations,
        )

    # ------------------------------------------------------------------
    # Mixed-parameter search
    # ------------------------------------------------------------------

    def _try_candidates(
        self,
        candidates: list[_Candidate],
        target_moic: float,
        found: list[MixedParameterOption],
        stop_at: Optional[int] = None,
    ) -> None:
        for candidate in candidates:
            if check_parameter_bounds(self.investments, candidate.adjustments):
                continue
            results = self.evaluate(candidate.adjustments)
            if results.avg_moic >= target_moic:
                found.append(
                    MixedParameterOption(
                        name=candidate.name,
                        description=candidate.description,
                        approach_type=candidate.approach_type,
                        adjustments=candidate.adjustments,
                        results=results,
                    )
                )
                if stop_at is not None and len(found) >= stop_at:
                    return

    def search_mixed_parameters(self, target_moic: float) -> list[MixedParameterOption]:
        """Named combinations that hit the target, smallest total move first."""
        found: list[MixedParameterOption] = []
        self._try_candidates(
            strategic_combinations(target_moic, self.max_adjustment), target_moic, found
        )
        if len(found) < 3:
            self._try_candidates(
                fallback_combinations(target_moic, self.max_adjustment, len(found)),
                target_moic,
                found,
                stop_at=3,
            )

        found.sort(key=lambda option: option.total_adjustment)
        return found[: max(3, min(5, len(found)))]

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    def analyze_target(self, target_moic: float) -> TargetScenario:
        """Single and mixed searches for one target, reduced to a TargetScenario."""
        singles = [self.search_single_parameter(p, target_moic) for p in PARAMETER_TYPES]
        mixed = self.search_mixed_parameters(target_moic)

        candidates: list[tuple[ParameterAdjustments, PortfolioResults]] = [
            (s.adjustments, s.results) for s in singles if s.achievable and s.results is not None
        ]
        candidates += [(m.adjustments, m.results) for m in mixed]

        achievable_singles = [s.adjustment_percent for s in singles if s.achievable]
        is_realistic = bool(achievable_singles) and min(achievable_singles) <= REALISTIC_ADJUSTMENT

        if not candidates:
            return TargetScenario(
                target_moic=target_moic,
                achievable=False,
                required_adjustments=None,
                adjusted_results=None,
                achievability=AchievabilityScore(
                    score=0.0,
                    explanation="Not achievable within the searched adjustment bounds",
                ),
                is_realistic=False,
                single_parameter_options=singles,
                mixed_parameter_options=mixed,
            )

        required, results = min(candidates, key=lambda c: c[0].total)
        return TargetScenario(
            target_moic=target_moic,
            achievable=True,
            required_adjustments=required,
            adjusted_results=results,
            achievability=calculate_achievability(required),
            is_realistic=is_realistic,
            single_parameter_options=singles,
            mixed_parameter_options=mixed,
        )

    def _report(self, progress: float, message: str) -> None:
        logger.debug("Sensitivity progress %.1f%%: %s", progress, message)
        if self.progress_callback is not None:
            self.progress_callback(progress, message)

    def run(self, target_moics: Optional[Sequence[float]] = None) -> SensitivityAnalysis:
        """
        Analyze every target multiple against the baseline.

        Parameters
        ----------
        target_moics:
            Target fund multiples. Defaults to ``default_target_moics`` of
            the baseline.

        Returns
        -------
        SensitivityAnalysis
        """
        self._report(0.0, "Analyzing baseline results...")
        baseline = self.baseline()
        targets = (
            [float(t) for t in target_moics]
            if target_moics is not None
            else default_target_moics(baseline.avg_moic)
        )

        scenarios: list[Optional[TargetScenario]] = [None] * len(targets)
        if self.max_workers is not None and self.max_workers > 1 and len(targets) > 1:
            seeds = self._worker_seeds(len(targets))
            args_list = [
                (
                    self.investments, self.config, target,
                    self.max_adjustment, self.step_size, seeds[i], baseline,
                )
                for i, target in enumerate(targets)
            ]
            with ProcessPoolExecutor(max_workers=self.max_workers) as executor:
                futures = {
                    executor.submit(_analyze_target_worker, args): i
                    for i, args in enumerate(args_list)
                }
                for done, future in enumerate(as_completed(futures), start=1):
                    i = futures[future]
                    scenarios[i] = future.result()
                    self._report(
                        done / len(targets) * 100.0,
                        f"Analyzed target {targets[i]:g}x MOIC",
                    )
        else:
            for i, target in enumerate(targets):
                self._report(i / len(targets) * 100.0, f"Analyzing target {target:g}x MOIC...")
                scenarios[i] = self.analyze_target(target)

        self._report(100.0, "Analysis complete!")
        logger.info(
            "Sensitivity analysis complete: baseline %.2fx, %d targets, %d achievable",
            baseline.avg_moic,
            len(targets),
            sum(1 for s in scenarios if s is not None and s.achievable),
        )
        return SensitivityAnalysis(
            baseline_results=baseline,
            baseline_moic=baseline.avg_moic,
            target_moics=targets,
            target_scenarios=[s for s in scenarios if s is not None],
        )

    def _worker_seeds(self, n: int) -> list[int]:
        if self.seed is not None:
            return [self.seed] * n
        return [int(s) for s in self._rng.integers(0, 2**63 - 1, size=n)]

    # ------------------------------------------------------------------
    # Tornado
    # ------------------------------------------------------------------

    def tornado(self, pct_change: float = 20.0) -> pd.DataFrame:
        """
        Average multiple with each parameter group moved by ±``pct_change``.

        Returns
        -------
        DataFrame with columns: parameter, low_value, high_value, swing
            sorted by swing (largest first)
        """
        rows = []
        for ptype in PARAMETER_TYPES:
            low = self.evaluate(ParameterAdjustments.single(ptype, -pct_change)).avg_moic
            high = self.evaluate(ParameterAdjustments.single(ptype, pct_change)).avg_moic
            rows.append(
                {
                    "parameter": ptype,
                    "low_value": low,
                    "high_value": high,
                    "swing": abs(high - low),
                }
            )
        df = pd.DataFrame(rows)
        return df.sort_values("swing", ascending=False).reset_index(drop=True)


def _analyze_target_worker(
    args: tuple[list[Investment], SimulationConfig, float, float, float, int, PortfolioResults],
) -> TargetScenario:
    """Module-level worker so targets can be fanned out to processes."""
    investments, config, target, max_adjustment, step_size, seed, baseline = args
    analyzer = SensitivityAnalyzer(
        investments,
        config,
        max_adjustment=max_adjustment,
        step_size=step_size,
        seed=seed,
        baseline_results=baseline,
    )
    return analyzer.analyze_target(target)
