"""
vc_fund_sim — Monte Carlo engine for venture fund return analysis.

Public API surface:

    from vc_fund_sim import Investment, StageParameters
    from vc_fund_sim import FundSimulator, SimulationConfig, FollowOnStrategy
    from vc_fund_sim import run_portfolio_simulation, simulate_investment
    from vc_fund_sim import SensitivityAnalyzer
    from vc_fund_sim import ScenarioForecaster, ForecastParameters, default_scenarios
    from vc_fund_sim import ConstructionParams, run_construction_simulation
    from vc_fund_sim import metrics, presets
"""
from __future__ import annotations

# Core data classes and engines
from vc_fund_sim.construction import (
    ConstructionParams,
    ConstructionResults,
    run_construction_simulation,
    simulate_construction,
)
from vc_fund_sim.errors import MalformedInputError
from vc_fund_sim.forecast import (
    ForecastComparison,
    ForecastParameters,
    ForecastResults,
    ForecastScenario,
    MacroeconomicFactors,
    ScenarioForecaster,
    SectorTrends,
    default_scenarios,
    run_forecast,
)
from vc_fund_sim.fund import (
    FundSimulator,
    PortfolioResults,
    SimulationConfig,
    run_portfolio_simulation,
)
from vc_fund_sim.investment import Investment, validate_portfolio
from vc_fund_sim.sensitivity import (
    ParameterAdjustments,
    SensitivityAnalysis,
    SensitivityAnalyzer,
    TargetScenario,
)
from vc_fund_sim.stages import STAGES, StageParameters
from vc_fund_sim.walker import FollowOnStrategy, SimulationResult, simulate_investment

# Submodules available for direct import
from vc_fund_sim import metrics
from vc_fund_sim import presets

__version__ = "0.1.0"
__author__ = "vc-fund-simulator"

__all__ = [
    # Stages and inputs
    "STAGES",
    "StageParameters",
    "Investment",
    "validate_portfolio",
    "MalformedInputError",
    # Walker
    "FollowOnStrategy",
    "SimulationResult",
    "simulate_investment",
    # Fund
    "SimulationConfig",
    "PortfolioResults",
    "FundSimulator",
    "run_portfolio_simulation",
    # Sensitivity
    "ParameterAdjustments",
    "SensitivityAnalyzer",
    "SensitivityAnalysis",
    "TargetScenario",
    # Forecast
    "MacroeconomicFactors",
    "SectorTrends",
    "ForecastScenario",
    "ForecastParameters",
    "ForecastResults",
    "ForecastComparison",
    "ScenarioForecaster",
    "default_scenarios",
    "run_forecast",
    # Construction
    "ConstructionParams",
    "ConstructionResults",
    "simulate_construction",
    "run_construction_simulation",
    # Submodules
    "metrics",
    "presets",
    # Version
    "__version__",
]
