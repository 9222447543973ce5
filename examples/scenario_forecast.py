"""
scenario_forecast.py — Probability-weighted macro/sector forecast and fund construction.

Run:
    python examples/scenario_forecast.py
"""
from __future__ import annotations

import logging

from vc_fund_sim import (
    ConstructionParams,
    ForecastParameters,
    Investment,
    ScenarioForecaster,
    run_construction_simulation,
)


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    investments = [
        Investment.from_preset("Northwind AI", "Seed", 12.0, 1.5, sector="software"),
        Investment.from_preset("Ledgerline", "Series A", 45.0, 3.0, sector="fintech"),
        Investment.from_preset("Helix Therapeutics", "Seed", 15.0, 2.0, sector="biotech"),
        Investment.from_preset("Gridshift", "Pre-Seed", 6.0, 0.75, sector="energy"),
    ]

    # -------------------------------------------------------------------
    # 1. Default scenarios: Optimistic 25%, Base 50%, Downturn 25%
    # -------------------------------------------------------------------
    forecaster = ScenarioForecaster(
        ForecastParameters(baseline_portfolio=investments, num_simulations=2_000),
        seed=7,
    )
    comparison = forecaster.run()

    print("=" * 60)
    print("  Scenario Forecast")
    print("=" * 60)
    print(f"  Expected MOIC:        {comparison.expected_moic:>10.2f}x")
    print(f"  Expected IRR:         {comparison.expected_irr:>9.1f}%")
    print(f"  Weighted Distributed: ${comparison.probability_weighted_value:>8.2f}M")
    print("=" * 60)
    print(comparison.to_frame().to_string(index=False, float_format=lambda x: f"{x:.2f}"))

    print("\nBase case by year:")
    base = comparison.scenario_range["realistic"]
    print(
        base.to_frame()[["year", "portfolio_value", "exit_value", "net_cash_flow", "moic", "irr"]]
        .to_string(index=False, float_format=lambda x: f"{x:>8.2f}")
    )

    print("\nWaterfall:")
    print(comparison.waterfall_data().to_string(index=False))
    print("\nTornado:")
    print(comparison.tornado_data().to_string(index=False, float_format=lambda x: f"{x:.1f}"))

    # -------------------------------------------------------------------
    # 2. Allocation-driven fund construction
    # -------------------------------------------------------------------
    construction = run_construction_simulation(ConstructionParams(num_simulations=500), seed=7)
    print(f"\n{construction!r}")
    print(construction.stage_performance().to_string(index=False, float_format=lambda x: f"{x:.2f}"))


if __name__ == "__main__":
    main()
