"""
target_sensitivity.py — How far must the portfolio improve to hit a target multiple?

Run:
    python examples/target_sensitivity.py
"""
from __future__ import annotations

import logging

from vc_fund_sim import Investment, SensitivityAnalyzer, SimulationConfig
from vc_fund_sim.sensitivity import achievability_label


def _progress(pct: float, message: str) -> None:
    print(f"  [{pct:5.1f}%] {message}")


def main() -> None:
    logging.basicConfig(level=logging.WARNING)

    investments = [
        Investment.from_preset("Northwind AI", "Seed", 12.0, 1.5, sector="software"),
        Investment.from_preset("Ledgerline", "Series A", 45.0, 3.0, sector="fintech"),
        Investment.from_preset("Helix Therapeutics", "Seed", 15.0, 2.0, sector="biotech"),
        Investment.from_preset("Carebridge", "Pre-Seed", 5.0, 0.5, sector="healthcare"),
    ]

    analyzer = SensitivityAnalyzer(
        investments,
        SimulationConfig(num_simulations=500),
        max_adjustment=50.0,
        step_size=5.0,
        seed=11,
        progress_callback=_progress,
    )

    # -------------------------------------------------------------------
    # 1. Targets above the baseline multiple
    # -------------------------------------------------------------------
    print("Running sensitivity analysis...")
    analysis = analyzer.run()
    print(f"\nBaseline MOIC: {analysis.baseline_moic:.2f}x\n")

    for scenario in analysis.target_scenarios:
        label = achievability_label(scenario)
        print(f"Target {scenario.target_moic:.0f}x — {label} (score {scenario.achievability_score:.0f})")
        if scenario.required_adjustments is None:
            print("    not reachable within the searched bounds")
            continue
        for name, value in scenario.required_adjustments.as_dict().items():
            if value:
                print(f"    {name:<32} {value:>6.1f}%")

    # -------------------------------------------------------------------
    # 2. Single-parameter requirements
    # -------------------------------------------------------------------
    print("\nSingle-parameter searches:")
    print(analysis.single_parameter_frame().to_string(index=False))

    # -------------------------------------------------------------------
    # 3. Which parameter group matters most
    # -------------------------------------------------------------------
    print("\nTornado (±20%):")
    print(analyzer.tornado(20.0).to_string(index=False, float_format=lambda x: f"{x:.3f}"))


if __name__ == "__main__":
    main()
