"""
portfolio_simulation.py — Monte Carlo returns for a preset-based portfolio.

Run:
    python examples/portfolio_simulation.py
"""
from __future__ import annotations

import logging

from vc_fund_sim import FollowOnStrategy, FundSimulator, Investment, SimulationConfig


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    # -------------------------------------------------------------------
    # 1. Portfolio from sector presets ($MM)
    # -------------------------------------------------------------------
    investments = [
        Investment.from_preset("Northwind AI", "Seed", 12.0, 1.5, sector="software"),
        Investment.from_preset("Ledgerline", "Series A", 45.0, 3.0, sector="fintech"),
        Investment.from_preset("Helix Therapeutics", "Seed", 15.0, 2.0, sector="biotech"),
        Investment.from_preset("Gridshift", "Pre-Seed", 6.0, 0.75, sector="energy", region="Europe"),
        Investment.from_preset("Cartwheel", "Series B", 120.0, 4.0, sector="ecommerce"),
    ]

    # -------------------------------------------------------------------
    # 2. Fund terms and follow-on policy
    # -------------------------------------------------------------------
    config = SimulationConfig(
        num_simulations=5_000,
        setup_fees=1.0,
        management_fees=2.0,
        management_fee_years=10,
        follow_on=FollowOnStrategy(
            enable_early_follow_ons=True,
            early_follow_on_rate=25.0,
            early_follow_on_multiple=1.0,
            reserve_ratio=40.0,
        ),
    )

    simulator = FundSimulator(investments, config, seed=2024)
    results = simulator.run()

    # -------------------------------------------------------------------
    # 3. Fund summary
    # -------------------------------------------------------------------
    print("=" * 60)
    print("  Portfolio Simulation — Fund Summary")
    print("=" * 60)
    print(f"  Trials:             {results.num_simulations:>14,d}")
    print(f"  Fund Size:          ${results.total_paid_in:>13,.2f}M")
    print(f"  Avg Invested:       ${results.avg_total_invested:>13,.2f}M")
    print(f"  Avg Distributed:    ${results.avg_distributed:>13,.2f}M")
    print("-" * 60)
    print(f"  Avg MOIC:           {results.avg_moic:>14.2f}x")
    print(f"  Avg IRR:            {results.avg_irr:>13.1f}%")
    print(f"  Success Rate:       {results.success_rate:>13.1f}%")
    print(f"  VaR (95%):          {simulator.compute_var(0.95):>14.2f}x")
    print(f"  Expected Shortfall: {simulator.expected_shortfall(0.95):>14.2f}x")
    print("=" * 60)

    # -------------------------------------------------------------------
    # 4. Per-company breakdown
    # -------------------------------------------------------------------
    summary = results.investment_summary()
    print("\nPer-Investment Averages:")
    print(
        summary[["company", "mean_entry", "mean_exit", "mean_moic", "loss_rate"]]
        .to_string(index=False, float_format=lambda x: f"{x:>8.2f}")
    )

    print("\nTrial MOIC percentiles:")
    for label, value in results.moic_percentiles.items():
        print(f"  {label}: {value:.2f}x")


if __name__ == "__main__":
    main()
