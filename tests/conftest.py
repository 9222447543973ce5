"""
conftest.py — Shared pytest fixtures for vc_fund_sim test suite.
"""
from __future__ import annotations

import pytest

from vc_fund_sim.fund import SimulationConfig
from vc_fund_sim.investment import Investment
from vc_fund_sim.stages import StageParameters


@pytest.fixture(scope="session")
def sample_investments() -> list[Investment]:
    """A diversified preset-based portfolio."""
    return [
        Investment.from_preset("AlphaAI", "Seed", 10.0, 1.0, sector="software", investment_id="alpha"),
        Investment.from_preset("BetaHealth", "Series A", 40.0, 3.0, sector="healthcare", investment_id="beta"),
        Investment.from_preset("GammaPay", "Pre-Seed", 5.0, 0.5, sector="fintech", investment_id="gamma"),
        Investment.from_preset("DeltaGrid", "Series B", 120.0, 4.0, sector="energy", region="Europe", investment_id="delta"),
        Investment.from_preset("EpsilonBio", "Seed", 12.0, 1.5, sector="biotech", investment_id="epsilon"),
    ]


@pytest.fixture(scope="session")
def pinned_investment() -> Investment:
    """
    Seed company that always reaches Series A with no dilution and exits
    there at exactly $50MM: 20% of 50 = 10, a 10x multiple.
    """
    return Investment(
        name="Pinned",
        entry_stage="Seed",
        entry_valuation=5.0,
        check_size=1.0,
        stages={
            "Seed": StageParameters(exit_valuation=(5.0, 5.0)),
            "Series A": StageParameters(
                progression=100.0,
                dilution=0.0,
                loss_probability=0.0,
                exit_valuation=(50.0, 50.0),
            ),
            "Series B": StageParameters(progression=0.0),
        },
        investment_id="pinned",
    )


@pytest.fixture(scope="session")
def small_config() -> SimulationConfig:
    """Few trials for fast tests."""
    return SimulationConfig(num_simulations=50)
