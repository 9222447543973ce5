"""
metrics.py — Pure mathematical functions for fund return analysis.

No imports from within this library. All functions are stateless and
have no side effects. Safe to import from any module.
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
import numpy.typing as npt
from scipy import optimize

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# IRR
# ---------------------------------------------------------------------------

def calc_npv(cashflows: Sequence[float] | npt.NDArray[np.float64], rate: float) -> float:
    """Net present value of yearly cash flows (year 0 first) at ``rate``."""
    flows = np.asarray(cashflows, dtype=np.float64)
    years = np.arange(len(flows), dtype=np.float64)
    return float(np.sum(flows / (1.0 + rate) ** years))


def _npv_slope(flows: npt.NDArray[np.float64], rate: float) -> float:
    years = np.arange(len(flows), dtype=np.float64)
    return float(np.sum(-years * flows / (1.0 + rate) ** (years + 1)))


def newton_irr(
    cashflows: Sequence[float] | npt.NDArray[np.float64],
    guess: float = 0.1,
    max_iter: int = 100,
    npv_tol: float = 0.001,
) -> float:
    """
    Fixed-iteration Newton-Raphson IRR over evenly spaced cash flows.

    Starts at ``guess`` and applies ``rate -= npv / dnpv`` until
    ``|npv| < npv_tol`` or ``max_iter`` rounds have run. The cap and the
    NPV threshold are part of the contract: fund-level IRR figures are
    reproduced from them exactly.

    Parameters
    ----------
    cashflows:
        Cash flows per period. Negative = outflows, positive = inflows.
    guess:
        Starting rate.
    max_iter:
        Maximum number of Newton updates.
    npv_tol:
        Absolute NPV below which the rate is accepted.

    Returns
    -------
    float
        IRR as a decimal (e.g. 0.25 = 25%). Returns 0.0 when fewer than two
        cash flows are given, when the derivative vanishes, or when the
        iteration leaves the real line.
    """
    flows = np.asarray(cashflows, dtype=np.float64)
    if len(flows) < 2:
        return 0.0

    rate = guess
    with np.errstate(all="ignore"):
        for _ in range(max_iter):
            npv = calc_npv(flows, rate)
            dnpv = _npv_slope(flows, rate)

            if abs(npv) < npv_tol:
                break
            if dnpv == 0.0:
                logger.warning("IRR derivative vanished at rate %.6f; reporting 0", rate)
                return 0.0

            rate = rate - npv / dnpv

    if not np.isfinite(rate):
        logger.warning("IRR iteration diverged for cash flows %s; reporting 0", flows.tolist())
        return 0.0
    return float(rate)


# Rates scanned for a sign change when Newton fails: fine below 100%, coarse above
_BRACKET_GRID = np.concatenate([np.linspace(-0.99, 1.0, 200), np.geomspace(1.0, 100.0, 60)[1:]])


def calc_irr(cashflows: Sequence[float] | npt.NDArray[np.float64], tol: float = 1e-8) -> float:
    """
    IRR of a yearly projected cash-flow series, year 0 first.

    The forecaster's series mix an initial outlay, yearly fees and new
    deals with exit proceeds, so several sign changes are common. Newton
    runs first from 10%; if it does not converge to a rate in (-100%,
    10000%) the first sign change of the NPV over a fixed rate grid is
    bracketed and solved with Brent's method.

    Returns
    -------
    float
        IRR as a decimal, or nan when the flows never change sign or no
        root lies within the scanned range.
    """
    flows = np.asarray(cashflows, dtype=np.float64)
    if not (np.any(flows > 0) and np.any(flows < 0)):
        return float("nan")

    with np.errstate(all="ignore"):
        root, info = optimize.newton(
            lambda r: calc_npv(flows, r),
            x0=0.1,
            fprime=lambda r: _npv_slope(flows, r),
            tol=tol,
            maxiter=500,
            full_output=True,
            disp=False,
        )
        if info.converged and np.isfinite(root) and -1.0 < root < 100.0:
            return float(root)

        npvs = np.array([calc_npv(flows, r) for r in _BRACKET_GRID])

    crossings = np.flatnonzero(np.sign(npvs[:-1]) * np.sign(npvs[1:]) <= 0)
    if len(crossings) == 0:
        logger.debug("No IRR within the scanned rates for cash flows %s", flows.tolist())
        return float("nan")

    i = int(crossings[0])
    lo, hi = _BRACKET_GRID[i], _BRACKET_GRID[i + 1]
    return float(optimize.brentq(lambda r: calc_npv(flows, r), lo, hi, xtol=tol))


# ---------------------------------------------------------------------------
# Multiples
# ---------------------------------------------------------------------------

def calc_moic(invested: float, total_value: float) -> float:
    """Multiple on Invested Capital. Zero invested capital yields 0."""
    if invested <= 0:
        return 0.0
    return total_value / invested


def annualized_return(multiple: float, years: float) -> float:
    """
    Annualised return implied by a multiple over a holding period.

    ``multiple ** (1 / years) - 1``; a non-positive multiple is a total
    loss (-1.0) and a non-positive period yields 0.
    """
    if years <= 0:
        return 0.0
    if multiple <= 0:
        return -1.0
    return multiple ** (1.0 / years) - 1.0


# ---------------------------------------------------------------------------
# Fees and fund sizing
# ---------------------------------------------------------------------------

def calc_total_fees(
    setup_fees: float,
    management_fees: float,
    management_fee_years: int,
) -> float:
    """One-time setup fee plus a flat annual management fee over its term."""
    return setup_fees + management_fees * management_fee_years


def calc_fund_size(
    check_sizes: Sequence[float],
    total_fees: float,
    reserve_ratio: float,
) -> tuple[float, float]:
    """
    Fund size for reporting: initial checks + fees + follow-on reserve.

    Parameters
    ----------
    check_sizes:
        Initial check size per investment.
    total_fees:
        Setup plus management fees.
    reserve_ratio:
        Percent of initial checks held back for follow-ons.

    Returns
    -------
    (fund_size, follow_on_reserve)
    """
    initial = float(np.sum(np.asarray(check_sizes, dtype=np.float64)))
    reserve = initial * reserve_ratio / 100.0
    return initial + total_fees + reserve, reserve
