"""
errors.py — Exception types raised by the simulation engine.

Numeric degeneracies (non-converging IRR, zero invested capital) are not
errors: they are replaced by documented fallbacks and logged.
"""
from __future__ import annotations


class MalformedInputError(ValueError):
    """Caller-supplied portfolio or configuration cannot be simulated."""
