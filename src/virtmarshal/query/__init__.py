"""
Two-phase queries.

This package contains:
- two_phase: the generic probe-then-fetch protocol
- listings: the catalog of name/id listings and node statistics built on it
"""

from .listings import LISTINGS, STATISTICS, get_statistics, list_names
from .two_phase import ArrayLayout, TwoPhaseQuery, run_two_phase

__all__ = [
    "ArrayLayout",
    "TwoPhaseQuery",
    "run_two_phase",
    "LISTINGS",
    "STATISTICS",
    "list_names",
    "get_statistics",
]
