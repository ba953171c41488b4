"""
Pipeline module for OKR Pulse.

Contains the whole-portfolio roll-up orchestration.
"""

from .orchestrator import (
    PortfolioRollup,
    RollupNode,
    BreakdownItem,
    CalculationBreakdown,
)

__all__ = [
    'PortfolioRollup',
    'RollupNode',
    'BreakdownItem',
    'CalculationBreakdown',
]
