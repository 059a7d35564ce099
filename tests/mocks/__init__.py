"""
Offline test doubles for MnemoGraph.

Usage:
    from mocks import FakeClock, StubPredictor

    clock = FakeClock()
    clock.advance(hours=2)
"""

from .clock import FakeClock
from .predictors import AsyncStubPredictor, FailingPredictor, StubPredictor, unit

__all__ = [
    "FakeClock",
    "StubPredictor",
    "AsyncStubPredictor",
    "FailingPredictor",
    "unit",
]
