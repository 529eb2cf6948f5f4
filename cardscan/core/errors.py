"""
Exception types raised by the detection pipeline.
"""

from __future__ import annotations
from typing import Optional

from cardscan.core.contracts import Strategy


class CardScanError(Exception):
    pass


class InvalidInput(CardScanError, ValueError):
    """The source image cannot be processed at all (None, wrong dtype/shape, zero area)."""


class StrategyFailure(CardScanError):
    """A single candidate generator raised or timed out."""

    def __init__(self, strategy: Optional[Strategy], message: str):
        super().__init__(message)
        self.strategy = strategy

    def __str__(self) -> str:
        name = self.strategy.value if self.strategy else "unknown"
        return f"{name}: {self.args[0]}"


class CropFailure(CardScanError):
    """Crop bounds fall outside the source buffer."""
