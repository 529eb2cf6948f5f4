# cardscan/strategies/base.py
"""
Shared interface of the candidate generators.

Each generator is tagged with the Strategy it implements and exposes
`generate(buffer, edge_map, capabilities) -> list[CardCandidate]`. The
orchestrator calls `run`, which also reports whether the source was
preprocessed (only the external-model strategy does that today).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from cardscan.core.config import DetectionConfig
from cardscan.core.contracts import CardCandidate, Detection, Strategy
from cardscan.geometry.edges import EdgeMap
from cardscan.io.pixels import PixelBuffer


@runtime_checkable
class ObjectDetector(Protocol):
    def detect(self, image: np.ndarray) -> Sequence[Detection]:
        """Labelled boxes for a BGR image. May be slow; may raise."""
        ...


@runtime_checkable
class BackgroundRemover(Protocol):
    def remove_background(self, image: np.ndarray) -> Optional[np.ndarray]:
        """BGR image of the same size with the background blanked, or None."""
        ...


@dataclass(frozen=True)
class Capabilities:
    """External collaborators a run may use. Both are optional."""
    detector: Optional[ObjectDetector] = None
    background_remover: Optional[BackgroundRemover] = None


@dataclass(frozen=True)
class StrategyRun:
    candidates: List[CardCandidate] = field(default_factory=list)
    background_removed: bool = False


class CandidateGenerator:
    strategy: Strategy

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or DetectionConfig()

    @property
    def name(self) -> str:
        return self.strategy.value

    def generate(self, buffer: PixelBuffer, edge_map: EdgeMap,
                 capabilities: Capabilities) -> List[CardCandidate]:
        raise NotImplementedError

    def run(self, buffer: PixelBuffer, edge_map: EdgeMap,
            capabilities: Capabilities) -> StrategyRun:
        return StrategyRun(candidates=list(self.generate(buffer, edge_map, capabilities)))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(strategy={self.name})"
