# cardscan/geometry/detect.py
"""
Detection orchestrator.

Strategies run in priority order (external model → contour growth → sliding
window). The first strategy with at least one candidate surviving the
geometric filter supplies the whole result: overlap resolution, then the
result cap. A strategy that raises or times out counts as empty. Only an
unreadable image (InvalidInput) escapes `detect`.
"""
from __future__ import annotations
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence

import numpy as np

from cardscan.core.config import DetectionConfig
from cardscan.core.contracts import BatchEntry, CardCandidate, DetectionResult, Strategy
from cardscan.core.errors import InvalidInput, StrategyFailure
from cardscan.geometry.constraints import filter_candidates
from cardscan.geometry.edges import build_edge_map
from cardscan.geometry.overlap import resolve
from cardscan.io.pixels import PixelBuffer
from cardscan.strategies.base import CandidateGenerator, Capabilities
from cardscan.strategies.contour import ContourGrowthStrategy
from cardscan.strategies.external import ExternalModelStrategy
from cardscan.strategies.sliding import SlidingWindowStrategy

logger = logging.getLogger(__name__)


def default_strategies(config: DetectionConfig) -> List[CandidateGenerator]:
    return [
        ExternalModelStrategy(config),
        ContourGrowthStrategy(config),
        SlidingWindowStrategy(config),
    ]


class CardDetector:
    """Stateless between runs; safe to share across threads."""

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        capabilities: Optional[Capabilities] = None,
        strategies: Optional[Sequence[CandidateGenerator]] = None,
    ):
        self.config = config or DetectionConfig()
        self.capabilities = capabilities or Capabilities()
        self.strategies = list(strategies) if strategies is not None else default_strategies(self.config)

    def detect(self, image, capabilities: Optional[Capabilities] = None) -> DetectionResult:
        start = time.perf_counter()
        caps = capabilities or self.capabilities
        buffer = PixelBuffer.from_array(image)
        edge_map = build_edge_map(buffer)
        W, H = buffer.width, buffer.height
        cfg = self.config

        failures: List[str] = []
        bg_removed = False
        for gen in self.strategies:
            try:
                run = gen.run(buffer, edge_map, caps)
            except StrategyFailure as e:
                logger.warning("[detect] %s", e)
                failures.append(str(e))
                continue
            except Exception as e:
                err = StrategyFailure(gen.strategy, f"{type(e).__name__}: {e}")
                logger.warning("[detect] %s", err)
                failures.append(str(err))
                continue

            bg_removed = bg_removed or run.background_removed
            raw = [c for c in run.candidates if c.rect.fits(W, H)]
            accepted = filter_candidates(raw, W, H, cfg.constraints, gen.strategy)
            logger.debug("[detect] %s: %d raw, %d pass constraints",
                         gen.name, len(raw), len(accepted))
            if not accepted:
                continue

            kept = resolve(accepted, cfg.overlap_threshold)[:cfg.max_results]
            return self._finish(kept, start, gen.strategy, bg_removed, failures, W, H)

        return self._finish([], start, None, bg_removed, failures, W, H)

    @staticmethod
    def _finish(candidates: List[CardCandidate], start: float, method: Optional[Strategy],
                bg_removed: bool, failures: List[str], W: int, H: int) -> DetectionResult:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        result = DetectionResult(
            candidates=tuple(candidates),
            processing_time_ms=elapsed_ms,
            method_used=method,
            background_removed=bg_removed,
            failures=tuple(failures),
            image_size=(W, H),
        )
        logger.info("[detect] %d card(s) via %s in %.0fms",
                    len(candidates), method.value if method else "none", elapsed_ms)
        return result

    def _detect_entry(self, index: int, image, cancel: Optional[threading.Event]) -> Optional[BatchEntry]:
        if cancel is not None and cancel.is_set():
            return None
        try:
            return BatchEntry(index=index, result=self.detect(image))
        except InvalidInput as e:
            logger.warning("[batch] image %d rejected: %s", index, e)
            return BatchEntry(index=index, result=None, error=str(e))
        except Exception as e:
            logger.exception("[batch] image %d failed", index)
            return BatchEntry(index=index, result=None, error=f"{type(e).__name__}: {e}")

    def detect_batch(
        self,
        images: Iterable,
        *,
        workers: int = 1,
        cancel: Optional[threading.Event] = None,
    ) -> List[BatchEntry]:
        """
        Detect on each image independently. Entries come back in input order.
        A failing image only fails its own entry. Once `cancel` is set no new
        image is started; entries already finished are returned as they are.
        """
        entries: List[Optional[BatchEntry]] = []
        if workers <= 1:
            for i, img in enumerate(images):
                if cancel is not None and cancel.is_set():
                    logger.info("[batch] cancelled after %d image(s)", i)
                    break
                entries.append(self._detect_entry(i, img, cancel))
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="cardscan-batch") as pool:
                futures = [pool.submit(self._detect_entry, i, img, cancel)
                           for i, img in enumerate(images)]
                entries = [f.result() for f in futures]
        return [e for e in entries if e is not None]


def detect(
    image: np.ndarray,
    config: Optional[DetectionConfig] = None,
    capabilities: Optional[Capabilities] = None,
) -> DetectionResult:
    return CardDetector(config, capabilities).detect(image)
