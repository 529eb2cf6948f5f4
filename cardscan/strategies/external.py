# cardscan/strategies/external.py
"""
Card candidates from an external object detector.

Generic detectors know nothing about trading cards, so every labelled box is
reinterpreted: it becomes a card candidate when it is card-shaped, or when its
label is not an obviously non-card category. The detector call runs on a
worker thread and is abandoned after `timeout_s`.
"""
from __future__ import annotations
import logging
import re
import threading
from typing import List, Sequence, Tuple

import numpy as np

from cardscan.core.contracts import CardCandidate, Detection, Rectangle, Strategy
from cardscan.core.errors import StrategyFailure
from cardscan.geometry.edges import EdgeMap
from cardscan.io.pixels import PixelBuffer
from cardscan.strategies.base import (
    BackgroundRemover,
    CandidateGenerator,
    Capabilities,
    ObjectDetector,
    StrategyRun,
)

logger = logging.getLogger(__name__)


class ExternalModelStrategy(CandidateGenerator):
    strategy = Strategy.EXTERNAL_MODEL

    def generate(self, buffer: PixelBuffer, edge_map: EdgeMap,
                 capabilities: Capabilities) -> List[CardCandidate]:
        return self.run(buffer, edge_map, capabilities).candidates

    def run(self, buffer: PixelBuffer, edge_map: EdgeMap,
            capabilities: Capabilities) -> StrategyRun:
        cfg = self.config.external
        if not cfg.enabled or capabilities.detector is None:
            logger.debug("[external] no detector available, skipping")
            return StrategyRun()

        image = buffer.to_bgr()
        removed = False
        if cfg.remove_background and capabilities.background_remover is not None:
            image, removed = self._remove_background(image, capabilities.background_remover)

        detections = self._detect(capabilities.detector, image, cfg.timeout_s)
        candidates = self.reinterpret(detections, buffer.width, buffer.height)
        logger.debug("[external] %d detections -> %d card candidates (bg_removed=%s)",
                     len(detections), len(candidates), removed)
        return StrategyRun(candidates=candidates, background_removed=removed)

    def _remove_background(self, image: np.ndarray,
                           remover: BackgroundRemover) -> Tuple[np.ndarray, bool]:
        """Best effort: any failure means we carry on with the original image."""
        try:
            out = remover.remove_background(image)
        except Exception as e:
            logger.warning("[external] background removal failed, using original image: %s", e)
            return image, False
        if not isinstance(out, np.ndarray) or out.shape[:2] != image.shape[:2] or out.dtype != np.uint8:
            logger.warning("[external] background removal returned an unusable image, using original")
            return image, False
        return out, True

    def _detect(self, detector: ObjectDetector, image: np.ndarray, timeout_s: float) -> List[Detection]:
        """
        Call the detector on a daemon thread and wait at most `timeout_s`.
        A call that overruns is abandoned; being a daemon it cannot hold
        the interpreter open at exit.
        """
        done = threading.Event()
        slot = {}

        def _call():
            try:
                slot["result"] = detector.detect(image)
            except Exception as e:
                slot["error"] = e
            finally:
                done.set()

        worker = threading.Thread(target=_call, name="cardscan-detector", daemon=True)
        worker.start()
        if not done.wait(timeout_s):
            raise StrategyFailure(self.strategy, f"detector timed out after {timeout_s:.1f}s")
        if "error" in slot:
            e = slot["error"]
            raise StrategyFailure(self.strategy, f"detector failed: {e}") from e
        return list(slot.get("result") or [])

    def is_excluded(self, label: str) -> bool:
        # whole words only: "car" must not exclude "card"
        low = (label or "").lower()
        return any(re.search(rf"\b{re.escape(x.lower())}\b", low)
                   for x in self.config.external.excluded_labels)

    def reinterpret(self, detections: Sequence[Detection], image_w: int, image_h: int) -> List[CardCandidate]:
        cfg = self.config.external
        target = self.config.constraints.target_aspect
        out: List[CardCandidate] = []
        for det in detections:
            if det.score < cfg.min_confidence:
                continue
            box = det.box
            rect = Rectangle.from_corners(box.x, box.y, box.right, box.bottom, image_w, image_h)
            if rect is None:
                continue
            card_shaped = abs(rect.aspect_ratio - target) < cfg.aspect_closeness
            if not card_shaped and self.is_excluded(det.label):
                logger.debug("[external] drop '%s' %.2f: excluded label, aspect %.3f",
                             det.label, det.score, rect.aspect_ratio)
                continue
            conf = min(1.0, max(0.0, float(det.score)))
            out.append(CardCandidate(rect=rect, confidence=conf, source=self.strategy))
        return out
