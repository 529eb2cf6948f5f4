# cardscan/strategies/sliding.py
"""
Exhaustive fixed-aspect window scan, the last-resort strategy.

Window widths are fractions of the image width, heights follow the target
card aspect, and windows step by (1 - overlap) of their own size. Every
window is scored; windows are scored independently so they can be spread
over a thread pool.
"""
from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from cardscan.core.config import CARD_ASPECT, SlidingConfig
from cardscan.core.contracts import CardCandidate, Rectangle, Strategy
from cardscan.geometry.edges import EdgeMap
from cardscan.geometry.scoring import border_edge_density, score_breakdown
from cardscan.io.pixels import PixelBuffer
from cardscan.strategies.base import CandidateGenerator, Capabilities

logger = logging.getLogger(__name__)


def window_grid(image_w: int, image_h: int, cfg: SlidingConfig = SlidingConfig(),
                target_aspect: float = CARD_ASPECT, min_size_px: int = 1) -> List[Rectangle]:
    """All scan windows, scale by scale, row-major within a scale."""
    out: List[Rectangle] = []
    for scale in cfg.scales:
        w = int(image_w * scale)
        h = int(round(w / target_aspect))
        if w < max(1, min_size_px) or h < max(1, min_size_px) or w > image_w or h > image_h:
            continue
        step_x = max(1, int(w * (1.0 - cfg.overlap)))
        step_y = max(1, int(h * (1.0 - cfg.overlap)))
        for y in range(0, image_h - h + 1, step_y):
            for x in range(0, image_w - w + 1, step_x):
                out.append(Rectangle(x, y, w, h))
    return out


class SlidingWindowStrategy(CandidateGenerator):
    strategy = Strategy.SLIDING_WINDOW

    def generate(self, buffer: PixelBuffer, edge_map: EdgeMap,
                 capabilities: Capabilities) -> List[CardCandidate]:
        cfg = self.config.sliding
        if not cfg.enabled:
            return []
        windows = window_grid(buffer.width, buffer.height, cfg,
                              self.config.constraints.target_aspect,
                              self.config.constraints.min_size_px)

        def _evaluate(rect: Rectangle) -> Optional[CardCandidate]:
            # cheap gate first: no boundary response, no card
            if border_edge_density(rect, edge_map, self.config.scorer) < cfg.min_border_score:
                return None
            s = score_breakdown(rect, edge_map, buffer, cfg.weights, self.config.scorer,
                                self.config.constraints.target_aspect)
            if s.total <= cfg.min_score:
                return None
            return CardCandidate(rect=rect, confidence=s.total, source=self.strategy)

        if cfg.workers > 1 and len(windows) > 1:
            with ThreadPoolExecutor(max_workers=cfg.workers, thread_name_prefix="cardscan-window") as pool:
                scored = list(pool.map(_evaluate, windows))
        else:
            scored = [_evaluate(r) for r in windows]

        out = [c for c in scored if c is not None]
        logger.debug("[sliding] %d windows, %d above %.2f", len(windows), len(out), cfg.min_score)
        return out
