# cardscan/strategies/contour.py
"""
Region growing over the thresholded edge map.

Every unvisited high-gradient pixel seeds a 4-connected flood fill whose
bounding box becomes a candidate. Growth per component is capped so a noisy
photo cannot turn one fill into a scan of the whole frame; pixels left in the
queue when the cap hits stay unvisited and may seed later components.
"""
from __future__ import annotations
import logging
from collections import deque
from typing import Iterator, List, Tuple

import numpy as np

from cardscan.core.contracts import CardCandidate, Rectangle, Strategy
from cardscan.geometry.edges import EdgeMap
from cardscan.geometry.scoring import score
from cardscan.io.pixels import PixelBuffer
from cardscan.strategies.base import CandidateGenerator, Capabilities

logger = logging.getLogger(__name__)

# (x0, y0, x1, y1, pixel_count), corners inclusive
Component = Tuple[int, int, int, int, int]


def grow_regions(mask: np.ndarray, max_pixels: int = 10_000) -> Iterator[Component]:
    """Yield the bounding box of each capped 4-connected component, row-major seed order."""
    H, W = mask.shape[:2]
    flat = mask.ravel().tolist()
    visited = bytearray(H * W)
    for seed in np.flatnonzero(mask).tolist():
        if visited[seed]:
            continue
        visited[seed] = 1
        queue = deque([seed])
        x0 = y0 = 1 << 30
        x1 = y1 = -1
        count = 0
        while queue and count < max_pixels:
            p = queue.popleft()
            count += 1
            y, x = divmod(p, W)
            if x < x0: x0 = x
            if x > x1: x1 = x
            if y < y0: y0 = y
            if y > y1: y1 = y
            if x > 0:
                q = p - 1
                if flat[q] and not visited[q]:
                    visited[q] = 1; queue.append(q)
            if x < W - 1:
                q = p + 1
                if flat[q] and not visited[q]:
                    visited[q] = 1; queue.append(q)
            if y > 0:
                q = p - W
                if flat[q] and not visited[q]:
                    visited[q] = 1; queue.append(q)
            if y < H - 1:
                q = p + W
                if flat[q] and not visited[q]:
                    visited[q] = 1; queue.append(q)
        for q in queue:
            visited[q] = 0
        yield x0, y0, x1, y1, count


class ContourGrowthStrategy(CandidateGenerator):
    strategy = Strategy.CONTOUR_GROWTH

    def generate(self, buffer: PixelBuffer, edge_map: EdgeMap,
                 capabilities: Capabilities) -> List[CardCandidate]:
        cfg = self.config.contour
        if not cfg.enabled:
            return []
        mask = edge_map.mask(cfg.edge_threshold)
        out: List[CardCandidate] = []
        n_components = 0
        for x0, y0, x1, y1, count in grow_regions(mask, cfg.max_component_px):
            n_components += 1
            w, h = x1 - x0 + 1, y1 - y0 + 1
            if w < cfg.min_box_px or h < cfg.min_box_px:
                continue
            rect = Rectangle(x0, y0, w, h)
            conf = score(rect, edge_map, buffer, cfg.weights, self.config.scorer,
                         self.config.constraints.target_aspect)
            logger.debug("[contour] component %s px=%d conf=%.3f", rect.as_xyxy(), count, conf)
            out.append(CardCandidate(rect=rect, confidence=conf, source=self.strategy))
        logger.debug("[contour] %d components, %d boxes >= %dpx",
                     n_components, len(out), cfg.min_box_px)
        return out
