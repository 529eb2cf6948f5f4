# cardscan/geometry/overlap.py
from __future__ import annotations
import logging
from typing import List, Sequence

from cardscan.core.contracts import CardCandidate, Rectangle

logger = logging.getLogger(__name__)


def overlap_ratio(a: Rectangle, b: Rectangle) -> float:
    """Intersection area over the smaller box's area (not IoU)."""
    inter = a.intersection(b)
    if inter == 0:
        return 0.0
    return inter / float(min(a.area, b.area))


def resolve(candidates: Sequence[CardCandidate], threshold: float = 0.5) -> List[CardCandidate]:
    """
    Greedy non-maximum suppression.

    Walk candidates by confidence (descending, stable so equal scores keep
    generation order) and keep one unless it overlaps an already kept box by
    more than `threshold`. Output is confidence-descending; running it again on
    its own output changes nothing.
    """
    ordered = sorted(candidates, key=lambda c: c.confidence, reverse=True)
    keep: List[CardCandidate] = []
    for cand in ordered:
        clash = next((k for k in keep if overlap_ratio(cand.rect, k.rect) > threshold), None)
        if clash is None:
            keep.append(cand)
        else:
            logger.debug("[nms] drop %s conf=%.3f (overlaps conf=%.3f)",
                         cand.rect.as_xyxy(), cand.confidence, clash.confidence)
    logger.debug("[nms] %d -> %d candidates", len(candidates), len(keep))
    return keep
