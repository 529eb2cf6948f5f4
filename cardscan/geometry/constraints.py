# cardscan/geometry/constraints.py
from __future__ import annotations
import logging
from typing import Iterable, List

from cardscan.core.config import CARD_ASPECT, ConstraintConfig
from cardscan.core.contracts import CardCandidate, Rectangle, Strategy

logger = logging.getLogger(__name__)


def accepts(rect: Rectangle, image_w: int, image_h: int, *,
            target_aspect: float = CARD_ASPECT,
            aspect_tolerance: float = 0.15,
            min_area_ratio: float = 0.01,
            max_area_ratio: float = 0.90,
            min_size_px: int = 50) -> bool:
    """True when the box is card-sized and card-shaped for this image."""
    image_area = float(image_w * image_h)
    if image_area <= 0:
        return False
    if not rect.fits(image_w, image_h):
        return False
    if rect.width < min_size_px or rect.height < min_size_px:
        return False
    area_ratio = rect.area / image_area
    if area_ratio < min_area_ratio or area_ratio > max_area_ratio:
        return False
    return abs(rect.aspect_ratio - target_aspect) <= aspect_tolerance


def filter_candidates(candidates: Iterable[CardCandidate], image_w: int, image_h: int,
                      cfg: ConstraintConfig, strategy: Strategy) -> List[CardCandidate]:
    tol = cfg.tolerance_for(strategy)
    kept = []
    for c in candidates:
        ok = accepts(c.rect, image_w, image_h,
                     target_aspect=cfg.target_aspect,
                     aspect_tolerance=tol,
                     min_area_ratio=cfg.min_area_ratio,
                     max_area_ratio=cfg.max_area_ratio,
                     min_size_px=cfg.min_size_px)
        if ok:
            kept.append(c)
        else:
            logger.debug("[plaus] reject %s: %dx%d aspect=%.3f area%%=%.4f", strategy.value,
                         c.rect.width, c.rect.height, c.rect.aspect_ratio,
                         c.rect.area / float(image_w * image_h))
    return kept
