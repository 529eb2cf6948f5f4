# cardscan/geometry/crop.py
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import List, Optional, Union

import cv2
import numpy as np

from cardscan.core.contracts import CardCandidate, CroppedCard, DetectionResult, Rectangle
from cardscan.core.errors import CropFailure
from cardscan.io.pixels import PixelBuffer

logger = logging.getLogger(__name__)

# width, height of a standard card crop
_DEFAULT_SIZE = (300, 420)

Region = Union[CardCandidate, Rectangle]


def _check_bounds(rect: Rectangle, image: np.ndarray) -> None:
    H, W = image.shape[:2]
    if not rect.fits(W, H):
        raise CropFailure(f"region {rect.as_xyxy()} outside {W}x{H} image")


def crop_card(
    image: Union[np.ndarray, PixelBuffer],
    region: Region,
    output_width: Optional[int] = None,
    output_height: Optional[int] = None,
) -> CroppedCard:
    """
    Resample `region` of `image` into a fixed-size card image (bilinear).

    Args:
        image: BGR/gray ndarray or a PixelBuffer.
        region: a CardCandidate or a bare Rectangle.
        output_width/output_height: if one is missing it follows the region's
                                    own aspect, if both are missing 300x420 is used.

    Returns:
        CroppedCard owning its pixels. If the region does not fit the image,
        the card holds an unmodified copy of the source and fallback=True.
    """
    src = image.to_bgr() if isinstance(image, PixelBuffer) else image
    if isinstance(region, CardCandidate):
        rect, conf = region.rect, region.confidence
    else:
        rect, conf = region, None

    hw = rect.height / float(rect.width)
    if output_width is None and output_height is None:
        dst_w, dst_h = _DEFAULT_SIZE
    elif output_height is None:
        dst_w, dst_h = int(output_width), max(1, int(round(output_width * hw)))
    elif output_width is None:
        dst_w, dst_h = max(1, int(round(output_height / hw))), int(output_height)
    else:
        dst_w, dst_h = int(output_width), int(output_height)

    try:
        _check_bounds(rect, src)
        roi = src[rect.y:rect.bottom, rect.x:rect.right]
        out = cv2.resize(roi, (dst_w, dst_h), interpolation=cv2.INTER_LINEAR)
        fallback = False
    except (CropFailure, cv2.error) as e:
        logger.warning("[crop] %s; returning the source image", e)
        out = np.array(src, copy=True)
        fallback = True

    return CroppedCard(region=rect, image=out, created_at=datetime.now(timezone.utc),
                       confidence=conf, fallback=fallback)


def crop_all(
    image: Union[np.ndarray, PixelBuffer],
    result: DetectionResult,
    output_width: Optional[int] = 300,
    output_height: Optional[int] = 420,
) -> List[CroppedCard]:
    """One CroppedCard per surviving candidate, in result order."""
    return [crop_card(image, c, output_width, output_height) for c in result.candidates]
