"""
Core contracts and simple data types shared across stages.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple
import numpy as np


class Strategy(str, Enum):
    """Which candidate generator proposed a region."""
    EXTERNAL_MODEL = "external_model"
    CONTOUR_GROWTH = "contour_growth"
    SLIDING_WINDOW = "sliding_window"


@dataclass(frozen=True)
class Rectangle:
    """
    Axis-aligned box in source-image pixels. (x, y) is the top-left corner,
    the box covers columns x..x+width-1 and rows y..y+height-1.
    """
    x: int
    y: int
    width: int
    height: int

    def __post_init__(self):
        for name in ("x", "y", "width", "height"):
            v = getattr(self, name)
            if isinstance(v, bool) or not isinstance(v, (int, np.integer)):
                raise TypeError(f"Rectangle.{name} must be an int, got {type(v).__name__}")
            object.__setattr__(self, name, int(v))
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Rectangle origin must be non-negative, got ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Rectangle size must be positive, got {self.width}x{self.height}")

    @classmethod
    def from_corners(cls, x0: float, y0: float, x1: float, y1: float,
                     image_w: int, image_h: int) -> Optional["Rectangle"]:
        """
        Build from exclusive (x0, y0, x1, y1) corners clipped to the image.
        Returns None when nothing is left after clipping.
        """
        if not all(np.isfinite(v) for v in (x0, y0, x1, y1)):
            return None
        ix0 = int(max(0, min(round(x0), image_w)))
        iy0 = int(max(0, min(round(y0), image_h)))
        ix1 = int(max(0, min(round(x1), image_w)))
        iy1 = int(max(0, min(round(y1), image_h)))
        if ix1 <= ix0 or iy1 <= iy0:
            return None
        return cls(ix0, iy0, ix1 - ix0, iy1 - iy0)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def aspect_ratio(self) -> float:
        """Width over height."""
        return self.width / float(self.height)

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def fits(self, image_w: int, image_h: int) -> bool:
        return self.right <= image_w and self.bottom <= image_h

    def intersection(self, other: "Rectangle") -> int:
        iw = min(self.right, other.right) - max(self.x, other.x)
        ih = min(self.bottom, other.bottom) - max(self.y, other.y)
        if iw <= 0 or ih <= 0:
            return 0
        return iw * ih

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.right, self.bottom

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class CardCandidate:
    """A rectangle proposed as a card location, with its plausibility in [0, 1]."""
    rect: Rectangle
    confidence: float
    source: Strategy

    def __post_init__(self):
        c = float(self.confidence)
        if not (0.0 <= c <= 1.0):
            raise ValueError(f"confidence must be in [0, 1], got {c}")
        object.__setattr__(self, "confidence", c)

    def to_dict(self) -> Dict:
        d = self.rect.to_dict()
        d.update({
            "confidence": round(self.confidence, 4),
            "aspect_ratio": round(self.rect.aspect_ratio, 4),
            "source": self.source.value,
        })
        return d


@dataclass(frozen=True)
class Detection:
    """One labelled box returned by an external object detector."""
    box: Rectangle
    label: str
    score: float


@dataclass(frozen=True)
class DetectionResult:
    """
    Outcome of one detection run. `candidates` is confidence-descending.
    `method_used` is None when no strategy produced a surviving region.
    """
    candidates: Tuple[CardCandidate, ...]
    processing_time_ms: float
    method_used: Optional[Strategy]
    background_removed: bool = False
    failures: Tuple[str, ...] = ()
    image_size: Tuple[int, int] = (0, 0)

    def __len__(self) -> int:
        return len(self.candidates)

    @property
    def found(self) -> bool:
        return len(self.candidates) > 0

    def to_dict(self) -> Dict:
        return {
            "candidates": [c.to_dict() for c in self.candidates],
            "processing_time_ms": round(self.processing_time_ms, 2),
            "method_used": self.method_used.value if self.method_used else None,
            "background_removed": self.background_removed,
            "failures": list(self.failures),
            "image_size": list(self.image_size),
        }


@dataclass(frozen=True, eq=False)
class CroppedCard:
    """
    A standardized-size copy of one accepted region. When cropping failed the
    image is an unmodified copy of the source and `fallback` is True.
    """
    region: Rectangle
    image: np.ndarray = field(repr=False)
    created_at: datetime
    confidence: Optional[float] = None
    fallback: bool = False

    @property
    def size(self) -> Tuple[int, int]:
        h, w = self.image.shape[:2]
        return w, h


@dataclass(frozen=True)
class BatchEntry:
    """Per-image slot of a batch run: either a result or the error that stopped it."""
    index: int
    result: Optional[DetectionResult]
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is not None
