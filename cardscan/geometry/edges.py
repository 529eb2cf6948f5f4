# cardscan/geometry/edges.py
from __future__ import annotations
from dataclasses import dataclass

import cv2
import numpy as np

from cardscan.io.pixels import PixelBuffer


@dataclass(frozen=True, eq=False)
class EdgeMap:
    """
    Sobel gradient magnitude, same size as the source buffer.
    uint8, min(255, sqrt(gx^2 + gy^2)) truncated; the one-pixel frame is 0.
    """
    magnitude: np.ndarray

    @property
    def width(self) -> int:
        return int(self.magnitude.shape[1])

    @property
    def height(self) -> int:
        return int(self.magnitude.shape[0])

    def at(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Magnitudes at integer coords, clamped to the map, as float64."""
        xs = np.clip(xs, 0, self.width - 1)
        ys = np.clip(ys, 0, self.height - 1)
        return self.magnitude[ys, xs].astype(np.float64)

    def mask(self, threshold: int) -> np.ndarray:
        return self.magnitude >= threshold


def sobel_magnitude(gray: np.ndarray) -> np.ndarray:
    """
    3x3 Sobel over the interior. Gx = [-1,0,1,-2,0,2,-1,0,1], Gy its transpose.
    Border rows/cols are left at zero.
    """
    H, W = gray.shape[:2]
    out = np.zeros((H, W), np.uint8)
    if H < 3 or W < 3:
        return out
    src = gray.astype(np.float32)
    gx = cv2.Sobel(src, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(src, cv2.CV_32F, 0, 1, ksize=3)
    mag = np.minimum(cv2.magnitude(gx, gy), 255.0)
    # interior only; the border rows depend on cv2's padding and are discarded
    out[1:-1, 1:-1] = mag[1:-1, 1:-1].astype(np.uint8)
    return out


def build_edge_map(buffer: PixelBuffer) -> EdgeMap:
    mag = sobel_magnitude(buffer.gray)
    mag.setflags(write=False)
    return EdgeMap(magnitude=mag)
