"""
Uniform read-only pixel access for the detection core.

Sources follow the OpenCV convention (BGR / BGRA, uint8) unless `order="rgb"`
is given. Internally we keep RGBA for colour sources and an 8-bit luma plane
for everyone; both arrays are flagged read-only so strategies can share them.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from cardscan.core.errors import InvalidInput

# ITU-R BT.601 luma weights (R, G, B)
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def _readonly(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr)
    arr.setflags(write=False)
    return arr


def luma(rgb: np.ndarray) -> np.ndarray:
    """0.299R + 0.587G + 0.114B, rounded to uint8."""
    y = rgb[..., :3].astype(np.float64) @ _LUMA
    return np.clip(np.rint(y), 0, 255).astype(np.uint8)


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    gray: np.ndarray
    rgba: Optional[np.ndarray] = None

    @property
    def width(self) -> int:
        return int(self.gray.shape[1])

    @property
    def height(self) -> int:
        return int(self.gray.shape[0])

    @property
    def shape(self):
        return self.height, self.width

    @property
    def is_color(self) -> bool:
        return self.rgba is not None

    @classmethod
    def from_array(cls, image, order: str = "bgr") -> "PixelBuffer":
        """
        Wrap a decoded image. Accepts HxW, HxWx1, HxWx3, HxWx4 uint8 arrays.
        Raises InvalidInput for anything we cannot read.
        """
        if isinstance(image, PixelBuffer):
            return image
        if image is None:
            raise InvalidInput("image is None")
        if not isinstance(image, np.ndarray):
            raise InvalidInput(f"expected a numpy array, got {type(image).__name__}")
        if image.dtype != np.uint8:
            raise InvalidInput(f"expected uint8 pixels, got {image.dtype}")
        if order not in ("bgr", "rgb"):
            raise ValueError(f"order must be 'bgr' or 'rgb', got {order!r}")
        if image.ndim == 3 and image.shape[2] == 1:
            image = image[..., 0]
        if image.ndim not in (2, 3) or (image.ndim == 3 and image.shape[2] not in (3, 4)):
            raise InvalidInput(f"unsupported image shape {image.shape}")
        if image.shape[0] == 0 or image.shape[1] == 0:
            raise InvalidInput(f"zero-area image {image.shape[1]}x{image.shape[0]}")

        if image.ndim == 2:
            return cls(gray=_readonly(image.copy()))

        if image.shape[2] == 3:
            code = cv2.COLOR_BGR2RGBA if order == "bgr" else cv2.COLOR_RGB2RGBA
        else:
            code = cv2.COLOR_BGRA2RGBA if order == "bgr" else None
        rgba = cv2.cvtColor(image, code) if code is not None else image.copy()
        return cls(gray=_readonly(luma(rgba)), rgba=_readonly(rgba))

    def to_bgr(self) -> np.ndarray:
        """Fresh writable BGR copy (what cv2 and the external models expect)."""
        if self.rgba is None:
            return cv2.cvtColor(self.gray, cv2.COLOR_GRAY2BGR)
        return cv2.cvtColor(self.rgba, cv2.COLOR_RGBA2BGR)

    def intensity(self, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
        """Gray values at integer coords, clamped to the image, as float64."""
        xs = np.clip(xs, 0, self.width - 1)
        ys = np.clip(ys, 0, self.height - 1)
        return self.gray[ys, xs].astype(np.float64)
