"""
Simple I/O helpers for reading images (BGR, as OpenCV expects).
"""

from __future__ import annotations
from pathlib import Path
from typing import Union

import cv2
import numpy as np


PathLike = Union[str, Path]


def load_image(path: PathLike) -> np.ndarray:
    """
    Load an image from disk (BGR).
    Raises FileNotFoundError if not found.
    """
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Could not read image at: {path}")
    return img


def save_image(path: PathLike, image: np.ndarray) -> Path:
    """Encode by file extension. Raises OSError if OpenCV refuses to write."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(p), image):
        raise OSError(f"Could not write image to: {p}")
    return p
