# cardscan/models/background.py
from __future__ import annotations
import logging
import threading
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class RembgBackgroundRemover:
    """BackgroundRemover using rembg; the session is created on first call."""

    def __init__(self, model_name: str = "u2net"):
        self.model_name = model_name
        self._session = None
        self._lock = threading.Lock()

    def _get_session(self):
        with self._lock:
            if self._session is None:
                from rembg import new_session
                logger.info("[rembg] creating session (%s)", self.model_name)
                self._session = new_session(self.model_name)
            return self._session

    def remove_background(self, image: np.ndarray) -> Optional[np.ndarray]:
        from rembg import remove

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        cut = remove(rgb, session=self._get_session())
        if not isinstance(cut, np.ndarray) or cut.ndim != 3 or cut.shape[:2] != image.shape[:2]:
            logger.warning("[rembg] unexpected output %s", getattr(cut, "shape", type(cut)))
            return None
        if cut.shape[2] == 4:
            # composite the cut-out onto black
            alpha = cut[..., 3:4].astype(np.float32) / 255.0
            cut = (cut[..., :3].astype(np.float32) * alpha).round().astype(np.uint8)
        return cv2.cvtColor(cut[..., :3], cv2.COLOR_RGB2BGR)
