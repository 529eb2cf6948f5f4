# cardscan/models/yolo.py
"""
ObjectDetector backed by an Ultralytics YOLO checkpoint.

The model is loaded on first use and then shared; `ultralytics` is only
imported at that point so the core pipeline runs without it installed.
"""
from __future__ import annotations
import logging
import threading
from pathlib import Path
from typing import List, Union

import numpy as np

from cardscan.core.contracts import Detection, Rectangle

logger = logging.getLogger(__name__)


class UltralyticsDetector:
    def __init__(self, model_path: Union[str, Path], conf: float = 0.25, expand: float = 0.0):
        """
        model_path: .pt checkpoint (a card-trained model or a stock COCO one).
        conf:       score floor passed to the model itself.
        expand:     fractional padding added to each side of every box.
        """
        self.model_path = Path(model_path)
        self.conf = float(conf)
        self.expand = float(expand)
        self._model = None
        self._lock = threading.Lock()

    def get_model(self):
        """Singleton loader so the checkpoint is read once per detector."""
        with self._lock:
            if self._model is None:
                if not self.model_path.exists():
                    raise FileNotFoundError(f"Model not found at {self.model_path}")
                from ultralytics import YOLO
                logger.info("[yolo] loading model from %s", self.model_path)
                self._model = YOLO(str(self.model_path))
            return self._model

    def detect(self, image: np.ndarray) -> List[Detection]:
        model = self.get_model()
        h, w = image.shape[:2]
        results = model(image, conf=self.conf, verbose=False)[0]
        names = getattr(results, "names", None) or getattr(model, "names", {}) or {}

        out: List[Detection] = []
        boxes = results.boxes
        if boxes is None or len(boxes) == 0:
            logger.debug("[yolo] no detections")
            return out

        xyxy = boxes.xyxy.cpu().numpy().astype(float)
        confs = boxes.conf.cpu().numpy().astype(float)
        classes = boxes.cls.cpu().numpy().astype(int)
        for (x1, y1, x2, y2), score, cls in zip(xyxy, confs, classes):
            pad_x = (x2 - x1) * self.expand
            pad_y = (y2 - y1) * self.expand
            rect = Rectangle.from_corners(x1 - pad_x, y1 - pad_y, x2 + pad_x, y2 + pad_y, w, h)
            if rect is None:
                continue
            label = str(names.get(int(cls), cls)) if isinstance(names, dict) else str(names[int(cls)])
            out.append(Detection(box=rect, label=label, score=float(score)))
        logger.debug("[yolo] %d detections", len(out))
        return out

    def __repr__(self) -> str:
        return f"UltralyticsDetector({str(self.model_path)!r}, conf={self.conf})"
