"""
Tuning constants for the detection pipeline, gathered in one immutable
structure. Defaults can be overridden from a YAML file (see config/detect.yaml)
or a plain dict; partial dicts are merged over the defaults section by section.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple
import math

import yaml

from cardscan.core.contracts import Strategy

# Standard trading card, 2.5in x 3.5in (width / height)
CARD_ASPECT = 2.5 / 3.5

# COCO categories that are never a card lying on a table
_EXCLUDED_LABELS: Tuple[str, ...] = (
    "person", "bicycle", "car", "motorcycle", "airplane", "bus", "train", "truck",
    "boat", "traffic light", "fire hydrant", "stop sign", "parking meter", "bench",
    "bird", "cat", "dog", "horse", "sheep", "cow", "elephant", "bear", "zebra",
    "giraffe", "backpack", "umbrella", "handbag", "tie", "suitcase", "frisbee",
    "skis", "snowboard", "sports ball", "kite", "baseball bat", "baseball glove",
    "skateboard", "surfboard", "tennis racket",
)


@dataclass(frozen=True)
class ScoreWeights:
    """Blend of the scorer signals; must sum to 1."""
    border: float = 0.5
    uniformity: float = 0.3
    aspect: float = 0.2

    def __post_init__(self):
        vals = (self.border, self.uniformity, self.aspect)
        if any(v < 0 for v in vals):
            raise ValueError(f"score weights must be non-negative, got {vals}")
        if not math.isclose(sum(vals), 1.0, abs_tol=1e-6):
            raise ValueError(f"score weights must sum to 1, got {sum(vals):.4f}")


@dataclass(frozen=True)
class ScorerConfig:
    border_samples: int = 20        # per side
    border_offset: int = 3          # px, inside/outside probe distance
    interior_samples: int = 24
    neighbor_offset: int = 3        # px, 8-neighbour ring radius
    variance_norm: float = 1000.0   # K in max(0, 1 - var / K)
    seed: int = 0

    def __post_init__(self):
        if self.border_samples < 1 or self.interior_samples < 1:
            raise ValueError("scorer sample counts must be >= 1")
        if self.border_offset < 1 or self.neighbor_offset < 1:
            raise ValueError("scorer offsets must be >= 1")
        if self.variance_norm <= 0:
            raise ValueError("variance_norm must be positive")


@dataclass(frozen=True)
class ConstraintConfig:
    target_aspect: float = CARD_ASPECT
    min_area_ratio: float = 0.01
    max_area_ratio: float = 0.90
    min_size_px: int = 50
    # External detections are noisier than the pixel strategies.
    tolerance_external: float = 0.25
    tolerance_contour: float = 0.15
    tolerance_sliding: float = 0.05

    def __post_init__(self):
        if self.target_aspect <= 0:
            raise ValueError("target_aspect must be positive")
        if not (0.0 <= self.min_area_ratio <= self.max_area_ratio <= 1.0):
            raise ValueError(f"bad area ratio bounds ({self.min_area_ratio}, {self.max_area_ratio})")

    def tolerance_for(self, strategy: Strategy) -> float:
        return {
            Strategy.EXTERNAL_MODEL: self.tolerance_external,
            Strategy.CONTOUR_GROWTH: self.tolerance_contour,
            Strategy.SLIDING_WINDOW: self.tolerance_sliding,
        }[strategy]


@dataclass(frozen=True)
class ExternalConfig:
    enabled: bool = True
    min_confidence: float = 0.3
    aspect_closeness: float = 0.3   # |w/h - target| below this counts as card-shaped
    timeout_s: float = 10.0
    remove_background: bool = True
    excluded_labels: Tuple[str, ...] = _EXCLUDED_LABELS


@dataclass(frozen=True)
class ContourConfig:
    enabled: bool = True
    edge_threshold: int = 100
    min_box_px: int = 50
    max_component_px: int = 10_000
    weights: ScoreWeights = field(default_factory=lambda: ScoreWeights(0.5, 0.3, 0.2))


@dataclass(frozen=True)
class SlidingConfig:
    enabled: bool = True
    scales: Tuple[float, ...] = (0.08, 0.12, 0.16, 0.20, 0.25, 0.30, 0.35, 0.40)
    overlap: float = 0.15
    min_score: float = 0.3
    # Windows with no boundary response are never cards, however flat inside.
    min_border_score: float = 0.25
    workers: int = 1
    weights: ScoreWeights = field(default_factory=lambda: ScoreWeights(0.6, 0.3, 0.1))

    def __post_init__(self):
        if not self.scales or any(not (0.0 < s <= 1.0) for s in self.scales):
            raise ValueError(f"sliding scales must be in (0, 1], got {self.scales}")
        if not (0.0 <= self.overlap < 1.0):
            raise ValueError(f"overlap must be in [0, 1), got {self.overlap}")


@dataclass(frozen=True)
class DetectionConfig:
    constraints: ConstraintConfig = field(default_factory=ConstraintConfig)
    scorer: ScorerConfig = field(default_factory=ScorerConfig)
    external: ExternalConfig = field(default_factory=ExternalConfig)
    contour: ContourConfig = field(default_factory=ContourConfig)
    sliding: SlidingConfig = field(default_factory=SlidingConfig)
    max_results: int = 12
    overlap_threshold: float = 0.5
    output_width: int = 300
    output_height: int = 420

    def __post_init__(self):
        if self.max_results < 1:
            raise ValueError("max_results must be >= 1")
        if not (0.0 <= self.overlap_threshold <= 1.0):
            raise ValueError("overlap_threshold must be in [0, 1]")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "DetectionConfig":
        return _merge(cls(), data or {})

    def merged(self, data: Optional[Mapping[str, Any]]) -> "DetectionConfig":
        """Return a copy with `data` merged over this config."""
        return _merge(self, data or {})

    def to_dict(self) -> Dict[str, Any]:
        return _plain(asdict(self))


def _merge(base, data: Mapping[str, Any]):
    if not isinstance(data, Mapping):
        raise ValueError(f"expected a mapping for {type(base).__name__}, got {type(data).__name__}")
    known = {f.name for f in fields(base)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"unknown {type(base).__name__} keys: {unknown}")
    updates = {}
    for key, value in data.items():
        current = getattr(base, key)
        if is_dataclass(current):
            value = _merge(current, value or {})
        elif isinstance(value, list):
            value = tuple(value)
        updates[key] = value
    return replace(base, **updates)


def _plain(obj):
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    return obj


def load_config(path: Optional[str | Path] = None) -> DetectionConfig:
    """
    Load a YAML config and merge it over the defaults.
    No path → defaults. Raises FileNotFoundError / ValueError.
    """
    if path is None:
        return DetectionConfig()
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    return DetectionConfig.from_dict(data)
