# cardscan/geometry/scoring.py
"""
Plausibility score for a candidate rectangle.

Three signals, each in 0..1:
  - border: the edge map sampled across each side; a card boundary shows a
    peak on the side that is not there just inside / just outside it.
  - uniformity: local intensity variance at random interior points against
    their 8 neighbours, mapped through max(0, 1 - var / K).
  - aspect: 1 - |w/h - target| / target, clamped at 0.
The blend uses per-strategy ScoreWeights.
"""
from __future__ import annotations
from dataclasses import dataclass

import numpy as np

from cardscan.core.config import CARD_ASPECT, ScoreWeights, ScorerConfig
from cardscan.core.contracts import Rectangle
from cardscan.geometry.edges import EdgeMap
from cardscan.io.pixels import PixelBuffer

_RING = np.array([(-1, -1), (0, -1), (1, -1),
                  (-1, 0),           (1, 0),
                  (-1, 1),  (0, 1),  (1, 1)], dtype=np.int64)


@dataclass(frozen=True)
class Score:
    border: float
    uniformity: float
    aspect: float
    total: float


def _side_positions(start: int, length: int, n: int) -> np.ndarray:
    t = (np.arange(n, dtype=np.float64) + 0.5) / n
    return start + np.minimum(np.floor(t * length).astype(np.int64), length - 1)


def border_edge_density(rect: Rectangle, edge_map: EdgeMap, cfg: ScorerConfig = ScorerConfig()) -> float:
    n, off = cfg.border_samples, cfg.border_offset
    x0, y0 = rect.x, rect.y
    x1, y1 = rect.right - 1, rect.bottom - 1
    xs = _side_positions(rect.x, rect.width, n)
    ys = _side_positions(rect.y, rect.height, n)
    d = np.arange(-off, off + 1, dtype=np.int64)[None, :]   # outside → inside

    # (sample x, sample y, inward normal) per side
    sides = (
        (xs[:, None], np.full((n, 1), y0), 0, 1),     # top
        (xs[:, None], np.full((n, 1), y1), 0, -1),    # bottom
        (np.full((n, 1), x0), ys[:, None], 1, 0),     # left
        (np.full((n, 1), x1), ys[:, None], -1, 0),    # right
    )
    deltas = []
    for px, py, nx, ny in sides:
        vals = edge_map.at(px + nx * d, py + ny * d)   # (n, 2*off+1)
        peak = vals.max(axis=1)
        ambient = 0.5 * (vals[:, 0] + vals[:, -1])
        deltas.append(np.clip(peak - ambient, 0.0, 255.0) / 255.0)
    return float(np.concatenate(deltas).mean())


def interior_uniformity(rect: Rectangle, buffer: PixelBuffer, cfg: ScorerConfig = ScorerConfig()) -> float:
    n, off = cfg.interior_samples, cfg.neighbor_offset
    margin = cfg.neighbor_offset + cfg.border_offset + 1
    rng = np.random.default_rng([cfg.seed, rect.x, rect.y, rect.width, rect.height])

    if rect.width > 2 * margin:
        xs = rng.integers(rect.x + margin, rect.right - margin, size=n)
    else:
        xs = np.full(n, rect.x + rect.width // 2, dtype=np.int64)
    if rect.height > 2 * margin:
        ys = rng.integers(rect.y + margin, rect.bottom - margin, size=n)
    else:
        ys = np.full(n, rect.y + rect.height // 2, dtype=np.int64)

    center = buffer.intensity(xs, ys)
    nb = buffer.intensity(xs[:, None] + _RING[None, :, 0] * off,
                          ys[:, None] + _RING[None, :, 1] * off)
    variance = float(((nb - center[:, None]) ** 2).mean())
    return max(0.0, 1.0 - variance / cfg.variance_norm)


def aspect_fit(rect: Rectangle, target: float = CARD_ASPECT) -> float:
    return max(0.0, 1.0 - abs(rect.aspect_ratio - target) / target)


def score_breakdown(rect: Rectangle, edge_map: EdgeMap, buffer: PixelBuffer,
                    weights: ScoreWeights, cfg: ScorerConfig = ScorerConfig(),
                    target_aspect: float = CARD_ASPECT) -> Score:
    border = border_edge_density(rect, edge_map, cfg)
    uniform = interior_uniformity(rect, buffer, cfg) if weights.uniformity > 0 else 0.0
    aspect = aspect_fit(rect, target_aspect)
    total = weights.border * border + weights.uniformity * uniform + weights.aspect * aspect
    return Score(border=border, uniformity=uniform, aspect=aspect,
                 total=float(min(1.0, max(0.0, total))))


def score(rect: Rectangle, edge_map: EdgeMap, buffer: PixelBuffer,
          weights: ScoreWeights, cfg: ScorerConfig = ScorerConfig(),
          target_aspect: float = CARD_ASPECT) -> float:
    """Blended plausibility in [0, 1]."""
    return score_breakdown(rect, edge_map, buffer, weights, cfg, target_aspect).total
