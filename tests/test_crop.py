"""
Cropper: standardized output size, bounds failures, batch cropping.
"""
from __future__ import annotations

import cv2
import numpy as np
import pytest

from cardscan.core.contracts import CardCandidate, DetectionResult, Rectangle, Strategy
from cardscan.geometry.crop import crop_all, crop_card
from cardscan.io.pixels import PixelBuffer


def _gradient(w: int = 300, h: int = 420) -> np.ndarray:
    xs = np.linspace(0, 255, w, dtype=np.float32)[None, :]
    ys = np.linspace(0, 255, h, dtype=np.float32)[:, None]
    img = np.zeros((h, w, 3), np.uint8)
    img[..., 0] = (xs + 0 * ys).astype(np.uint8)
    img[..., 1] = (ys + 0 * xs).astype(np.uint8)
    img[..., 2] = 128
    return img


def test_output_size_defaults_and_derived_side():
    img = _gradient(1000, 1000)
    card_rect = Rectangle(0, 0, 250, 350)
    assert crop_card(img, card_rect).size == (300, 420)
    assert crop_card(img, card_rect, output_width=150).size == (150, 210)
    assert crop_card(img, card_rect, output_height=210).size == (150, 210)
    assert crop_card(img, card_rect, output_width=100, output_height=50).size == (100, 50)


def test_full_image_crop_resamples_with_same_proportions():
    img = _gradient()
    card = crop_card(img, Rectangle(0, 0, 300, 420), output_width=150, output_height=210)
    assert not card.fallback
    assert card.size == (150, 210)
    assert card.size[0] / card.size[1] == pytest.approx(300 / 420)
    expected = cv2.resize(img, (150, 210), interpolation=cv2.INTER_LINEAR)
    assert np.array_equal(card.image, expected)


def test_full_image_crop_is_identity():
    img = _gradient()
    card = crop_card(img, Rectangle(0, 0, 300, 420), output_width=300, output_height=420)
    assert not card.fallback
    assert card.size == (300, 420)
    assert np.array_equal(card.image, img)
    assert not np.shares_memory(card.image, img)


def test_region_crop_standard_size_and_confidence():
    img = _gradient(1000, 1000)
    cand = CardCandidate(Rectangle(100, 200, 250, 350), 0.83, Strategy.CONTOUR_GROWTH)
    card = crop_card(img, cand, output_width=300, output_height=420)
    assert card.image.shape == (420, 300, 3)
    assert card.confidence == pytest.approx(0.83)
    assert card.region == cand.rect
    assert card.created_at.tzinfo is not None


def test_one_missing_side_follows_region_aspect():
    img = _gradient(1000, 1000)
    card = crop_card(img, Rectangle(0, 0, 200, 100), output_width=100)
    assert card.size == (100, 50)


def test_out_of_bounds_region_falls_back_to_source_copy():
    img = _gradient(1000, 1000)
    card = crop_card(img, Rectangle(900, 900, 250, 350), output_width=300, output_height=420)
    assert card.fallback
    assert np.array_equal(card.image, img)
    card.image[:] = 0
    assert img.any()


def test_crop_from_pixel_buffer():
    img = _gradient()
    buf = PixelBuffer.from_array(img)
    card = crop_card(buf, Rectangle(10, 10, 100, 140), output_width=50, output_height=70)
    assert card.image.shape == (70, 50, 3)
    assert not card.fallback


def test_crop_all_follows_result_order():
    img = _gradient(1000, 1000)
    cands = (
        CardCandidate(Rectangle(0, 0, 250, 350), 0.9, Strategy.SLIDING_WINDOW),
        CardCandidate(Rectangle(500, 500, 250, 350), 0.6, Strategy.SLIDING_WINDOW),
    )
    res = DetectionResult(candidates=cands, processing_time_ms=1.0,
                          method_used=Strategy.SLIDING_WINDOW, image_size=(1000, 1000))
    cards = crop_all(img, res)
    assert [c.region for c in cards] == [c.rect for c in cands]
    assert all(c.size == (300, 420) for c in cards)
