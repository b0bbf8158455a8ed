"""Test palette quantization of pixel buffers.

Tests for autoart.data_pipeline.quantize:
    - Solid-color regions map to exactly k colors (pixel K-Means, Median-Cut,
      superpixel K-Means, every working space)
    - Transparent pixels excluded from color math and painted (0, 0, 0, 0)
    - Color tally ordering (descending count, ties by packed RGB)
    - Superpixel variant falls back to pixels when segmentation is too coarse
    - Duplicate palette entries logged as a warning
    - Degenerate input and impossible color counts rejected

Run:
    pytest tests/test_quantize.py -v
"""

import logging

import numpy as np
import pytest

from autoart.data_pipeline.quantize import count_colors, pack_rgb, quantize
from autoart.utils.errors import DegenerateInputError, InvalidConfigurationError
from autoart.utils.pixel_buffer import PixelBuffer
from autoart.utils.validators import SplitConfig


def _close_to(rgb, target, tol=2):
    return max(abs(a - b) for a, b in zip(rgb, target)) <= tol


@pytest.mark.parametrize("space", ["oklab", "cielab", "rgb"])
def test_pixel_kmeans_four_quadrants(four_quadrants, space):
    cfg = SplitConfig(color_count=4, color_space=space, use_superpixels=False, seed=3)
    result = quantize(four_quadrants, cfg)

    assert len(result.color_counts) == 4
    assert sorted(result.color_counts.values()) == [64, 64, 64, 64]
    for rgb in result.color_counts:
        assert any(_close_to(rgb, q) for q in [(230, 30, 30), (30, 200, 40), (20, 40, 220), (240, 220, 30)])


def test_median_cut_two_halves(two_halves):
    result = quantize(two_halves, SplitConfig(color_count=2, algorithm="median_cut"))
    assert list(result.color_counts.values()) == [8, 8]
    assert result.palette.shape == (2, 3)
    assert result.labels.min() == 0
    # Both halves are uniform in the output
    assert len({tuple(p) for p in result.quantized[:, :2, :3].reshape(-1, 3)}) == 1
    assert len({tuple(p) for p in result.quantized[:, 2:, :3].reshape(-1, 3)}) == 1


def test_superpixel_kmeans(four_quadrants):
    img = np.repeat(np.repeat(four_quadrants, 2, axis=0), 2, axis=1)  # 32x32, 16px quadrants
    cfg = SplitConfig(color_count=4, superpixels_per_color=4, superpixel_iterations=5, seed=11)
    result = quantize(img, cfg)
    assert sorted(result.color_counts.values()) == [256, 256, 256, 256]


def test_superpixel_fallback_to_pixels():
    img = np.zeros((100, 100, 4), dtype=np.uint8)
    img[0, 0] = (255, 0, 0, 255)
    img[0, 1] = (0, 255, 0, 255)
    img[1, 0] = (0, 0, 255, 255)
    cfg = SplitConfig(color_count=3, superpixels_per_color=1, seed=0)
    result = quantize(img, cfg)
    assert len(result.color_counts) == 3


def test_transparent_pixels(two_halves):
    img = two_halves.copy()
    img[0, 0] = (9, 9, 9, 0)
    img[3, 3, 3] = 0
    result = quantize(img, SplitConfig(color_count=2, algorithm="median_cut"))

    assert result.quantized[0, 0].tolist() == [0, 0, 0, 0]
    assert result.quantized[3, 3].tolist() == [0, 0, 0, 0]
    assert result.labels[0, 0] == -1
    assert sum(result.color_counts.values()) == 14


def test_partial_alpha_preserved(two_halves):
    img = two_halves.copy()
    img[1, 1, 3] = 128
    result = quantize(img, SplitConfig(color_count=2, algorithm="median_cut"))
    assert result.quantized[1, 1, 3] == 128


def test_pixel_buffer_input(two_halves):
    bgra = two_halves[..., [2, 1, 0, 3]]
    result = quantize(PixelBuffer(bgra, "BGRA"), SplitConfig(color_count=2, algorithm="median_cut"))
    reds = [rgb for rgb in result.color_counts if rgb[0] > 200]
    assert len(reds) == 1


def test_count_colors_ordering():
    img = np.zeros((1, 6, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[0, 0, :3] = (0, 0, 2)
    img[0, 1, :3] = (0, 0, 1)
    img[0, 2, :3] = (5, 5, 5)
    img[0, 3, :3] = (5, 5, 5)
    img[0, 4, :3] = (5, 5, 5)
    img[0, 5, 3] = 0
    counts = count_colors(img)
    assert list(counts.items()) == [((5, 5, 5), 3), ((0, 0, 1), 1), ((0, 0, 2), 1)]


def test_pack_rgb():
    assert pack_rgb(np.array([1, 2, 3], dtype=np.uint8)) == (1 << 16) | (2 << 8) | 3


def test_duplicate_palette_warning(two_halves, caplog):
    with caplog.at_level(logging.WARNING, logger="autoart.data_pipeline.quantize"):
        result = quantize(two_halves, SplitConfig(color_count=3, algorithm="median_cut"))
    assert "duplicate" in caplog.text
    assert len(result.color_counts) == 2


def test_fully_transparent_rejected():
    with pytest.raises(DegenerateInputError):
        quantize(np.zeros((4, 4, 4), dtype=np.uint8), SplitConfig(color_count=1))


def test_color_count_above_pixel_count(two_halves):
    with pytest.raises(InvalidConfigurationError):
        quantize(two_halves, SplitConfig(color_count=17))


def test_seed_makes_kmeans_reproducible(four_quadrants):
    rng = np.random.default_rng(0)
    img = four_quadrants.copy()
    img[..., :3] = np.clip(img[..., :3].astype(int) + rng.integers(-20, 20, size=(16, 16, 3)), 0, 255)
    cfg = SplitConfig(color_count=6, use_superpixels=False, seed=42)
    a = quantize(img, cfg)
    b = quantize(img, cfg)
    assert np.array_equal(a.quantized, b.quantized)
