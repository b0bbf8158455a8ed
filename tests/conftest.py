"""Shared fixtures: synthetic RGBA images and seeded configs."""

import numpy as np
import pytest

from autoart.utils import validators


def solid_rgba(h: int, w: int, rgb, alpha: int = 255) -> np.ndarray:
    img = np.zeros((h, w, 4), dtype=np.uint8)
    img[..., :3] = rgb
    img[..., 3] = alpha
    return img


@pytest.fixture
def two_halves():
    """4x4 image: left half red, right half blue, fully opaque."""
    img = solid_rgba(4, 4, (255, 0, 0))
    img[:, 2:, :3] = (0, 0, 255)
    return img


@pytest.fixture
def four_quadrants():
    """16x16 image with four solid quadrant colors."""
    img = solid_rgba(16, 16, (230, 30, 30))
    img[:8, 8:, :3] = (30, 200, 40)
    img[8:, :8, :3] = (20, 40, 220)
    img[8:, 8:, :3] = (240, 220, 30)
    return img


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def seeded_split():
    """Pixel K-Means config with a fixed seed."""
    return validators.SplitConfig(color_count=4, use_superpixels=False, seed=7)
