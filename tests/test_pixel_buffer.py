"""Test the bounds-checked pixel buffer.

Tests for autoart.utils.pixel_buffer:
    - Channel reordering (RGBA, BGRA, RGB)
    - Raw bytes with padded row stride
    - Bounds-checked pixel access
    - Rejection of malformed input
    - Buffer immutability

Run:
    pytest tests/test_pixel_buffer.py -v
"""

import numpy as np
import pytest

from autoart.utils.errors import DegenerateInputError
from autoart.utils.pixel_buffer import PixelBuffer, as_pixel_buffer


def test_rgba_accessors():
    data = np.zeros((2, 3, 4), dtype=np.uint8)
    data[1, 2] = (10, 20, 30, 0)
    data[0, 0] = (1, 2, 3, 255)
    buf = PixelBuffer(data)

    assert buf.width == 3 and buf.height == 2
    assert buf.shape == (2, 3)
    assert buf.pixel(2, 1) == (10, 20, 30, 0)
    assert buf.rgb()[0, 0].tolist() == [1, 2, 3]
    assert buf.opaque_mask().sum() == 1


def test_bgra_reordered_to_rgb():
    data = np.array([[[30, 20, 10, 255]]], dtype=np.uint8)
    buf = PixelBuffer(data, "bgra")
    assert buf.rgb()[0, 0].tolist() == [10, 20, 30]
    assert buf.rgba()[0, 0].tolist() == [10, 20, 30, 255]


def test_rgb_buffer_is_opaque():
    buf = as_pixel_buffer(np.zeros((2, 2, 3), dtype=np.uint8))
    assert buf.channel_order == "RGB"
    assert buf.alpha().min() == 255
    assert buf.pixel(1, 1) == (0, 0, 0, 255)


def test_from_bytes_with_stride():
    width, height, stride = 2, 2, 12  # 8 pixel bytes + 4 padding bytes per row
    raw = bytearray(stride * height)
    raw[0:4] = bytes((3, 2, 1, 255))            # (0, 0) in BGRA
    raw[stride + 4:stride + 8] = bytes((9, 8, 7, 128))  # (1, 1)
    buf = PixelBuffer.from_bytes(bytes(raw), width, height, stride=stride)

    assert buf.pixel(0, 0) == (1, 2, 3, 255)
    assert buf.pixel(1, 1) == (7, 8, 9, 128)
    assert buf.pixel(1, 0) == (0, 0, 0, 0)


def test_from_bytes_too_short():
    with pytest.raises(DegenerateInputError):
        PixelBuffer.from_bytes(b"\x00" * 10, 2, 2)


def test_from_bytes_stride_too_small():
    with pytest.raises(DegenerateInputError):
        PixelBuffer.from_bytes(b"\x00" * 64, 2, 2, stride=4)


@pytest.mark.parametrize("x,y", [(-1, 0), (0, -1), (3, 0), (0, 2)])
def test_pixel_out_of_bounds(x, y):
    buf = PixelBuffer(np.zeros((2, 3, 4), dtype=np.uint8))
    with pytest.raises(IndexError):
        buf.pixel(x, y)


@pytest.mark.parametrize("data,order", [
    (np.zeros((0, 4, 4), dtype=np.uint8), "RGBA"),
    (np.zeros((2, 2, 4), dtype=np.float32), "RGBA"),
    (np.zeros((2, 2, 3), dtype=np.uint8), "RGBA"),
    (np.zeros((2, 2), dtype=np.uint8), "RGBA"),
    (np.zeros((2, 2, 4), dtype=np.uint8), "ARGB"),
])
def test_malformed_input_rejected(data, order):
    with pytest.raises(DegenerateInputError):
        PixelBuffer(data, order)


def test_buffer_is_a_readonly_copy():
    data = np.zeros((2, 2, 4), dtype=np.uint8)
    buf = PixelBuffer(data)
    data[0, 0] = 255
    assert buf.pixel(0, 0) == (0, 0, 0, 0)
    with pytest.raises(ValueError):
        buf._data[0, 0, 0] = 1
