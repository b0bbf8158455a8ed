"""Bounds-checked pixel buffer.

Wraps an (H, W, C) uint8 numpy array together with its channel order so
pipeline stages never have to guess where red or alpha live. Raw byte
buffers with a row stride (e.g. from a screen grab or a GUI bitmap) are
accepted through PixelBuffer.from_bytes.

Supported channel orders: RGBA, BGRA, RGB (RGB is treated as fully opaque).

Usage:
    from autoart.utils.pixel_buffer import PixelBuffer
    buf = PixelBuffer.from_array(rgba_u8)
    rgb, alpha = buf.rgb(), buf.alpha()
    r, g, b, a = buf.pixel(x, y)
"""

from typing import Optional, Tuple, Union

import numpy as np

from .errors import DegenerateInputError

_CHANNEL_ORDERS = {
    "RGBA": (0, 1, 2, 3),
    "BGRA": (2, 1, 0, 3),
    "RGB": (0, 1, 2, None),
}


class PixelBuffer:
    """Immutable view of an image as channel-ordered uint8 pixels.

    Parameters
    ----------
    data : np.ndarray
        Pixel data, shape (H, W, C), dtype uint8
    channel_order : str
        One of "RGBA", "BGRA", "RGB"
    """

    def __init__(self, data: np.ndarray, channel_order: str = "RGBA"):
        order = channel_order.upper()
        if order not in _CHANNEL_ORDERS:
            raise DegenerateInputError(
                f"Unknown channel order {channel_order!r}, expected one of {sorted(_CHANNEL_ORDERS)}"
            )
        data = np.asarray(data)
        if data.ndim != 3 or data.shape[2] != len(order):
            raise DegenerateInputError(
                f"Expected shape (H, W, {len(order)}) for {order}, got {data.shape}"
            )
        if data.dtype != np.uint8:
            raise DegenerateInputError(f"Expected uint8 pixels, got {data.dtype}")
        if data.shape[0] == 0 or data.shape[1] == 0:
            raise DegenerateInputError(f"Empty image: {data.shape[1]}x{data.shape[0]}")

        self._data = data.copy()
        self._data.setflags(write=False)
        self.channel_order = order

    @classmethod
    def from_array(cls, data: np.ndarray, channel_order: str = "RGBA") -> "PixelBuffer":
        return cls(data, channel_order)

    @classmethod
    def from_bytes(
        cls,
        raw: Union[bytes, bytearray, memoryview],
        width: int,
        height: int,
        channel_order: str = "BGRA",
        stride: Optional[int] = None,
    ) -> "PixelBuffer":
        """Build a buffer from raw interleaved bytes.

        Parameters
        ----------
        raw : bytes-like
            Interleaved pixel bytes, rows top to bottom
        width, height : int
            Image dimensions in pixels
        channel_order : str
            Byte order of each pixel, default "BGRA" (Skia/Windows native)
        stride : int, optional
            Bytes per row including padding; defaults to width * channels

        Raises
        ------
        DegenerateInputError
            If the byte count cannot hold the described image
        """
        order = channel_order.upper()
        if order not in _CHANNEL_ORDERS:
            raise DegenerateInputError(f"Unknown channel order {channel_order!r}")
        channels = len(order)
        row_bytes = width * channels
        stride = row_bytes if stride is None else stride
        if width <= 0 or height <= 0:
            raise DegenerateInputError(f"Invalid dimensions {width}x{height}")
        if stride < row_bytes:
            raise DegenerateInputError(f"Stride {stride} smaller than row size {row_bytes}")

        flat = np.frombuffer(raw, dtype=np.uint8)
        needed = stride * (height - 1) + row_bytes
        if flat.size < needed:
            raise DegenerateInputError(f"Buffer holds {flat.size} bytes, need {needed}")

        rows = np.lib.stride_tricks.as_strided(
            flat, shape=(height, row_bytes), strides=(stride, 1), writeable=False
        )
        return cls(rows.reshape(height, width, channels), order)

    @property
    def width(self) -> int:
        return int(self._data.shape[1])

    @property
    def height(self) -> int:
        return int(self._data.shape[0])

    @property
    def shape(self) -> Tuple[int, int]:
        """(H, W)"""
        return self.height, self.width

    def rgb(self) -> np.ndarray:
        """RGB channels, shape (H, W, 3), uint8."""
        r, g, b, _ = _CHANNEL_ORDERS[self.channel_order]
        return self._data[..., [r, g, b]]

    def alpha(self) -> np.ndarray:
        """Alpha channel, shape (H, W), uint8 (255 everywhere for RGB buffers)."""
        a = _CHANNEL_ORDERS[self.channel_order][3]
        if a is None:
            return np.full(self.shape, 255, dtype=np.uint8)
        return self._data[..., a].copy()

    def rgba(self) -> np.ndarray:
        """Pixels reordered to RGBA, shape (H, W, 4)."""
        return np.dstack([self.rgb(), self.alpha()])

    def opaque_mask(self) -> np.ndarray:
        """Boolean (H, W) mask of pixels with nonzero alpha."""
        return self.alpha() > 0

    def pixel(self, x: int, y: int) -> Tuple[int, int, int, int]:
        """Return (r, g, b, a) at column x, row y.

        Raises
        ------
        IndexError
            If (x, y) lies outside the image
        """
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} image")
        r, g, b, a = _CHANNEL_ORDERS[self.channel_order]
        px = self._data[y, x]
        alpha = 255 if a is None else int(px[a])
        return int(px[r]), int(px[g]), int(px[b]), alpha

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height}, {self.channel_order})"


def as_pixel_buffer(image: Union[PixelBuffer, np.ndarray]) -> PixelBuffer:
    """Accept either a PixelBuffer or an RGBA/RGB uint8 array."""
    if isinstance(image, PixelBuffer):
        return image
    image = np.asarray(image)
    order = "RGB" if image.ndim == 3 and image.shape[2] == 3 else "RGBA"
    return PixelBuffer(image, order)
