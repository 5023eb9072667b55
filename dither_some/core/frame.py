"""Bounds-checked pixel access over a raw rgb24 byte buffer."""

from __future__ import annotations

import numpy as np

GrayPixel = float
RgbPixel = tuple[float, float, float]


class FrameBuffer:
    """A view over ``width*height*3`` bytes, laid out row-major as R, G, B.

    The buffer is borrowed, never copied: writes go straight into the
    bytearray the caller owns. Reads widen bytes to floats without scaling,
    writes narrow floats back by truncation. Values outside [0, 255] are the
    caller's bug and are not clamped here.
    """

    __slots__ = ("width", "height", "_buffer")

    def __init__(self, width: int, height: int, buffer: bytearray | memoryview) -> None:
        if width < 0 or height < 0:
            raise ValueError(f"Frame dimensions must be non-negative, got {width}x{height}")
        if len(buffer) != width * height * 3:
            raise ValueError(
                f"Buffer of {len(buffer)} bytes does not match a "
                f"{width}x{height} rgb24 frame ({width * height * 3} bytes)"
            )
        self.width = width
        self.height = height
        self._buffer = buffer

    @classmethod
    def blank(cls, width: int, height: int) -> FrameBuffer:
        """Allocate a zeroed (black) frame."""
        return cls(width, height, bytearray(width * height * 3))

    @property
    def buffer(self) -> bytearray | memoryview:
        return self._buffer

    @property
    def array(self) -> np.ndarray:
        """Writable (height, width, 3) uint8 view sharing the same memory."""
        return np.frombuffer(self._buffer, dtype=np.uint8).reshape(
            self.height, self.width, 3
        )

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def _index(self, x: int, y: int) -> int | None:
        if self.in_bounds(x, y):
            return (y * self.width + x) * 3
        return None

    def get_rgb(self, x: int, y: int) -> RgbPixel | None:
        i = self._index(x, y)
        if i is None:
            return None
        buf = self._buffer
        return float(buf[i]), float(buf[i + 1]), float(buf[i + 2])

    def get_gray(self, x: int, y: int) -> GrayPixel | None:
        """Luma (BT.601 weights) of the pixel, or None outside the frame."""
        rgb = self.get_rgb(x, y)
        if rgb is None:
            return None
        r, g, b = rgb
        return 0.299 * r + 0.587 * g + 0.114 * b

    def set_rgb(self, x: int, y: int, rgb: RgbPixel) -> bool:
        i = self._index(x, y)
        if i is None:
            return False
        r, g, b = rgb
        buf = self._buffer
        buf[i] = int(r)
        buf[i + 1] = int(g)
        buf[i + 2] = int(b)
        return True

    def set_gray(self, x: int, y: int, value: GrayPixel) -> bool:
        return self.set_rgb(x, y, (value, value, value))

    def __repr__(self) -> str:
        return f"FrameBuffer({self.width}x{self.height})"
