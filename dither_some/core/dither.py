"""Error diffusion dithering: Atkinson (grayscale) and Floyd-Steinberg (color).

Both algorithms walk the frame in raster order and mutate it in place. A
pixel's quantized value is final once written; the residual error only
flows to pixels that have not been visited yet.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from dither_some.core.errors import ConfigurationError
from dither_some.core.frame import FrameBuffer

MIN_PALETTE_COUNT = 2
MAX_PALETTE_COUNT = 256

# (dx, dy), each neighbour receives 1/8 of the error; 2/8 is dropped.
ATKINSON_OFFSETS = ((1, 0), (2, 0), (-1, 1), (0, 1), (1, 1), (0, 2))
ATKINSON_WEIGHT = 1.0 / 8.0

# (dx, dy, weight)
FLOYD_STEINBERG_KERNEL = (
    (1, 0, 7.0 / 16.0),
    (-1, 1, 3.0 / 16.0),
    (0, 1, 5.0 / 16.0),
    (1, 1, 1.0 / 16.0),
)


class Algorithm(str, Enum):
    ATKINSON = "atkinson"
    FS_COLOR = "fs-color"


def _check_palette_count(palette_count: int) -> None:
    if not MIN_PALETTE_COUNT <= palette_count <= MAX_PALETTE_COUNT:
        raise ConfigurationError(
            f"Palette count must be between {MIN_PALETTE_COUNT} and "
            f"{MAX_PALETTE_COUNT}, got {palette_count}"
        )


@dataclass(frozen=True)
class Atkinson:
    """Grayscale Atkinson dithering with ``palette_count`` gray levels."""

    palette_count: int

    def __post_init__(self) -> None:
        _check_palette_count(self.palette_count)


@dataclass(frozen=True)
class FloydSteinbergColor:
    """Per-channel Floyd-Steinberg with ``palette_count`` levels per channel."""

    palette_count: int

    def __post_init__(self) -> None:
        _check_palette_count(self.palette_count)


DitherConfig = Atkinson | FloydSteinbergColor


def make_config(algorithm: Algorithm | str, palette_count: int) -> DitherConfig:
    """Build the config variant for a CLI algorithm name."""
    match Algorithm(algorithm):
        case Algorithm.ATKINSON:
            return Atkinson(palette_count)
        case Algorithm.FS_COLOR:
            return FloydSteinbergColor(palette_count)


def quantize(value: float, palette_count: int) -> float:
    """Snap ``value`` to the nearest of ``palette_count`` levels over [0, 255].

    Ties round up. With gaps that are not integral (e.g. 255/6) the result is
    whatever float round-half-up gives; it is not corrected afterwards.
    """
    gap = 255.0 / (palette_count - 1)
    return math.floor(value / gap + 0.5) * gap


def _clamp(value: float) -> float:
    return 0.0 if value < 0.0 else 255.0 if value > 255.0 else value


def _atkinson_step(frame: FrameBuffer, x: int, y: int, palette_count: int) -> float:
    """Quantize one pixel and spread its error; returns the error."""
    value = frame.get_gray(x, y)
    quantized = quantize(value, palette_count)
    error = value - quantized
    diffusion = error * ATKINSON_WEIGHT
    frame.set_gray(x, y, quantized)

    for dx, dy in ATKINSON_OFFSETS:
        nx, ny = x + dx, y + dy
        neighbour = frame.get_gray(nx, ny)
        if neighbour is not None:
            frame.set_gray(nx, ny, _clamp(neighbour + diffusion))
    return error


def atkinson(frame: FrameBuffer, palette_count: int = 2) -> None:
    """Apply Atkinson dithering in place, collapsing pixels to gray.

    Args:
        frame: frame to dither; every pixel ends up as a neutral gray triple.
        palette_count: number of gray levels, 2 = black/white.
    """
    for y in range(frame.height):
        for x in range(frame.width):
            _atkinson_step(frame, x, y, palette_count)


def floyd_steinberg_color(frame: FrameBuffer, palette_count: int = 2) -> None:
    """Apply Floyd-Steinberg dithering to each RGB channel independently.

    Args:
        frame: frame to dither in place.
        palette_count: number of levels per channel.
    """
    width, height = frame.width, frame.height

    for y in range(height):
        for x in range(width):
            r, g, b = frame.get_rgb(x, y)
            qr = quantize(r, palette_count)
            qg = quantize(g, palette_count)
            qb = quantize(b, palette_count)
            frame.set_rgb(x, y, (qr, qg, qb))
            er, eg, eb = r - qr, g - qg, b - qb

            for dx, dy, weight in FLOYD_STEINBERG_KERNEL:
                nx, ny = x + dx, y + dy
                neighbour = frame.get_rgb(nx, ny)
                if neighbour is None:
                    continue
                nr, ng, nb = neighbour
                frame.set_rgb(
                    nx,
                    ny,
                    (
                        _clamp(nr + er * weight),
                        _clamp(ng + eg * weight),
                        _clamp(nb + eb * weight),
                    ),
                )


def apply_dither(config: DitherConfig, frame: FrameBuffer) -> None:
    """Dither ``frame`` in place with the algorithm ``config`` selects."""
    match config:
        case Atkinson(palette_count=count):
            atkinson(frame, count)
        case FloydSteinbergColor(palette_count=count):
            floyd_steinberg_color(frame, count)
        case _:
            raise ConfigurationError(f"Unknown dither configuration: {config!r}")
