"""Target resolutions that may leave one dimension to the aspect ratio.

A negative field is a sentinel. ``EVEN`` derives the field and rounds it to
the nearest even number (yuv420p needs even sizes); any other negative value
derives it and rounds to the nearest integer.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from dither_some.core.errors import InvalidReference, Underspecified

UNSPECIFIED = -1
EVEN = -2


def round_half_away(value: float) -> float:
    """Round to the nearest integer, ties away from zero."""
    return math.copysign(math.floor(abs(value) + 0.5), value)


def round_even(value: float) -> float:
    """Round to the nearest even integer."""
    return round_half_away(value / 2.0) * 2.0


def _derive(value: float, sentinel: int) -> int:
    if sentinel == EVEN:
        return int(round_even(value))
    return int(round_half_away(value))


@dataclass(frozen=True)
class Resolution:
    """Width/height pair; negative fields are sentinels to be resolved."""

    width: int
    height: int

    @property
    def is_resolved(self) -> bool:
        return self.width >= 0 and self.height >= 0

    @property
    def byte_size(self) -> int:
        """Size in bytes of one rgb24 frame at this resolution."""
        if not self.is_resolved:
            raise ValueError(f"Resolution {self} is not resolved")
        return self.width * self.height * 3

    def resolve(self, relative_to: Resolution) -> Resolution:
        """Fill in sentinel fields from the aspect ratio of ``relative_to``.

        Args:
            relative_to: a resolved reference, normally the source video.

        Returns:
            A resolved Resolution. ``self`` is returned as-is when already
            resolved.

        Raises:
            InvalidReference: if ``relative_to`` is not resolved, or has a
                zero dimension when a field has to be derived from it.
            Underspecified: if both fields of ``self`` are sentinels.
        """
        if not relative_to.is_resolved:
            raise InvalidReference(
                f"Reference resolution {relative_to} has to be resolved"
            )

        if self.is_resolved:
            return self
        if self.width < 0 and self.height < 0:
            raise Underspecified(
                f"Resolution {self}: at least one field has to be non-negative"
            )
        if relative_to.width == 0 or relative_to.height == 0:
            raise InvalidReference(
                f"Reference resolution {relative_to} has a zero dimension"
            )

        ratio = relative_to.width / relative_to.height
        if self.width < 0:
            return Resolution(_derive(self.height * ratio, self.width), self.height)
        return Resolution(self.width, _derive(self.width / ratio, self.height))

    @classmethod
    def parse(cls, text: str) -> Resolution:
        """Parse ``WIDTHxHEIGHT``, e.g. ``640x-2``."""
        parts = text.strip().split("x")
        if len(parts) != 2:
            raise ValueError(f"Expected WIDTHxHEIGHT, got '{text}'")
        try:
            width = int(parts[0])
        except ValueError:
            raise ValueError(f"Invalid width in '{text}'") from None
        try:
            height = int(parts[1])
        except ValueError:
            raise ValueError(f"Invalid height in '{text}'") from None
        return cls(width, height)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"
