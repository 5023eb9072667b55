"""Timing for the per-pixel hot loops.

Run from the repo root:

    python -m benchmarks.bench_dither [--width 1920] [--height 1080] [--repeat 3]

Every case works on a blank frame, so the numbers are the cost of the pure
Python loop, not of the image content.
"""

from __future__ import annotations

import argparse
import time
from typing import Callable

from dither_some.core.dither import atkinson, floyd_steinberg_color
from dither_some.core.frame import FrameBuffer


def time_call(fn: Callable[[], object], repeat: int = 3) -> float:
    """Best wall-clock time of ``repeat`` calls, in seconds."""
    best = float("inf")
    for _ in range(repeat):
        t0 = time.perf_counter()
        fn()
        best = min(best, time.perf_counter() - t0)
    return best


def _get_set_loop(frame: FrameBuffer) -> Callable[[], None]:
    def loop() -> None:
        for y in range(frame.height):
            for x in range(frame.width):
                frame.set_rgb(x, y, frame.get_rgb(x, y))

    return loop


def run(width: int = 1920, height: int = 1080, repeat: int = 3) -> dict[str, float]:
    """Time each case on a ``width`` x ``height`` frame."""
    frame = FrameBuffer.blank(width, height)
    cases = {
        "dither_atkinson": lambda: atkinson(frame, 2),
        "dither_floyd_steinberg": lambda: floyd_steinberg_color(frame, 2),
        "frame_get_set": _get_set_loop(frame),
        "frame_array": lambda: frame.array.copy(),
    }
    return {name: time_call(fn, repeat) for name, fn in cases.items()}


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Time the dithering loops.")
    parser.add_argument("--width", type=int, default=1920)
    parser.add_argument("--height", type=int, default=1080)
    parser.add_argument("--repeat", type=int, default=3)
    args = parser.parse_args(argv)

    pixels = args.width * args.height
    print(f"{args.width}x{args.height}, best of {args.repeat}")
    for name, seconds in run(args.width, args.height, args.repeat).items():
        rate = pixels / seconds if seconds else float("inf")
        print(f"{name:<24} {seconds:10.4f} s  {rate / 1e6:8.2f} Mpx/s")


if __name__ == "__main__":
    main()
