"""Dither a single still image in-process with Pillow."""

from __future__ import annotations

from pathlib import Path

from PIL import Image

from dither_some.core.dither import DitherConfig, apply_dither
from dither_some.core.errors import ConfigurationError
from dither_some.core.frame import FrameBuffer
from dither_some.core.resolution import Resolution

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg", ".bmp", ".webp", ".tif", ".tiff")


def is_image(path: Path) -> bool:
    """Check if the path looks like a still image rather than a video."""
    return Path(path).suffix.lower() in IMAGE_SUFFIXES


def dither_image(
    input_path: Path,
    output_path: Path,
    config: DitherConfig,
    dither_res: Resolution | None = None,
    output_res: Resolution | None = None,
) -> Image.Image:
    """Dither an image file and save the result.

    Args:
        input_path: source image.
        output_path: destination; must not exist yet.
        config: algorithm and palette size.
        dither_res: size to dither at, resolved against the source size.
        output_res: size to save at, scaled with nearest neighbour.

    Returns:
        The saved image.
    """
    input_path, output_path = Path(input_path), Path(output_path)
    if output_path.exists():
        raise ConfigurationError(f"Output already exists: {output_path}")

    with Image.open(input_path) as src:
        img = src.convert("RGB")

    source = Resolution(img.width, img.height)
    target = source if dither_res is None else dither_res.resolve(source)
    final = source if output_res is None else output_res.resolve(source)
    for label, res in (("Dither", target), ("Output", final)):
        if res.width == 0 or res.height == 0:
            raise ConfigurationError(f"{label} resolution {res} has a zero dimension")

    if target != source:
        img = img.resize((target.width, target.height), Image.Resampling.LANCZOS)

    frame = FrameBuffer(target.width, target.height, bytearray(img.tobytes()))
    apply_dither(config, frame)
    out = Image.fromarray(frame.array)

    if final != target:
        out = out.resize((final.width, final.height), Image.Resampling.NEAREST)

    out.save(str(output_path))
    return out
