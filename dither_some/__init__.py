"""Error diffusion dithering for videos, audio preserved."""

__version__ = "0.1.0"
