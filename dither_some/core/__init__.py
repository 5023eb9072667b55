"""Resolutions, frame buffers, dithering and the ffmpeg pipeline."""
