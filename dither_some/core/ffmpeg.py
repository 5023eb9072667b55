"""ffmpeg/ffprobe subprocesses: probing, raw rgb24 frame pipes and remuxing.

The decoder writes headerless rgb24 frames to its stdout and the encoder
reads the same layout from its stdin. Frame size is never sent over the
pipe; both sides derive it from the resolution they were started with.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path

from dither_some.core.errors import ProbeError, RemuxError, StreamIoError
from dither_some.core.resolution import Resolution


@dataclass(frozen=True)
class MediaInfo:
    """Metadata of the first video stream of a file."""

    path: Path
    width: int
    height: int
    frame_rate: Fraction

    @property
    def resolution(self) -> Resolution:
        return Resolution(self.width, self.height)

    @property
    def fps(self) -> float:
        return float(self.frame_rate)


def format_rate(rate: Fraction) -> str:
    """ffmpeg rate syntax, e.g. ``30000/1001``."""
    if rate.denominator == 1:
        return str(rate.numerator)
    return f"{rate.numerator}/{rate.denominator}"


def parse_frame_rate(value: str) -> Fraction:
    """Parse an ffprobe rate such as ``30000/1001`` or ``25``."""
    num, sep, den = value.strip().partition("/")
    try:
        numerator = int(num)
        denominator = int(den) if sep else 1
    except ValueError:
        raise ProbeError(f"Parsing frame rate failed: '{value}'") from None
    if denominator == 0 or numerator <= 0:
        raise ProbeError(f"Invalid frame rate: '{value}'")
    return Fraction(numerator, denominator)


def _exit_reason(returncode: int) -> str:
    # Popen reports death by signal as a negative return code.
    return str(returncode) if returncode >= 0 else "SIGNAL"


def _decode(stderr: bytes | str | None) -> str:
    if stderr is None:
        return ""
    if isinstance(stderr, bytes):
        return stderr.decode("utf-8", errors="replace")
    return stderr


class FFmpegHarness:
    """Starts and talks to the ffmpeg/ffprobe executables."""

    def __init__(self, ffmpeg: str = "ffmpeg", ffprobe: str = "ffprobe") -> None:
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    def probe(self, path: str | Path) -> MediaInfo:
        """Read width, height and average frame rate of the first video stream.

        Raises:
            ProbeError: if ffprobe cannot start, exits non-zero or its output
                cannot be parsed.
        """
        cmd = [
            self.ffprobe,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=width,height,avg_frame_rate",
            "-of", "default=noprint_wrappers=1:nokey=1",
            str(path),
        ]
        try:
            result = subprocess.run(cmd, capture_output=True)
        except OSError as e:
            raise ProbeError(f"ffprobe failed to start: {e}") from e

        if result.returncode != 0:
            raise ProbeError(
                f"ffprobe exited with {_exit_reason(result.returncode)}: "
                f"{_decode(result.stderr).strip()}"
            )

        try:
            stdout = result.stdout.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProbeError(f"ffprobe yielded an invalid UTF-8 output: {e}") from e

        lines = [line.strip() for line in stdout.splitlines() if line.strip()]
        if len(lines) < 3:
            raise ProbeError(f"Unexpected ffprobe output: {stdout!r}")
        try:
            width = int(lines[0])
        except ValueError:
            raise ProbeError(f"Parsing width failed: '{lines[0]}'") from None
        try:
            height = int(lines[1])
        except ValueError:
            raise ProbeError(f"Parsing height failed: '{lines[1]}'") from None
        if width <= 0 or height <= 0:
            raise ProbeError(f"Invalid video size: {width}x{height}")

        return MediaInfo(
            path=Path(path),
            width=width,
            height=height,
            frame_rate=parse_frame_rate(lines[2]),
        )

    def spawn_frame_reader(
        self,
        path: str | Path,
        resolution: Resolution | None = None,
    ) -> subprocess.Popen:
        """Start a decoder emitting rgb24 frames on stdout.

        Args:
            path: input media file.
            resolution: scale frames to this size; None keeps the source size.
        """
        cmd = [self.ffmpeg, "-v", "error", "-nostdin", "-i", str(path)]
        if resolution is not None:
            cmd += ["-vf", f"scale={resolution.width}:{resolution.height}"]
        cmd += ["-f", "rawvideo", "-pix_fmt", "rgb24", "-"]

        try:
            return subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise StreamIoError(f"ffmpeg frame reader failed to start: {e}") from e

    def spawn_frame_writer(
        self,
        resolution: Resolution,
        frame_rate: Fraction,
        dest: str | Path,
        output_resolution: Resolution | None = None,
    ) -> subprocess.Popen:
        """Start an encoder reading rgb24 frames from stdin into ``dest``.

        The encoder finalizes the container once stdin is closed and refuses
        to overwrite an existing ``dest``.

        Args:
            resolution: size of the incoming raw frames.
            frame_rate: output frame rate.
            dest: video-only output file.
            output_resolution: scale to this size (nearest neighbour, so dither
                patterns stay crisp); None or equal to ``resolution`` keeps it.
        """
        cmd = [
            self.ffmpeg,
            "-v", "error",
            "-f", "rawvideo",
            "-pix_fmt", "rgb24",
            "-s", str(resolution),
            "-r", format_rate(frame_rate),
            "-i", "-",
        ]
        if output_resolution is not None and output_resolution != resolution:
            cmd += [
                "-vf",
                f"scale={output_resolution.width}:{output_resolution.height}"
                ":flags=neighbor",
            ]
        cmd += ["-c:v", "libx264", "-pix_fmt", "yuv420p", "-n", str(dest)]

        try:
            return subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise StreamIoError(f"ffmpeg frame writer failed to start: {e}") from e

    def _remux_cmd(
        self, video_only: Path, original: Path, dest: Path, audio_codec: str
    ) -> list[str]:
        return [
            self.ffmpeg,
            "-v", "error",
            "-nostdin",
            "-i", str(video_only),
            "-i", str(original),
            "-c:v", "copy",
            "-c:a", audio_codec,
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-n", str(dest),
        ]

    def remux(
        self,
        video_only: str | Path,
        original: str | Path,
        dest: str | Path,
    ) -> bool:
        """Combine the video of ``video_only`` with the audio of ``original``.

        Streams are copied untouched. If the copy fails (typically an audio
        codec the container cannot hold), retry once transcoding the audio to
        AAC while still copying the video.

        Returns:
            True if the audio had to be transcoded.

        Raises:
            RemuxError: if both attempts fail; carries the fallback's stderr.
        """
        video_only, original, dest = Path(video_only), Path(original), Path(dest)
        existed = dest.exists()

        try:
            result = subprocess.run(
                self._remux_cmd(video_only, original, dest, "copy"),
                capture_output=True,
            )
        except OSError as e:
            raise RemuxError(f"ffmpeg failed to start: {e}") from e
        if result.returncode == 0:
            return False

        # A failed copy can leave a partial file behind, which -n would reject.
        if not existed:
            dest.unlink(missing_ok=True)

        try:
            result = subprocess.run(
                self._remux_cmd(video_only, original, dest, "aac"),
                capture_output=True,
            )
        except OSError as e:
            raise RemuxError(f"ffmpeg fallback failed to start: {e}") from e
        if result.returncode != 0:
            stderr = _decode(result.stderr).strip()
            raise RemuxError(f"ffmpeg fallback failed: {stderr}", stderr=stderr)
        return True
