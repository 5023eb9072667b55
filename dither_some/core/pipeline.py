"""Frame-by-frame dithering pipeline.

probe → resolve resolutions → decode | dither | encode → remux audio.

One bytearray, sized to a single frame, is reused for the whole run. The
control thread alternates between reading a full frame from the decoder and
writing it to the encoder, so a slow encoder stalls the decoder through the
pipes instead of frames piling up in memory.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Callable

from dither_some.core.dither import DitherConfig, apply_dither
from dither_some.core.errors import (
    ConfigurationError,
    StreamIoError,
    SubprocessExitError,
    Underspecified,
)
from dither_some.core.ffmpeg import FFmpegHarness, MediaInfo
from dither_some.core.frame import FrameBuffer
from dither_some.core.resolution import Resolution
from dither_some.utils.signals import CancelToken

TEMP_PREFIX = "dither_some_"


class Stage(str, Enum):
    INIT = "init"
    PROBING = "probing"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    REMUXING = "remuxing"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineOptions:
    """Everything a run needs. Resolutions may be partial or None (= source)."""

    input_path: Path
    output_path: Path
    dither: DitherConfig
    dither_res: Resolution | None = None
    output_res: Resolution | None = None


@dataclass
class PipelineResult:
    """Summary of a finished run."""

    source: MediaInfo
    dither_res: Resolution
    output_res: Resolution
    frames: int
    audio_transcoded: bool
    interrupted: bool = False


def temp_output_path(output_path: Path) -> Path:
    """Video-only intermediate file, next to the final output."""
    return output_path.with_name(f"{TEMP_PREFIX}{output_path.name}")


def read_exact(stream: BinaryIO, buffer: bytearray) -> bool:
    """Fill ``buffer`` completely from ``stream``.

    Returns False on a short read, which is how the decoder signals the end
    of the video.
    """
    view = memoryview(buffer)
    filled = 0
    while filled < len(view):
        try:
            n = stream.readinto(view[filled:])
        except OSError:
            return False
        if not n:
            return False
        filled += n
    return True


def _resolve(requested: Resolution | None, source: Resolution, label: str) -> Resolution:
    resolved = source if requested is None else requested.resolve(source)
    if resolved.width == 0 or resolved.height == 0:
        raise ConfigurationError(f"{label} resolution {resolved} has a zero dimension")
    return resolved


class DitherPipeline:
    """Drives one input video through the decoder, the ditherer and the encoder.

    ``stage`` tracks progress through :class:`Stage`; any exception leaves it
    at ``Stage.FAILED``. The intermediate video-only file is removed on every
    exit path.
    """

    def __init__(
        self,
        options: PipelineOptions,
        harness: FFmpegHarness | None = None,
        cancel: CancelToken | None = None,
        on_progress: Callable[[int], None] | None = None,
    ) -> None:
        self.options = options
        self.harness = harness or FFmpegHarness()
        self.cancel = cancel or CancelToken()
        self.on_progress = on_progress
        self.stage = Stage.INIT
        self.temp_path = temp_output_path(Path(options.output_path))

    def run(self) -> PipelineResult:
        opts = self.options
        try:
            self._check_options()
        except BaseException:
            self.stage = Stage.FAILED
            raise

        try:
            self.stage = Stage.PROBING
            source = self.harness.probe(opts.input_path)
            dither_res = _resolve(opts.dither_res, source.resolution, "Dither")
            output_res = _resolve(opts.output_res, source.resolution, "Output")

            self.stage = Stage.STREAMING
            frames, interrupted = self._stream(source, dither_res, output_res)

            self.stage = Stage.REMUXING
            transcoded = self.harness.remux(
                self.temp_path, opts.input_path, opts.output_path
            )
        except BaseException:
            self.stage = Stage.FAILED
            raise
        finally:
            self.temp_path.unlink(missing_ok=True)

        self.stage = Stage.DONE
        return PipelineResult(
            source=source,
            dither_res=dither_res,
            output_res=output_res,
            frames=frames,
            audio_transcoded=transcoded,
            interrupted=interrupted,
        )

    def _check_options(self) -> None:
        opts = self.options
        for label, res in (("Dither", opts.dither_res), ("Output", opts.output_res)):
            if res is not None and res.width < 0 and res.height < 0:
                raise Underspecified(
                    f"{label} resolution {res}: at least one field has to be non-negative"
                )
        if Path(opts.output_path).exists():
            raise ConfigurationError(f"Output already exists: {opts.output_path}")
        if self.temp_path.exists():
            raise ConfigurationError(
                f"Intermediate file already exists: {self.temp_path}"
            )

    def _stream(
        self,
        source: MediaInfo,
        dither_res: Resolution,
        output_res: Resolution,
    ) -> tuple[int, bool]:
        """Run the read/dither/write loop, then finalize the encoder.

        Returns:
            Number of frames written and whether the loop was cancelled
            before the decoder ran dry.
        """
        config = self.options.dither
        width, height = dither_res.width, dither_res.height
        buffer = bytearray(dither_res.byte_size)

        reader = self.harness.spawn_frame_reader(
            self.options.input_path,
            None if dither_res == source.resolution else dither_res,
        )
        try:
            writer = self.harness.spawn_frame_writer(
                dither_res, source.frame_rate, self.temp_path, output_res
            )
        except BaseException:
            _reap(reader)
            raise

        frames = 0
        interrupted = False
        try:
            while True:
                if self.cancel.cancelled:
                    interrupted = True
                    break
                if not read_exact(reader.stdout, buffer):
                    break
                apply_dither(config, FrameBuffer(width, height, buffer))
                try:
                    writer.stdin.write(buffer)
                except (OSError, ValueError) as e:
                    raise StreamIoError(f"Writing frame buffer failed: {e}") from e
                frames += 1
                if self.on_progress:
                    self.on_progress(frames)
        except BaseException:
            _abort(writer)
            raise
        finally:
            _reap(reader)

        self.stage = Stage.FINALIZING
        try:
            writer.stdin.close()
        except OSError as e:
            _abort(writer)
            raise StreamIoError(f"Flushing frame buffer failed: {e}") from e
        returncode = writer.wait()
        if returncode != 0:
            raise SubprocessExitError(
                f"ffmpeg frame writer exited with {returncode}", returncode
            )
        return frames, interrupted


def _reap(proc) -> None:
    """Close the decoder's pipe and make sure the process is gone."""
    if proc.stdout is not None:
        proc.stdout.close()
    if proc.poll() is None:
        proc.terminate()
    proc.wait()


def _abort(proc) -> None:
    """Tear down the encoder after a failure; its output is discarded."""
    try:
        if proc.stdin is not None:
            proc.stdin.close()
    except OSError:
        pass
    if proc.poll() is None:
        proc.kill()
    proc.wait()
