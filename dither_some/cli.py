"""Command-line interface for dither-some.

Human-readable progress goes to stderr; ``--json`` prints a structured
result on stdout (errors as JSON on stderr) for scripting.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
from pathlib import Path

from dither_some.core.dither import (
    MAX_PALETTE_COUNT,
    MIN_PALETTE_COUNT,
    Algorithm,
    make_config,
)
from dither_some.core.errors import (
    ConfigurationError,
    DitherSomeError,
    ProbeError,
    RemuxError,
)
from dither_some.core.resolution import Resolution


def _resolution(text: str) -> Resolution:
    try:
        return Resolution.parse(text)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _palette_count(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{text}'") from None
    if not MIN_PALETTE_COUNT <= value <= MAX_PALETTE_COUNT:
        raise argparse.ArgumentTypeError(
            f"{value} is not in {MIN_PALETTE_COUNT}..={MAX_PALETTE_COUNT}"
        )
    return value


RESOLUTION_OPTIONS = ("--dither-res", "--output-res")


def _join_resolution_args(argv: list[str]) -> list[str]:
    """Glue ``--dither-res -2x480`` into ``--dither-res=-2x480``.

    argparse takes a value starting with '-' for an option of its own, so a
    negative width would otherwise be rejected unless written with '='.
    """
    joined = []
    i = 0
    while i < len(argv):
        token = argv[i]
        if token == "--":
            joined.extend(argv[i:])
            break
        nxt = argv[i + 1] if i + 1 < len(argv) else None
        if (
            token in RESOLUTION_OPTIONS
            and nxt is not None
            and nxt.startswith("-")
            and not nxt.startswith("--")
            and "x" in nxt
        ):
            joined.append(f"{token}={nxt}")
            i += 2
            continue
        joined.append(token)
        i += 1
    return joined


def _signal_name(signum: int | None) -> str | None:
    if signum is None:
        return None
    try:
        return signal.Signals(signum).name
    except ValueError:
        return str(signum)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dither-some",
        description="Dither a video (or image) with error diffusion, keeping its audio.",
        epilog=(
            "Resolutions are WIDTHxHEIGHT. A negative field is derived from the "
            "input's aspect ratio: -2 rounds it to an even number, any other "
            "negative value to the nearest integer, e.g. --dither-res -2x480."
        ),
    )
    parser.add_argument(
        "--dither-res",
        type=_resolution,
        help="Resolution the frames are dithered at. Defaults to input resolution.",
    )
    parser.add_argument(
        "--output-res",
        type=_resolution,
        help="Resolution of the output video. Defaults to input resolution.",
    )
    parser.add_argument(
        "--ffmpeg",
        default="ffmpeg",
        help="ffmpeg executable (default: ffmpeg).",
    )
    parser.add_argument(
        "--ffprobe",
        default="ffprobe",
        help="ffprobe executable (default: ffprobe).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output structured JSON (pipe-friendly).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Show stack traces on error (with --json).",
    )
    parser.add_argument("input", help="Path of video to dither.")
    parser.add_argument("output", help="Path where to save dithered video.")

    algorithms = parser.add_subparsers(
        dest="algorithm", metavar="ALGORITHM", required=True
    )
    for algorithm, help_text in (
        (Algorithm.ATKINSON, "Apply Atkinson dithering algorithm."),
        (Algorithm.FS_COLOR, "Apply colored Floyd-Steinberg dithering algorithm."),
    ):
        sub = algorithms.add_parser(algorithm.value, help=help_text)
        sub.add_argument(
            "-p", "--palette-count",
            type=_palette_count,
            required=True,
            help=f"Levels per channel, {MIN_PALETTE_COUNT} to {MAX_PALETTE_COUNT}.",
        )

    return parser


def _json_error(message: str, code: str) -> None:
    """Print JSON error to stderr and exit with code 1."""
    err = {"status": "error", "error": message, "code": code}
    print(json.dumps(err), file=sys.stderr)
    sys.exit(1)


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, ConfigurationError):
        return "INVALID_CONFIG"
    if isinstance(exc, ProbeError):
        return "PROBE_FAILED"
    if isinstance(exc, RemuxError):
        return "REMUX_FAILED"
    return "PROCESSING_ERROR"


def _fail(message: str, code: str, args: argparse.Namespace) -> None:
    if args.json:
        if args.debug:
            import traceback
            traceback.print_exc(file=sys.stderr)
        _json_error(message, code)
    else:
        print(f"\nError: {message}", file=sys.stderr)
        sys.exit(1)


def _run_image(args: argparse.Namespace, input_path: Path, output_path: Path) -> None:
    from dither_some.core.image import dither_image

    config = make_config(args.algorithm, args.palette_count)
    try:
        img = dither_image(
            input_path, output_path, config, args.dither_res, args.output_res
        )
    except (DitherSomeError, OSError) as e:
        _fail(str(e), _error_code(e), args)

    if args.json:
        result = {
            "status": "success",
            "input": str(input_path),
            "output": str(output_path),
            "settings": {
                "algorithm": args.algorithm,
                "palette_count": args.palette_count,
            },
            "metadata": {"width": img.width, "height": img.height},
        }
        print(json.dumps(result, indent=2))
    else:
        print(f"Saved to {output_path}", file=sys.stderr)


def _run_video(args: argparse.Namespace, input_path: Path, output_path: Path) -> None:
    from dither_some.core.ffmpeg import FFmpegHarness
    from dither_some.core.pipeline import DitherPipeline, PipelineOptions
    from dither_some.utils.signals import CancelToken, interrupt_guard

    options = PipelineOptions(
        input_path=input_path,
        output_path=output_path,
        dither=make_config(args.algorithm, args.palette_count),
        dither_res=args.dither_res,
        output_res=args.output_res,
    )

    def on_progress(frames: int) -> None:
        if not args.json:
            print(f"\rProcessing frame {frames}...", end="", file=sys.stderr)

    token = CancelToken()
    pipeline = DitherPipeline(
        options,
        harness=FFmpegHarness(ffmpeg=args.ffmpeg, ffprobe=args.ffprobe),
        cancel=token,
        on_progress=on_progress,
    )

    try:
        with interrupt_guard(token):
            result = pipeline.run()
    except DitherSomeError as e:
        _fail(str(e), _error_code(e), args)

    if not args.json:
        if result.interrupted:
            cause = _signal_name(token.signum)
            reason = f" by {cause}" if cause else ""
            print(f"\nInterrupted{reason}, output is truncated.", file=sys.stderr)
        if result.audio_transcoded:
            print("\nAudio could not be copied, transcoded to AAC.", file=sys.stderr)
        print(f"\nSaved to {output_path}", file=sys.stderr)
    else:
        payload = {
            "status": "success",
            "input": str(input_path),
            "output": str(output_path),
            "settings": {
                "algorithm": args.algorithm,
                "palette_count": args.palette_count,
                "dither_res": str(result.dither_res),
                "output_res": str(result.output_res),
            },
            "metadata": {
                "frames": result.frames,
                "fps": result.source.fps,
                "input_res": str(result.source.resolution),
                "audio_transcoded": result.audio_transcoded,
                "interrupted": result.interrupted,
                "signal": _signal_name(token.signum) if result.interrupted else None,
            },
        }
        print(json.dumps(payload, indent=2))


def main(argv: list[str] | None = None) -> None:
    """Main entry point.

    Usage: dither-some [options] INPUT OUTPUT {atkinson,fs-color} -p N
    """
    if argv is None:
        argv = sys.argv[1:]
    parser = _build_parser()
    args = parser.parse_args(_join_resolution_args(argv))

    input_path = Path(args.input).resolve()
    output_path = Path(args.output).resolve()
    if not input_path.exists():
        if args.json:
            _json_error(f"File not found: {input_path}", "FILE_NOT_FOUND")
        else:
            print(f"Error: File not found: {input_path}", file=sys.stderr)
            sys.exit(1)

    from dither_some.core.image import is_image

    if is_image(input_path):
        _run_image(args, input_path, output_path)
    else:
        _run_video(args, input_path, output_path)
