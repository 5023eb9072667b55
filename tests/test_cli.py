"""Tests for the command-line interface."""

import json
import signal
from fractions import Fraction
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from dither_some import cli
from dither_some.core import pipeline as pipeline_mod
from dither_some.core.dither import Atkinson, FloydSteinbergColor
from dither_some.core.errors import ProbeError
from dither_some.core.ffmpeg import MediaInfo
from dither_some.core.pipeline import PipelineResult
from dither_some.core.resolution import Resolution


class FakePipeline:
    instances = []
    error = None
    interrupt_with = None

    def __init__(self, options, harness=None, cancel=None, on_progress=None):
        self.options = options
        self.harness = harness
        self.cancel = cancel
        self.on_progress = on_progress
        FakePipeline.instances.append(self)

    def run(self):
        if FakePipeline.error:
            raise FakePipeline.error
        if FakePipeline.interrupt_with is not None:
            self.cancel.cancel(FakePipeline.interrupt_with)
        self.on_progress(1)
        return PipelineResult(
            source=MediaInfo(self.options.input_path, 4, 2, Fraction(25)),
            dither_res=Resolution(2, 1),
            output_res=Resolution(4, 2),
            frames=1,
            audio_transcoded=True,
            interrupted=self.cancel.cancelled,
        )


@pytest.fixture
def fake_pipeline(monkeypatch):
    FakePipeline.instances = []
    FakePipeline.error = None
    FakePipeline.interrupt_with = None
    monkeypatch.setattr(pipeline_mod, "DitherPipeline", FakePipeline)
    return FakePipeline


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "in.mp4"
    path.write_bytes(b"not really a video")
    return path


class TestParser:
    def test_basic(self):
        args = cli._build_parser().parse_args(["in.mp4", "out.mp4", "atkinson", "-p", "2"])
        assert args.input == "in.mp4"
        assert args.output == "out.mp4"
        assert args.algorithm == "atkinson"
        assert args.palette_count == 2
        assert args.dither_res is None
        assert args.output_res is None

    def test_resolutions(self):
        args = cli._build_parser().parse_args(
            [
                "--dither-res=-2x480",
                "--output-res", "1280x-1",
                "in.mp4", "out.mp4", "fs-color", "--palette-count", "256",
            ]
        )
        assert args.dither_res == Resolution(-2, 480)
        assert args.output_res == Resolution(1280, -1)
        assert args.algorithm == "fs-color"

    @pytest.mark.parametrize("count", ["1", "257", "two"])
    def test_palette_count_range(self, count):
        with pytest.raises(SystemExit):
            cli._build_parser().parse_args(["in.mp4", "out.mp4", "atkinson", "-p", count])

    def test_algorithm_required(self):
        with pytest.raises(SystemExit):
            cli._build_parser().parse_args(["in.mp4", "out.mp4"])

    def test_negative_resolution_as_separate_token(self):
        argv = cli._join_resolution_args(
            ["--dither-res", "-2x480", "--output-res", "-1x720", "in.mp4", "out.mp4", "atkinson", "-p", "2"]
        )
        assert argv[:2] == ["--dither-res=-2x480", "--output-res=-1x720"]
        args = cli._build_parser().parse_args(argv)
        assert args.dither_res == Resolution(-2, 480)
        assert args.output_res == Resolution(-1, 720)

    def test_join_leaves_other_tokens_alone(self):
        argv = ["--dither-res", "640x480", "--json", "in.mp4", "out.mp4", "atkinson", "-p", "2"]
        assert cli._join_resolution_args(argv) == argv
        assert cli._join_resolution_args(["--", "--dither-res", "-2x480"]) == [
            "--", "--dither-res", "-2x480"
        ]

    def test_bad_resolution(self):
        with pytest.raises(SystemExit):
            cli._build_parser().parse_args(
                ["--dither-res", "640", "in.mp4", "out.mp4", "atkinson", "-p", "2"]
            )


class TestVideo:
    def test_builds_options(self, fake_pipeline, video, tmp_path, capsys):
        cli.main(
            [
                "--output-res=-2x720",
                "--ffmpeg", "/opt/ffmpeg",
                str(video), str(tmp_path / "out.mp4"), "fs-color", "-p", "4",
            ]
        )

        (instance,) = fake_pipeline.instances
        opts = instance.options
        assert opts.input_path == video.resolve()
        assert opts.output_path == (tmp_path / "out.mp4").resolve()
        assert opts.dither == FloydSteinbergColor(4)
        assert opts.dither_res is None
        assert opts.output_res == Resolution(-2, 720)
        assert instance.harness.ffmpeg == "/opt/ffmpeg"
        assert instance.cancel is not None

        err = capsys.readouterr().err
        assert "Processing frame 1" in err
        assert "Saved to" in err

    def test_negative_resolution_without_equals(self, fake_pipeline, video, tmp_path):
        cli.main(
            ["--dither-res", "-2x480", str(video), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"]
        )
        (instance,) = fake_pipeline.instances
        assert instance.options.dither_res == Resolution(-2, 480)

    def test_interrupt_reports_signal(self, fake_pipeline, video, tmp_path, capsys):
        fake_pipeline.interrupt_with = signal.SIGINT
        cli.main([str(video), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"])

        err = capsys.readouterr().err
        assert "Interrupted by SIGINT, output is truncated." in err
        assert "Saved to" in err

    def test_interrupt_json(self, fake_pipeline, video, tmp_path, capsys):
        fake_pipeline.interrupt_with = signal.SIGTERM
        cli.main(["--json", str(video), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"])

        metadata = json.loads(capsys.readouterr().out)["metadata"]
        assert metadata["interrupted"] is True
        assert metadata["signal"] == "SIGTERM"

    def test_json_output(self, fake_pipeline, video, tmp_path, capsys):
        cli.main(["--json", str(video), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"])

        out, err = capsys.readouterr()
        payload = json.loads(out)
        assert payload["status"] == "success"
        assert payload["settings"]["algorithm"] == "atkinson"
        assert payload["settings"]["dither_res"] == "2x1"
        assert payload["metadata"]["frames"] == 1
        assert payload["metadata"]["audio_transcoded"] is True
        assert err == ""

    def test_error_exit(self, fake_pipeline, video, tmp_path, capsys):
        fake_pipeline.error = ProbeError("ffprobe exited with 1: broken")
        with pytest.raises(SystemExit) as excinfo:
            cli.main([str(video), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"])
        assert excinfo.value.code == 1
        assert "Error: ffprobe exited with 1: broken" in capsys.readouterr().err

    def test_json_error(self, fake_pipeline, video, tmp_path, capsys):
        fake_pipeline.error = ProbeError("ffprobe exited with 1: broken")
        with pytest.raises(SystemExit):
            cli.main(["--json", str(video), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"])
        err = json.loads(capsys.readouterr().err)
        assert err == {
            "status": "error",
            "error": "ffprobe exited with 1: broken",
            "code": "PROBE_FAILED",
        }

    def test_missing_input(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as excinfo:
            cli.main([str(tmp_path / "nope.mp4"), str(tmp_path / "out.mp4"), "atkinson", "-p", "2"])
        assert excinfo.value.code == 1
        assert "File not found" in capsys.readouterr().err


class TestImage:
    @pytest.fixture
    def png(self, tmp_path):
        path = tmp_path / "in.png"
        Image.new("RGB", (6, 4), (90, 160, 30)).save(str(path))
        return path

    def test_dithers_image(self, png, tmp_path, fake_pipeline):
        out = tmp_path / "out.png"
        cli.main([str(png), str(out), "atkinson", "-p", "2"])

        assert fake_pipeline.instances == []
        arr = np.array(Image.open(str(out)))
        assert arr.shape == (4, 6, 3)
        assert set(np.unique(arr)) <= {0, 255}

    def test_image_json(self, png, tmp_path, capsys):
        out = tmp_path / "out.png"
        cli.main(["--json", "--output-res", "12x-1", str(png), str(out), "fs-color", "-p", "3"])
        payload = json.loads(capsys.readouterr().out)
        assert payload["metadata"] == {"width": 12, "height": 8}

    def test_image_exists(self, png, tmp_path, capsys):
        out = tmp_path / "out.png"
        out.write_bytes(b"x")
        with pytest.raises(SystemExit):
            cli.main(["--json", str(png), str(out), "atkinson", "-p", "2"])
        assert json.loads(capsys.readouterr().err)["code"] == "INVALID_CONFIG"
