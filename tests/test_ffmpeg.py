import io
import json
import subprocess
from pathlib import Path

import pytest

from transcoding import ffmpeg
from transcoding.errors import TranscodeError
from transcoding.ffmpeg import Transcoder, hls_rendition_args, normalize_args
from transcoding.ladder import LADDER


def _pairs(args):
    """Flag -> value for every '-flag value' pair."""
    return {a: b for a, b in zip(args, args[1:]) if a.startswith("-")}


def test_normalize_args_make_faststart_h264_with_clean_audio():
    args = normalize_args(Path("/w/in.mp4"), Path("/w/out.mp4"))
    opts = _pairs(args)
    assert opts["-i"] == "/w/in.mp4"
    assert args[-1] == "/w/out.mp4"
    assert opts["-c:v"] == "libx264"
    assert opts["-preset"] == "fast"
    assert opts["-crf"] == "23"
    assert opts["-pix_fmt"] == "yuv420p"
    assert opts["-profile:v"] == "high"
    assert opts["-level"] == "4.0"
    assert opts["-movflags"] == "+faststart"
    assert opts["-c:a"] == "aac"
    assert opts["-profile:a"] == "aac_low"
    assert opts["-b:a"] == "128k"
    assert opts["-ac"] == "2"
    assert opts["-ar"] == "48000"
    assert opts["-af"] == "aresample=async=1:min_hard_comp=0.100000:first_pts=0"


def test_hls_args_use_fixed_segments_and_gop(tmp_path):
    r = LADDER[1]
    args = hls_rendition_args(Path("/w/in.mp4"), tmp_path, r)
    opts = _pairs(args)
    assert opts["-vf"] == "scale=854:480"
    assert opts["-maxrate"] == "1000k"
    assert opts["-b:a"] == "96k"
    assert opts["-f"] == "hls"
    assert opts["-hls_time"] == "4"
    assert opts["-hls_list_size"] == "0"
    assert opts["-start_number"] == "0"
    assert opts["-sc_threshold"] == "0"
    assert opts["-g"] == "48"
    assert opts["-keyint_min"] == "48"
    assert opts["-hls_segment_filename"] == str(tmp_path / "segment%03d.ts")
    assert opts["-crf"] == "23"
    assert args[-1] == str(tmp_path / "playlist.m3u8")


def _completed(stdout):
    return subprocess.CompletedProcess(args=[], returncode=0, stdout=stdout, stderr="")


def test_probe_reads_first_video_stream(monkeypatch, tmp_path):
    payload = {
        "streams": [
            {"codec_type": "audio", "sample_rate": "44100"},
            {"codec_type": "video", "width": 1280, "height": 720},
        ],
        "format": {"duration": "31.5"},
    }
    monkeypatch.setattr(ffmpeg.subprocess, "run", lambda *a, **kw: _completed(json.dumps(payload)))
    result = Transcoder("ffmpeg", "ffprobe", 5).probe(tmp_path / "in.mp4")
    assert (result.width, result.height, result.duration) == (1280, 720, 31.5)


def test_probe_falls_back_to_1080p_without_video_stream(monkeypatch, tmp_path):
    monkeypatch.setattr(ffmpeg.subprocess, "run", lambda *a, **kw: _completed('{"streams": []}'))
    result = Transcoder("ffmpeg", "ffprobe", 5).probe(tmp_path / "in.mp4")
    assert (result.width, result.height, result.duration) == (1920, 1080, None)


@pytest.mark.parametrize(
    "exc",
    [
        FileNotFoundError("ffprobe"),
        subprocess.TimeoutExpired(cmd="ffprobe", timeout=5),
        subprocess.CalledProcessError(1, "ffprobe", stderr="Invalid data found"),
    ],
)
def test_probe_failures_become_transcode_errors(monkeypatch, tmp_path, exc):
    def fail(*a, **kw):
        raise exc

    monkeypatch.setattr(ffmpeg.subprocess, "run", fail)
    with pytest.raises(TranscodeError):
        Transcoder("ffmpeg", "ffprobe", 5).probe(tmp_path / "in.mp4")


class FakePopen:
    """Replays a canned -progress stream and exit status."""

    returncode_to_use = 0
    stderr_text = b""
    progress_lines = []

    def __init__(self, cmd, stdout=None, stderr=None, text=None):
        self.cmd = cmd
        self.stdout = io.StringIO("".join(self.progress_lines))
        stderr.write(self.stderr_text)
        self.killed = False

    def wait(self):
        return self.returncode_to_use

    def kill(self):
        self.killed = True


def test_run_collects_progress(monkeypatch):
    FakePopen.returncode_to_use = 0
    FakePopen.stderr_text = b""
    FakePopen.progress_lines = [
        "frame=10\n",
        "out_time_ms=2500000\n",
        "progress=continue\n",
        "out_time_ms=5000000\n",
        "out_time_ms=10000000\n",
        "progress=end\n",
    ]
    monkeypatch.setattr(ffmpeg.subprocess, "Popen", FakePopen)

    outcome = Transcoder("ffmpeg", "ffprobe", 5).run(["-i", "in.mp4", "out.mp4"], label="normalize", duration=10.0)
    assert outcome.ok
    assert outcome.progress == [25, 50, 100]
    assert outcome.command[:2] == ["ffmpeg", "-hide_banner"]
    assert "-progress" in outcome.command
    assert outcome.finished_at >= outcome.started_at


def test_run_raises_with_stderr_tail_on_failure(monkeypatch):
    FakePopen.returncode_to_use = 1
    FakePopen.stderr_text = b"moov atom not found\n"
    FakePopen.progress_lines = []
    monkeypatch.setattr(ffmpeg.subprocess, "Popen", FakePopen)

    with pytest.raises(TranscodeError) as info:
        Transcoder("ffmpeg", "ffprobe", 5).run(["-i", "bad.mp4", "out.mp4"], label="normalize")
    assert "moov atom not found" in info.value.stderr
    assert info.value.command[0] == "ffmpeg"


def test_run_reports_missing_binary(monkeypatch):
    def missing(*a, **kw):
        raise FileNotFoundError("ffmpeg")

    monkeypatch.setattr(ffmpeg.subprocess, "Popen", missing)
    with pytest.raises(TranscodeError, match="not installed"):
        Transcoder("ffmpeg", "ffprobe", 5).run(["-i", "in.mp4"], label="normalize")


def test_hls_rendition_records_its_job(monkeypatch, tmp_path):
    FakePopen.returncode_to_use = 0
    FakePopen.stderr_text = b""
    FakePopen.progress_lines = []
    monkeypatch.setattr(ffmpeg.subprocess, "Popen", FakePopen)

    out_dir = tmp_path / "hls" / "720p"
    outcome = Transcoder("ffmpeg", "ffprobe", 5).hls_rendition(tmp_path / "in.mp4", out_dir, LADDER[2])
    assert out_dir.is_dir()
    assert outcome.job.stage == "adaptive"
    assert outcome.job.input_path == tmp_path / "in.mp4"
    assert outcome.job.output_paths == (out_dir / "playlist.m3u8",)
