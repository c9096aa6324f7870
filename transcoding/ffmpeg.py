"""
ffmpeg / ffprobe invocation.

Each encode is one blocking call: the process is started, its ``-progress``
stream is read until it closes, and the call returns a TranscodeOutcome once the
process exits. A non-zero exit raises TranscodeError carrying the stderr tail.
"""
import json
import logging
import subprocess
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

from django.conf import settings

from .errors import MAX_ERROR_CHARS, TranscodeError
from .ladder import Rendition

logger = logging.getLogger(__name__)

# Resamples with timestamp correction to remove drift/clicks from mixed-source audio.
AUDIO_FILTER = "aresample=async=1:min_hard_comp=0.100000:first_pts=0"
HLS_SEGMENT_SECONDS = 4
GOP_FRAMES = 48

# Defaults when the source carries no usable video stream dimensions.
FALLBACK_WIDTH, FALLBACK_HEIGHT = 1920, 1080


@dataclass
class ProbeResult:
    width: int
    height: int
    duration: float | None = None


@dataclass(frozen=True)
class TranscodeJob:
    """Inputs and outputs of one transcoder invocation inside a stage's workspace."""
    stage: str
    input_path: Path
    output_paths: tuple[Path, ...]


@dataclass
class TranscodeOutcome:
    command: list[str]
    started_at: float
    job: TranscodeJob | None = None
    finished_at: float | None = None
    progress: list[int] = field(default_factory=list)
    returncode: int | None = None
    stderr_tail: str = ""

    @property
    def elapsed(self) -> float:
        return (self.finished_at or time.time()) - self.started_at

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def video_args(video_bitrate: int | None = None) -> list[str]:
    args = [
        "-c:v", "libx264",
        "-preset", "fast",
        "-crf", "23",
        "-pix_fmt", "yuv420p",
        "-profile:v", "high",
        "-level", "4.0",
    ]
    if video_bitrate:
        args += ["-maxrate", f"{video_bitrate}k", "-bufsize", f"{video_bitrate * 2}k"]
    return args


def audio_args(audio_bitrate: int = 128) -> list[str]:
    return [
        "-c:a", "aac",
        "-profile:a", "aac_low",
        "-b:a", f"{audio_bitrate}k",
        "-ac", "2",
        "-ar", "48000",
        "-af", AUDIO_FILTER,
    ]


def normalize_args(input_path: Path, output_path: Path) -> list[str]:
    """Stage 1: faststart H.264/AAC MP4 with clean stereo 48 kHz audio."""
    return [
        "-i", str(input_path),
        *video_args(),
        *audio_args(128),
        "-movflags", "+faststart",
        str(output_path),
    ]


def hls_rendition_args(input_path: Path, out_dir: Path, rendition: Rendition) -> list[str]:
    """Stage 2: one ladder level as fixed-length HLS segments + playlist.m3u8 in out_dir."""
    return [
        "-i", str(input_path),
        "-vf", f"scale={rendition.width}:{rendition.height}",
        *video_args(rendition.video_bitrate),
        *audio_args(rendition.audio_bitrate),
        "-movflags", "+faststart",
        # Uniform keyframe cadence keeps segment boundaries aligned across renditions.
        "-sc_threshold", "0",
        "-g", str(GOP_FRAMES),
        "-keyint_min", str(GOP_FRAMES),
        "-f", "hls",
        "-hls_time", str(HLS_SEGMENT_SECONDS),
        "-hls_list_size", "0",
        "-start_number", "0",
        "-hls_segment_filename", str(out_dir / "segment%03d.ts"),
        str(out_dir / "playlist.m3u8"),
    ]


def _percent(line: str, duration: float | None) -> int | None:
    if not duration or not line.startswith("out_time_ms="):
        return None
    try:
        micros = int(line.split("=", 1)[1])
    except ValueError:
        return None
    return max(0, min(100, int(micros / 1_000_000 / duration * 100)))


class Transcoder:
    def __init__(self, ffmpeg_bin: str | None = None, ffprobe_bin: str | None = None,
                 probe_timeout: int | None = None):
        self.ffmpeg_bin = ffmpeg_bin or settings.FFMPEG_BINARY
        self.ffprobe_bin = ffprobe_bin or settings.FFPROBE_BINARY
        self.probe_timeout = probe_timeout or settings.FFPROBE_TIMEOUT_SECONDS

    def probe(self, path: Path) -> ProbeResult:
        """Dimensions of the first video stream plus container duration."""
        cmd = [
            self.ffprobe_bin,
            "-v", "error",
            "-print_format", "json",
            "-show_streams",
            "-show_format",
            str(path),
        ]
        try:
            completed = subprocess.run(
                cmd, capture_output=True, text=True, check=True, timeout=self.probe_timeout,
            )
        except FileNotFoundError as exc:
            raise TranscodeError("ffprobe is not installed or not available in PATH", command=cmd) from exc
        except subprocess.TimeoutExpired as exc:
            raise TranscodeError(f"ffprobe timed out while probing {path}", command=cmd) from exc
        except subprocess.CalledProcessError as exc:
            raise TranscodeError(f"ffprobe failed for {path}", command=cmd, stderr=exc.stderr or "") from exc

        try:
            payload = json.loads(completed.stdout or "{}")
        except json.JSONDecodeError as exc:
            raise TranscodeError(f"ffprobe returned invalid JSON for {path}", command=cmd) from exc

        video = next((s for s in payload.get("streams") or [] if s.get("codec_type") == "video"), {})
        duration = None
        try:
            duration = float((payload.get("format") or {}).get("duration"))
        except (TypeError, ValueError):
            pass
        return ProbeResult(
            width=int(video.get("width") or FALLBACK_WIDTH),
            height=int(video.get("height") or FALLBACK_HEIGHT),
            duration=duration,
        )

    def run(self, args: list[str], *, label: str, duration: float | None = None,
            job: TranscodeJob | None = None) -> TranscodeOutcome:
        cmd = [self.ffmpeg_bin, "-hide_banner", "-y", "-nostats", "-progress", "pipe:1", *args]
        outcome = TranscodeOutcome(command=cmd, started_at=time.time(), job=job)
        logger.info("FFmpeg command for %s: %s", label, subprocess.list2cmdline(cmd))

        with tempfile.TemporaryFile() as errf:
            try:
                proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=errf, text=True)
            except FileNotFoundError as exc:
                raise TranscodeError("ffmpeg is not installed or not available in PATH", command=cmd) from exc

            try:
                last_logged = -10
                for raw in proc.stdout:
                    pct = _percent(raw.strip(), duration)
                    if pct is None:
                        continue
                    outcome.progress.append(pct)
                    if pct >= last_logged + 10:
                        last_logged = pct - pct % 10
                        logger.info("%s progress: %d%%", label, pct)
                outcome.returncode = proc.wait()
            except BaseException:
                # Soft time limit or worker shutdown: do not leave ffmpeg running.
                proc.kill()
                proc.wait()
                raise
            finally:
                proc.stdout.close()
                outcome.finished_at = time.time()

            errf.seek(0)
            outcome.stderr_tail = errf.read().decode("utf-8", errors="ignore")[-MAX_ERROR_CHARS:]

        if not outcome.ok:
            raise TranscodeError(
                f"ffmpeg exited with status {outcome.returncode} for {label}",
                command=cmd,
                stderr=outcome.stderr_tail,
            )
        logger.info("%s completed in %.1fs", label, outcome.elapsed)
        return outcome

    def normalize(self, input_path: Path, output_path: Path, *, duration: float | None = None) -> TranscodeOutcome:
        job = TranscodeJob("normalize", input_path, (output_path,))
        return self.run(normalize_args(input_path, output_path), label="normalize", duration=duration, job=job)

    def hls_rendition(self, input_path: Path, out_dir: Path, rendition: Rendition,
                      *, duration: float | None = None) -> TranscodeOutcome:
        out_dir.mkdir(parents=True, exist_ok=True)
        return self.run(
            hls_rendition_args(input_path, out_dir, rendition),
            label=f"hls {rendition.name}",
            duration=duration,
            job=TranscodeJob("adaptive", input_path, (out_dir / "playlist.m3u8",)),
        )
