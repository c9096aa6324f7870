from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from transcoding.errors import TranscodeError
from transcoding.ffmpeg import Transcoder


def _mb(path: Path) -> str:
    return f"{path.stat().st_size / (1024 * 1024):.2f} MB"


class Command(BaseCommand):
    help = "Re-encode a local video with the web-playback (faststart) settings, without uploading it."

    def add_arguments(self, parser):
        parser.add_argument("input", type=Path)
        parser.add_argument("output", type=Path, nargs="?", help="Defaults to <stem>_web.mp4 next to the input.")

    def handle(self, *args, **options):
        src: Path = options["input"]
        if not src.is_file():
            raise CommandError(f"Input file not found: {src}")
        dst: Path = options["output"] or src.with_name(f"{src.stem}_web.mp4")
        if dst.resolve() == src.resolve():
            raise CommandError("Output must differ from input")

        transcoder = Transcoder()
        self.stdout.write(f"Input:  {src} ({_mb(src)})")
        self.stdout.write(f"Output: {dst}")
        try:
            duration = transcoder.probe(src).duration
            outcome = transcoder.normalize(src, dst, duration=duration)
        except TranscodeError as e:
            if e.stderr:
                self.stderr.write(e.stderr)
            raise CommandError(f"Re-encoding failed: {e}") from e

        self.stdout.write(self.style.SUCCESS(
            f"Re-encoded in {outcome.elapsed:.1f}s: {_mb(src)} -> {_mb(dst)}"
        ))
