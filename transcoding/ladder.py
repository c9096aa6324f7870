import re
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Rendition:
    name: str
    width: int
    height: int
    video_bitrate: int  # kbps
    audio_bitrate: int  # kbps

    @property
    def playlist_path(self) -> str:
        return f"{self.name}/playlist.m3u8"

    @property
    def declared_bandwidth(self) -> int:
        return self.video_bitrate * 1000


# (name, width, height, video kbps, audio kbps), ascending resolution.
LADDER_TABLE = (
    ("240p", 426, 240, 400, 64),
    ("480p", 854, 480, 1000, 96),
    ("720p", 1280, 720, 2500, 128),
    ("1080p", 1920, 1080, 5000, 192),
)

LADDER = tuple(Rendition(*row) for row in LADDER_TABLE)


def applicable_renditions(source_height: int, ladder=LADDER) -> list[Rendition]:
    """Ladder levels that do not upscale the source, in ladder order."""
    return [r for r in ladder if r.height <= source_height]


_BANDWIDTH_RE = re.compile(r"#EXT-X-STREAM-INF:BANDWIDTH=(\d+)")


def playlist_bandwidth(playlist_text: str, rendition: Rendition) -> int:
    m = _BANDWIDTH_RE.search(playlist_text or "")
    if m:
        return int(m.group(1))
    return rendition.declared_bandwidth


@dataclass(frozen=True)
class ManifestEntry:
    rendition: Rendition
    bandwidth: int
    playlist_path: str


@dataclass
class MasterManifest:
    """Extended M3U master playlist; entries keep insertion order."""

    entries: list[ManifestEntry] = field(default_factory=list)
    version: int = 3

    def add(self, rendition: Rendition, playlist_file: Path | str | None = None) -> ManifestEntry:
        """Append a rendition; bandwidth is read back from its own playlist when it declares one."""
        text = ""
        if playlist_file is not None:
            text = Path(playlist_file).read_text(encoding="utf-8", errors="ignore")
        entry = ManifestEntry(rendition, playlist_bandwidth(text, rendition), rendition.playlist_path)
        self.entries.append(entry)
        return entry

    def __len__(self):
        return len(self.entries)

    def render(self) -> str:
        lines = ["#EXTM3U", f"#EXT-X-VERSION:{self.version}"]
        for e in self.entries:
            r = e.rendition
            lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={e.bandwidth},RESOLUTION={r.width}x{r.height}")
            lines.append(e.playlist_path)
        return "\n".join(lines) + "\n"

    def write(self, path: Path) -> Path:
        path.write_text(self.render(), encoding="utf-8")
        return path
