import mimetypes
import posixpath
import re
import urllib.parse
from datetime import datetime, timezone

# media/{userId}/{videoId}/mp4/{videoId}.mp4
STAGE1_OUTPUT_RE = re.compile(r"^media/[^/]+/[^/]+/mp4/[^/]+\.mp4$")


def guess_kind(path: str) -> str:
    """Return 'image' | 'video' | 'other' based on mimetype/extension."""
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        return "other"
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return "other"


def split_upload_path(path: str) -> tuple[str, str]:
    """
    (user_id, video_id) for an original upload such as posts/{userId}/{videoId}.mp4.
    user_id falls back to 'unknown' when the path has no second segment.
    """
    parts = path.split("/")
    user_id = parts[1] if len(parts) >= 2 and parts[1] else "unknown"
    stem, _ext = posixpath.splitext(posixpath.basename(path))
    return user_id, stem


def processed_mp4_key(original_path: str) -> str:
    user_id, video_id = split_upload_path(original_path)
    return f"media/{user_id}/{video_id}/mp4/{video_id}.mp4"


def hls_root_for(mp4_key: str) -> str:
    """HLS tree sits next to the mp4 folder: media/u/v/mp4/v.mp4 -> media/u/v/hls"""
    return f"{posixpath.dirname(posixpath.dirname(mp4_key))}/hls"


def is_stage1_output(path: str) -> bool:
    return bool(STAGE1_OUTPUT_RE.match(path or ""))


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# S3 user metadata travels as HTTP headers and must be ASCII; object keys need not be.
METADATA_SAFE = "/:+"


def quote_metadata(metadata: dict) -> dict:
    """Percent-encode metadata values (UTF-8) so non-ASCII paths survive a round trip."""
    return {k: urllib.parse.quote(str(v), safe=METADATA_SAFE) for k, v in metadata.items()}


def unquote_metadata(metadata: dict) -> dict:
    return {k: urllib.parse.unquote(v) if isinstance(v, str) else v for k, v in metadata.items()}
