"""
Routing and idempotency checks for storage events.

Each stage owns an ordered tuple of named checks. A check returns a detail string
when the event must be skipped and None when it passes; the first failure becomes
the event's SkipReason. Checks only look at the event's strings and metadata, so
evaluating them never touches the filesystem or the network.
"""
from dataclasses import dataclass
from typing import Callable, NamedTuple

from django.conf import settings

from .errors import SkipCondition
from .events import UploadEvent
from .utils import is_stage1_output

NORMALIZE = "normalize"
ADAPTIVE = "adaptive"
STAGES = (NORMALIZE, ADAPTIVE)

# Written into output object metadata as processedBy.
STAGE_IDS = {
    NORMALIZE: "processVideoUpload",
    ADAPTIVE: "convertVideoToHLS",
}

UPLOAD_PREFIXES = ("posts/", "media/")


class SkipReason(NamedTuple):
    code: str
    detail: str


@dataclass(frozen=True)
class Check:
    code: str
    test: Callable[[UploadEvent, str], str | None]


def expected_bucket(stage: str) -> str:
    if stage == NORMALIZE:
        return settings.ORIGINAL_UPLOAD_BUCKET
    if stage == ADAPTIVE:
        return settings.PROCESSED_MEDIA_BUCKET
    raise ValueError(f"Unknown stage: {stage}")


def _bucket_mismatch(ev, stage):
    want = expected_bucket(stage)
    if ev.bucket != want:
        return f"bucket {ev.bucket!r} is not {want!r}"
    return None


def _already_processed(ev, stage):
    by = ev.metadata.get("processedby", "")
    if by == STAGE_IDS[stage]:
        return f"processedBy={by}"
    # Every Stage-2 input is a Stage-1 output carrying processed=true.
    if stage == NORMALIZE and ev.metadata.get("processed", "").lower() == "true":
        return "processed=true"
    return None


def _processed_tree(ev, stage):
    if "/processed/" in ev.path:
        return "path is inside a /processed/ tree"
    return None


def _not_video(ev, stage):
    if not (ev.content_type or "").startswith("video/"):
        return f"content type {ev.content_type!r} is not video/*"
    return None


def _not_mp4(ev, stage):
    if not ev.path.endswith(".mp4"):
        return "path does not end in .mp4"
    return None


def _outside_upload_prefix(ev, stage):
    if not ev.path.startswith(UPLOAD_PREFIXES):
        return f"path is not under {', '.join(UPLOAD_PREFIXES)}"
    return None


def _derived_artifact(ev, stage):
    p = ev.path
    if "-processed." in p or "/hls/" in p or p.endswith((".m3u8", ".ts")):
        return "path is a processed or HLS artifact"
    return None


def _not_stage1_output(ev, stage):
    if not is_stage1_output(ev.path):
        return "path does not match media/<user>/<video>/mp4/<name>.mp4"
    return None


CHECKS = {
    NORMALIZE: (
        Check("bucket_mismatch", _bucket_mismatch),
        Check("already_processed", _already_processed),
        Check("processed_tree", _processed_tree),
        Check("not_video", _not_video),
        Check("not_mp4", _not_mp4),
        Check("outside_upload_prefix", _outside_upload_prefix),
        Check("derived_artifact", _derived_artifact),
    ),
    ADAPTIVE: (
        Check("bucket_mismatch", _bucket_mismatch),
        Check("already_processed", _already_processed),
        Check("processed_tree", _processed_tree),
        Check("not_video", _not_video),
        Check("not_mp4", _not_mp4),
        Check("derived_artifact", _derived_artifact),
        Check("not_stage1_output", _not_stage1_output),
    ),
}


def evaluate(event: UploadEvent, stage: str) -> SkipReason | None:
    """First failing check for this stage, or None when the event should be processed."""
    if stage not in CHECKS:
        raise ValueError(f"Unknown stage: {stage}")
    for check in CHECKS[stage]:
        detail = check.test(event, stage)
        if detail is not None:
            return SkipReason(check.code, detail)
    return None


def should_process(event: UploadEvent, stage: str) -> bool:
    return evaluate(event, stage) is None


def route(event: UploadEvent) -> tuple[str | None, dict]:
    """
    Stage that accepts the event (at most one, since the stages watch different
    buckets) plus the skip reason from every stage that rejected it.
    """
    skipped = {}
    for stage in STAGES:
        reason = evaluate(event, stage)
        if reason is None:
            return stage, skipped
        skipped[stage] = reason
    return None, skipped


def require(event: UploadEvent, stage: str) -> None:
    """Raise SkipCondition when the stage would not process the event."""
    reason = evaluate(event, stage)
    if reason is not None:
        raise SkipCondition(reason)
