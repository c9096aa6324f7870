"""
The two processing stages.

Stage 1 (normalize_upload) turns an original upload into a faststart MP4 in the
processed bucket. Stage 2 (build_adaptive_stream) turns that MP4 into an HLS
rendition ladder with a master playlist. Each call is self-contained: it checks
the guard first, does its work inside its own Workspace, and reports a
StageResult instead of raising.
"""
import logging
import posixpath
from dataclasses import asdict, dataclass, field
from uuid import uuid4

from . import guard
from .context import PipelineContext
from .errors import PipelineError, TranscodeError
from .events import UploadEvent
from .ladder import MasterManifest, applicable_renditions
from .s3 import CACHE_MASTER, CACHE_MP4, CACHE_PLAYLIST, CACHE_SEGMENT
from .utils import hls_root_for, processed_mp4_key, utc_now_iso
from .workspace import Workspace

logger = logging.getLogger(__name__)

SKIPPED = "skipped"
SUCCEEDED = "succeeded"
FAILED = "failed"


@dataclass
class StageResult:
    stage: str
    path: str
    status: str
    reason: str = ""
    error: str = ""
    outputs: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


def _skipped(stage: str, event: UploadEvent, reason: guard.SkipReason) -> StageResult:
    logger.info("Skipping %s for %s: %s (%s)", stage, event.uri, reason.code, reason.detail)
    return StageResult(stage, event.path, SKIPPED, reason=reason.code)


def _failed(stage: str, event: UploadEvent, exc: Exception) -> StageResult:
    if isinstance(exc, PipelineError):
        logger.error("%s failed for %s: %s: %s", stage, event.uri, type(exc).__name__, exc)
        if isinstance(exc, TranscodeError) and exc.stderr:
            logger.error("ffmpeg stderr:\n%s", exc.stderr)
    else:
        logger.exception("%s failed unexpectedly for %s", stage, event.uri)
    return StageResult(stage, event.path, FAILED, reason=type(exc).__name__, error=str(exc))


def _source_duration(ctx: PipelineContext, path) -> float | None:
    """Duration only feeds progress reporting, so a failed probe is not fatal here."""
    try:
        return ctx.transcoder.probe(path).duration
    except TranscodeError as e:
        logger.warning("Could not probe %s for progress reporting: %s", path, e)
        return None


def normalize_upload(event: UploadEvent, ctx: PipelineContext) -> StageResult:
    stage = guard.NORMALIZE
    reason = guard.evaluate(event, stage)
    if reason is not None:
        return _skipped(stage, event, reason)

    logger.info("Processing original video upload: %s", event.uri)
    mp4_key = processed_mp4_key(event.path)
    name = posixpath.basename(event.path)

    try:
        with Workspace(stage, root=ctx.scratch_root) as ws:
            src = ws.path(f"original-{name}")
            out = ws.path(f"processed-{name}")

            ctx.storage.download(event.bucket, event.path, src)
            ctx.transcoder.normalize(src, out, duration=_source_duration(ctx, src))
            logger.info("Processed video size: %.2f MB", out.stat().st_size / (1024 * 1024))

            # processed/processedBy stop any stage from picking this object up as an original again;
            # the fresh token invalidates previously issued download URLs.
            ctx.storage.upload_file(
                out, ctx.processed_bucket, mp4_key,
                content_type="video/mp4",
                cache_control=CACHE_MP4,
                metadata={
                    "processed": "true",
                    "processedBy": guard.STAGE_IDS[stage],
                    "originalUpload": event.path,
                    "processedAt": utc_now_iso(),
                    "downloadToken": uuid4().hex,
                },
            )
            logger.info("Uploaded processed MP4 to s3://%s/%s", ctx.processed_bucket, mp4_key)

            url = ctx.storage.presigned_get(ctx.processed_bucket, mp4_key)
            updated = ctx.reconciler.record_mp4(
                original_path=event.path,
                original_bucket=event.bucket,
                processed_bucket=ctx.processed_bucket,
                mp4_key=mp4_key,
                url=url,
            )
    except Exception as e:
        return _failed(stage, event, e)

    logger.info("Video processing completed successfully: %s", event.uri)
    return StageResult(stage, event.path, SUCCEEDED, outputs={
        "bucket": ctx.processed_bucket,
        "mp4_key": mp4_key,
        "url": url,
        "updated": updated,
    })


def build_adaptive_stream(event: UploadEvent, ctx: PipelineContext) -> StageResult:
    stage = guard.ADAPTIVE
    reason = guard.evaluate(event, stage)
    if reason is not None:
        return _skipped(stage, event, reason)

    logger.info("Converting video to HLS: %s", event.uri)
    bucket = ctx.processed_bucket
    hls_root = hls_root_for(event.path)
    master_key = f"{hls_root}/master.m3u8"
    stamp = {
        "processed": "true",
        "processedBy": guard.STAGE_IDS[stage],
        "originalUpload": event.metadata.get("originalupload") or event.path,
        "processedAt": utc_now_iso(),
        "downloadToken": uuid4().hex,
    }

    try:
        with Workspace("hls", root=ctx.scratch_root) as ws:
            src = ws.path(f"hls-input-{posixpath.basename(event.path)}")
            out_root = ws.subdir("hls-output")

            ctx.storage.download(event.bucket, event.path, src)
            probe = ctx.transcoder.probe(src)
            renditions = applicable_renditions(probe.height)
            logger.info(
                "Generating %d bitrate levels for %dx%d video",
                len(renditions), probe.width, probe.height,
            )

            manifest = MasterManifest()
            total_segments = 0
            for r in renditions:
                level_dir = out_root / r.name
                try:
                    ctx.transcoder.hls_rendition(src, level_dir, r, duration=probe.duration)
                except TranscodeError as e:
                    logger.error("Rendition %s failed, leaving it out of the ladder: %s", r.name, e)
                    continue

                # Segments before the playlist, and both before the master references them.
                level_prefix = f"{hls_root}/{r.name}"
                segments = ctx.storage.upload_dir(
                    level_dir, bucket, level_prefix, suffix=".ts",
                    cache_control=CACHE_SEGMENT, metadata=stamp,
                )
                playlist = level_dir / "playlist.m3u8"
                ctx.storage.upload_file(
                    playlist, bucket, f"{hls_root}/{r.playlist_path}",
                    cache_control=CACHE_PLAYLIST, metadata=stamp,
                )
                manifest.add(r, playlist)
                total_segments += len(segments)
                logger.info("Uploaded %d segments for %s", len(segments), r.name)

            if not manifest:
                raise TranscodeError(f"no HLS rendition could be produced for {event.path}")

            master = manifest.write(out_root / "master.m3u8")
            ctx.storage.upload_file(master, bucket, master_key, cache_control=CACHE_MASTER, metadata=stamp)
            logger.info(
                "Uploaded master playlist with %d levels and %d segments to s3://%s/%s",
                len(manifest), total_segments, bucket, master_key,
            )

            url = ctx.storage.presigned_get(bucket, master_key)
            updated = ctx.reconciler.record_hls(mp4_key=event.path, processed_bucket=bucket, master_url=url)
    except Exception as e:
        # The Stage-1 MP4 stays playable.
        return _failed(stage, event, e)

    logger.info("HLS conversion completed successfully: %s", event.uri)
    return StageResult(stage, event.path, SUCCEEDED, outputs={
        "bucket": bucket,
        "master_key": master_key,
        "renditions": [e.rendition.name for e in manifest.entries],
        "segments": total_segments,
        "url": url,
        "updated": updated,
    })


STAGE_HANDLERS = {
    guard.NORMALIZE: normalize_upload,
    guard.ADAPTIVE: build_adaptive_stream,
}


def run_stage(stage: str, event: UploadEvent, ctx: PipelineContext) -> StageResult:
    return STAGE_HANDLERS[stage](event, ctx)
