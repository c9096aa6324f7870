from dataclasses import dataclass
from functools import lru_cache

from django.conf import settings

from .ffmpeg import Transcoder
from .reconcile import Reconciler
from .s3 import ObjectStorage


@dataclass(frozen=True)
class PipelineContext:
    """Client handles a stage needs, built once per worker and passed into every stage call."""
    storage: ObjectStorage
    transcoder: Transcoder
    reconciler: Reconciler
    original_bucket: str
    processed_bucket: str
    scratch_root: str


def build_context(**overrides) -> PipelineContext:
    parts = dict(
        storage=None,
        transcoder=None,
        reconciler=None,
        original_bucket=settings.ORIGINAL_UPLOAD_BUCKET,
        processed_bucket=settings.PROCESSED_MEDIA_BUCKET,
        scratch_root=str(settings.TRANSCODE_SCRATCH_ROOT),
    )
    parts.update(overrides)
    if parts["storage"] is None:
        parts["storage"] = ObjectStorage()
    if parts["transcoder"] is None:
        parts["transcoder"] = Transcoder()
    if parts["reconciler"] is None:
        parts["reconciler"] = Reconciler()
    return PipelineContext(**parts)


@lru_cache(maxsize=1)
def get_context() -> PipelineContext:
    return build_context()
