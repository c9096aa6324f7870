"""
Writes stage results back onto the documents that reference an upload.

Lookups match a stored path field exactly and are capped per collection per
invocation; rows beyond the cap are left untouched (logged).
"""
import logging
from dataclasses import dataclass

from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from .errors import ReconciliationError
from .models import MediaItem, Post

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Collection:
    name: str
    model: type
    path_field: str      # where the app stores the original upload path
    url_field: str       # playback URL read by the UI
    bucket_field: str


POSTS = Collection("posts", Post, "video_storage_path", "video_url", "video_storage_bucket")
MEDIA = Collection("media", MediaItem, "media_storage_path", "media_url", "media_storage_bucket")


class Reconciler:
    def __init__(self, collections=(POSTS, MEDIA), batch_limit: int | None = None):
        self.collections = {c.name: c for c in collections}
        self.batch_limit = batch_limit or settings.RECONCILE_BATCH_LIMIT

    def update(self, collection: Collection, lookup_field: str, path: str, fields: dict) -> int:
        """Apply fields to up to batch_limit rows where lookup_field == path, as one batch."""
        model = collection.model
        try:
            with transaction.atomic():
                docs = list(
                    model.objects.select_for_update()
                    .filter(**{lookup_field: path})
                    .order_by("pk")[: self.batch_limit]
                )
                if not docs:
                    return 0
                now = timezone.now()
                for doc in docs:
                    for name, value in fields.items():
                        setattr(doc, name, value)
                    doc.updated_at = now
                model.objects.bulk_update(docs, [*fields, "updated_at"])
        except DatabaseError as e:
            raise ReconciliationError(f"{collection.name} update for {path} failed: {e}") from e

        if len(docs) == self.batch_limit:
            logger.warning(
                "%s: hit the %d-row cap for %s; further rows were not updated",
                collection.name, self.batch_limit, path,
            )
        logger.info("Updated %d %s row(s) for %s", len(docs), collection.name, path)
        return len(docs)

    def record_mp4(self, *, original_path: str, original_bucket: str, processed_bucket: str,
                   mp4_key: str, url: str) -> dict[str, int]:
        """Stage 1 results, matched on the original upload path."""
        now = timezone.now()
        parts = original_path.split("/")
        targets = []
        if len(parts) >= 3 and parts[0] == "posts" and "posts" in self.collections:
            targets.append(self.collections["posts"])
        if len(parts) >= 2 and parts[0] == "media" and "media" in self.collections:
            targets.append(self.collections["media"])

        counts = {}
        for c in targets:
            counts[c.name] = self.update(c, c.path_field, original_path, {
                "video_processed": True,
                "video_processed_at": now,
                c.bucket_field: original_bucket,
                c.path_field: original_path,
                "processed_video_bucket": processed_bucket,
                "processed_mp4_storage_path": mp4_key,
                c.url_field: url,
            })
        return counts

    def record_hls(self, *, mp4_key: str, processed_bucket: str, master_url: str) -> dict[str, int]:
        """Stage 2 results, matched on the Stage-1 output path in every collection."""
        now = timezone.now()
        counts = {}
        for c in self.collections.values():
            counts[c.name] = self.update(c, "processed_mp4_storage_path", mp4_key, {
                "hls_url": master_url,
                "hls_processed": True,
                "hls_processed_at": now,
                "processed_video_bucket": processed_bucket,
            })
        return counts
