from django.db import models


class MediaRecord(models.Model):
    """
    Processing fields shared by every document that references an upload.
    Rows are created and deleted by the app; the pipeline only updates them.
    """
    processed_video_bucket = models.CharField(max_length=255, blank=True, default="")
    processed_mp4_storage_path = models.CharField(max_length=512, blank=True, default="", db_index=True)
    video_processed = models.BooleanField(default=False)
    video_processed_at = models.DateTimeField(null=True, blank=True)

    hls_url = models.TextField(blank=True, default="")   # presigned URLs run long
    hls_processed = models.BooleanField(default=False)
    hls_processed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Post(MediaRecord):
    author_id = models.CharField(max_length=128, blank=True, default="")
    content = models.TextField(blank=True, default="")
    video_storage_bucket = models.CharField(max_length=255, blank=True, default="")
    video_storage_path = models.CharField(max_length=512, blank=True, default="", db_index=True)
    video_url = models.TextField(blank=True, default="")


class MediaItem(MediaRecord):
    owner_id = models.CharField(max_length=128, blank=True, default="")
    title = models.CharField(max_length=255, blank=True, default="")
    media_storage_bucket = models.CharField(max_length=255, blank=True, default="")
    media_storage_path = models.CharField(max_length=512, blank=True, default="", db_index=True)
    media_url = models.TextField(blank=True, default="")
