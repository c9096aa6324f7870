import logging
from pathlib import Path

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import TransientIOError
from .utils import quote_metadata, unquote_metadata

logger = logging.getLogger(__name__)

HLS_PLAYLIST_TYPE = "application/vnd.apple.mpegurl"
HLS_SEGMENT_TYPE = "video/mp2t"

# Cache lifetimes per artifact kind.
CACHE_MP4 = "public, max-age=60"
CACHE_MASTER = "public, max-age=60"
CACHE_PLAYLIST = "public, max-age=3600"
CACHE_SEGMENT = "public, max-age=31536000"


def _session():
    return boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )


def get_s3_client():
    """
    SDK client for server-side upload/download.
    """
    return _session().client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "standard"},
        ),
    )


def get_presign_client():
    """
    Separate client for generating presigned URLs that players will call.
    Uses S3_PUBLIC_ENDPOINT so the URL host matches what the client reaches.
    """
    return _session().client(
        "s3",
        endpoint_url=settings.S3_PUBLIC_ENDPOINT,
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",  # ensures AWS4 signing
        ),
    )


def content_type_for(path: Path | str) -> str | None:
    suf = Path(path).suffix.lower()
    if suf == ".m3u8":
        return HLS_PLAYLIST_TYPE
    if suf in (".ts", ".m2ts"):
        return HLS_SEGMENT_TYPE
    if suf == ".mp4":
        return "video/mp4"
    return None


class ObjectStorage:
    """
    Thin wrapper over the S3 client pair. Every botocore failure surfaces as
    TransientIOError so stages handle storage trouble in one place.
    """

    def __init__(self, client=None, presign_client=None):
        self.client = client or get_s3_client()
        self.presign_client = presign_client or get_presign_client()

    def download(self, bucket: str, key: str, dest: Path) -> int:
        try:
            self.client.download_file(bucket, key, str(dest))
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"download of s3://{bucket}/{key} failed: {e}") from e
        size = dest.stat().st_size
        logger.info("Downloaded s3://%s/%s (%.2f MB)", bucket, key, size / (1024 * 1024))
        return size

    def head(self, bucket: str, key: str) -> dict:
        """ContentType and user Metadata (values decoded) of an existing object."""
        try:
            resp = self.client.head_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"head of s3://{bucket}/{key} failed: {e}") from e
        return {"ContentType": resp.get("ContentType") or "", "Metadata": unquote_metadata(resp.get("Metadata") or {})}

    def upload_file(self, local_path: Path, bucket: str, key: str, *, content_type: str | None = None,
                    cache_control: str | None = None, metadata: dict | None = None):
        """
        Upload a single file with optional Content-Type, Cache-Control and user metadata.
        Metadata values are percent-encoded; read them back through head().
        """
        extra = {}
        content_type = content_type or content_type_for(local_path)
        if content_type:
            extra["ContentType"] = content_type
        if cache_control:
            extra["CacheControl"] = cache_control
        if metadata:
            extra["Metadata"] = quote_metadata(metadata)
        try:
            self.client.upload_file(str(local_path), bucket, key, ExtraArgs=extra or None)
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"upload to s3://{bucket}/{key} failed: {e}") from e

    def upload_dir(self, local_dir: Path, bucket: str, key_prefix: str, *, suffix: str,
                   cache_control: str | None = None, metadata: dict | None = None) -> list[str]:
        """
        Upload every file directly under local_dir ending in suffix, in name order.
        Returns the uploaded keys.
        """
        keys = []
        for p in sorted(Path(local_dir).iterdir()):
            if not p.is_file() or p.suffix.lower() != suffix:
                continue
            key = f"{key_prefix}/{p.name}"
            self.upload_file(p, bucket, key, cache_control=cache_control, metadata=metadata)
            keys.append(key)
        return keys

    def presigned_get(self, bucket: str, key: str, expires: int | None = None) -> str:
        """
        Presigned GET URL for playback; SigV4 caps the lifetime at 7 days.
        """
        expires = min(expires or settings.SIGNED_URL_EXPIRE_SECONDS, settings.SIGNED_URL_MAX_SECONDS)
        try:
            return self.presign_client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires,
                HttpMethod="GET",
            )
        except (BotoCoreError, ClientError) as e:
            raise TransientIOError(f"signing s3://{bucket}/{key} failed: {e}") from e
