from pathlib import Path

import pytest
from botocore.exceptions import ClientError, ParamValidationError

from transcoding.context import build_context
from transcoding.errors import TranscodeError
from transcoding.ffmpeg import ProbeResult
from transcoding.reconcile import Reconciler
from transcoding.s3 import ObjectStorage


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls ObjectStorage makes."""

    def __init__(self):
        self.objects: dict[tuple[str, str], dict] = {}
        self.uploads: list[str] = []
        self.downloads: list[tuple[str, str]] = []
        self.fail_upload_when = None

    def put(self, bucket, key, body=b"source-bytes", content_type="video/mp4", metadata=None):
        self.objects[(bucket, key)] = {
            "Body": body,
            "ContentType": content_type,
            "Metadata": dict(metadata or {}),
        }

    def download_file(self, bucket, key, filename):
        self.downloads.append((bucket, key))
        obj = self.objects.get((bucket, key))
        if obj is None:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        Path(filename).write_bytes(obj["Body"])

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.fail_upload_when and self.fail_upload_when(key):
            raise ClientError({"Error": {"Code": "503", "Message": "Slow Down"}}, "PutObject")
        extra = ExtraArgs or {}
        for k, v in (extra.get("Metadata") or {}).items():
            # botocore refuses non-ASCII metadata before anything is sent.
            if not str(v).isascii():
                raise ParamValidationError(report=f"Non ascii characters found in S3 metadata for key \"{k}\"")
        self.objects[(bucket, key)] = {
            "Body": Path(filename).read_bytes(),
            "ContentType": extra.get("ContentType", ""),
            "CacheControl": extra.get("CacheControl", ""),
            "Metadata": dict(extra.get("Metadata") or {}),
        }
        self.uploads.append(key)

    def head_object(self, Bucket, Key):
        obj = self.objects.get((Bucket, Key))
        if obj is None:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        # S3 hands user metadata back with lower-cased keys.
        return {"ContentType": obj["ContentType"], "Metadata": {k.lower(): v for k, v in obj["Metadata"].items()}}

    def generate_presigned_url(self, ClientMethod, Params, ExpiresIn, HttpMethod):
        return f"https://signed.example/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}"


class FakeTranscoder:
    """Writes placeholder outputs where ffmpeg would, and records every call."""

    def __init__(self, width=1280, height=720, duration=12.0):
        self.probe_result = ProbeResult(width, height, duration)
        self.calls: list[tuple] = []
        self.fail_normalize = False
        self.fail_renditions: set[str] = set()
        self.segments_per_rendition = 3

    def probe(self, path):
        assert Path(path).exists()
        self.calls.append(("probe", Path(path).name))
        return self.probe_result

    def normalize(self, input_path, output_path, *, duration=None):
        assert Path(input_path).exists()
        self.calls.append(("normalize", Path(input_path).name))
        if self.fail_normalize:
            raise TranscodeError("ffmpeg exited with status 1 for normalize", stderr="moov atom not found")
        Path(output_path).write_bytes(b"faststart-mp4")

    def hls_rendition(self, input_path, out_dir, rendition, *, duration=None):
        self.calls.append(("hls", rendition.name))
        out_dir = Path(out_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        if rendition.name in self.fail_renditions:
            raise TranscodeError(f"ffmpeg exited with status 1 for hls {rendition.name}")
        lines = ["#EXTM3U", "#EXT-X-VERSION:3", "#EXT-X-TARGETDURATION:4"]
        for i in range(self.segments_per_rendition):
            name = f"segment{i:03d}.ts"
            (out_dir / name).write_bytes(b"ts")
            lines += ["#EXTINF:4.000000,", name]
        lines.append("#EXT-X-ENDLIST")
        (out_dir / "playlist.m3u8").write_text("\n".join(lines) + "\n")


@pytest.fixture
def fake_s3():
    return FakeS3Client()


@pytest.fixture
def fake_transcoder():
    return FakeTranscoder()


@pytest.fixture
def scratch_root(tmp_path):
    return tmp_path / "scratch"


@pytest.fixture
def ctx(fake_s3, fake_transcoder, scratch_root):
    return build_context(
        storage=ObjectStorage(client=fake_s3, presign_client=fake_s3),
        transcoder=fake_transcoder,
        reconciler=Reconciler(),
        original_bucket="original-uploads",
        processed_bucket="processed-media",
        scratch_root=str(scratch_root),
    )


@pytest.fixture
def leftovers(scratch_root):
    """Everything still present under the scratch root."""
    def _list():
        if not scratch_root.exists():
            return []
        return list(scratch_root.rglob("*"))
    return _list
