from rest_framework import serializers

from .models import MediaItem, Post


class StorageObjectSerializer(serializers.Serializer):
    """Flat trigger payload: {bucket, name|path, contentType, metadata}."""
    bucket = serializers.CharField()
    name = serializers.CharField(required=False)
    path = serializers.CharField(required=False)
    contentType = serializers.CharField(required=False, allow_blank=True, default="")
    metadata = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False, default=dict)

    def validate(self, attrs):
        if not (attrs.get("name") or attrs.get("path")):
            raise serializers.ValidationError("Either 'name' or 'path' is required.")
        return attrs


class S3BucketSerializer(serializers.Serializer):
    name = serializers.CharField()


class S3ObjectSerializer(serializers.Serializer):
    key = serializers.CharField(trim_whitespace=False)
    contentType = serializers.CharField(required=False, allow_blank=True, default="")
    userMetadata = serializers.DictField(
        child=serializers.CharField(allow_blank=True, trim_whitespace=False), required=False, default=dict,
    )


class S3EntitySerializer(serializers.Serializer):
    bucket = S3BucketSerializer()
    object = S3ObjectSerializer()


class S3RecordSerializer(serializers.Serializer):
    eventName = serializers.CharField()
    s3 = S3EntitySerializer()


class S3NotificationSerializer(serializers.Serializer):
    """Bucket notification envelope: {"Records": [{"eventName", "s3": {"bucket", "object"}}]}."""
    Records = S3RecordSerializer(many=True)


class SkippedEventSerializer(serializers.Serializer):
    bucket = serializers.CharField()
    path = serializers.CharField()
    reasons = serializers.DictField(child=serializers.CharField())


class AcceptedEventSerializer(serializers.Serializer):
    bucket = serializers.CharField()
    path = serializers.CharField()
    stage = serializers.CharField()
    task_id = serializers.CharField()


class PostRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = Post
        fields = [
            "id",
            "video_storage_bucket",
            "video_storage_path",
            "video_url",
            "video_processed",
            "video_processed_at",
            "processed_video_bucket",
            "processed_mp4_storage_path",
            "hls_url",
            "hls_processed",
            "hls_processed_at",
            "updated_at",
        ]


class MediaRecordSerializer(serializers.ModelSerializer):
    class Meta:
        model = MediaItem
        fields = [
            "id",
            "media_storage_bucket",
            "media_storage_path",
            "media_url",
            "video_processed",
            "video_processed_at",
            "processed_video_bucket",
            "processed_mp4_storage_path",
            "hls_url",
            "hls_processed",
            "hls_processed_at",
            "updated_at",
        ]
