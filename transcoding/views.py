import hmac
import logging

from django.conf import settings
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import guard
from .events import parse_events
from .models import MediaItem, Post
from .serializers import (
    AcceptedEventSerializer,
    MediaRecordSerializer,
    PostRecordSerializer,
    S3NotificationSerializer,
    SkippedEventSerializer,
    StorageObjectSerializer,
)
from .tasks import STAGE_TASKS

logger = logging.getLogger(__name__)


def _token_ok(request) -> bool:
    expected = settings.STORAGE_WEBHOOK_TOKEN
    if not expected:
        return True
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        token = header
    return hmac.compare_digest(token.strip(), expected)


class StorageEventView(views.APIView):
    """
    Receives object-created notifications from MinIO (or a flat trigger payload),
    runs the stage guards synchronously and enqueues only accepted events.
    Rejected events cost no storage or transcoder I/O.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        if not _token_ok(request):
            return Response({"detail": "Invalid webhook token."}, status=status.HTTP_401_UNAUTHORIZED)

        payload = request.data
        if isinstance(payload, dict) and "Records" in payload:
            ser = S3NotificationSerializer(data=payload)
        else:
            ser = StorageObjectSerializer(data=payload)
        ser.is_valid(raise_exception=True)
        events = parse_events(ser.validated_data)

        accepted, skipped = [], []
        for ev in events:
            if not ev.content_type:
                logger.warning(
                    "%s arrived without a content type; notifications must carry contentType and "
                    "userMetadata (MinIO does, native AWS S3 notifications do not)", ev.uri,
                )
            stage, reasons = guard.route(ev)
            if stage is None:
                logger.info(
                    "No stage accepts %s: %s", ev.uri,
                    ", ".join(f"{s}={r.code}" for s, r in reasons.items()),
                )
                skipped.append({
                    "bucket": ev.bucket,
                    "path": ev.path,
                    "reasons": {s: r.code for s, r in reasons.items()},
                })
                continue
            result = STAGE_TASKS[stage].delay(ev.to_dict())
            logger.info("Enqueued %s for %s as task %s", stage, ev.uri, result.id)
            accepted.append({"bucket": ev.bucket, "path": ev.path, "stage": stage, "task_id": str(result.id)})

        return Response(
            {
                "accepted": AcceptedEventSerializer(accepted, many=True).data,
                "skipped": SkippedEventSerializer(skipped, many=True).data,
            },
            status=status.HTTP_202_ACCEPTED,
        )


class RecordStatusView(views.APIView):
    """Read-only view of a record's processing fields, for operators."""
    permission_classes = [AllowAny]
    authentication_classes = []

    COLLECTIONS = {
        "posts": (Post, PostRecordSerializer),
        "media": (MediaItem, MediaRecordSerializer),
    }

    def get(self, request, collection, pk):
        if collection not in self.COLLECTIONS:
            return Response({"detail": "Unknown collection"}, status=404)
        model, serializer_cls = self.COLLECTIONS[collection]
        try:
            record = model.objects.get(pk=pk)
        except model.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        return Response(serializer_cls(record).data)
