import json

from django.core.management.base import BaseCommand, CommandError

from transcoding import guard
from transcoding.context import get_context
from transcoding.errors import PipelineError, SkipCondition
from transcoding.events import UploadEvent
from transcoding.stages import FAILED, run_stage
from transcoding.tasks import STAGE_TASKS
from transcoding.utils import guess_kind


class Command(BaseCommand):
    help = (
        "Replay the finalize event for an existing object: read its content type and "
        "metadata, run the stage guards, then enqueue (or run inline) the accepting stage."
    )

    def add_arguments(self, parser):
        parser.add_argument("bucket")
        parser.add_argument("key")
        parser.add_argument("--sync", action="store_true", help="Run the stage in this process instead of enqueueing.")
        parser.add_argument("--stage", choices=guard.STAGES, help="Only consider this stage and fail if it would skip.")

    def handle(self, *args, **options):
        bucket, key = options["bucket"], options["key"]
        ctx = get_context()
        try:
            head = ctx.storage.head(bucket, key)
        except PipelineError as e:
            raise CommandError(str(e)) from e

        content_type = head["ContentType"]
        if not content_type and guess_kind(key) == "video":
            content_type = "video/mp4"
        event = UploadEvent(bucket=bucket, path=key, content_type=content_type, metadata=head["Metadata"])

        if options["stage"]:
            stage = options["stage"]
            try:
                guard.require(event, stage)
            except SkipCondition as e:
                raise CommandError(f"{stage} would skip {event.uri}: {e}") from e
        else:
            stage, reasons = guard.route(event)
        if stage is None:
            for s, r in reasons.items():
                self.stdout.write(f"{s}: skipped ({r.code}: {r.detail})")
            return

        if not options["sync"]:
            result = STAGE_TASKS[stage].delay(event.to_dict())
            self.stdout.write(self.style.SUCCESS(f"Enqueued {stage} for {event.uri} as task {result.id}"))
            return

        result = run_stage(stage, event, ctx)
        self.stdout.write(json.dumps(result.to_dict(), indent=2, default=str))
        if result.status == FAILED:
            raise CommandError(f"{stage} failed: {result.error}")
