from celery import shared_task
from celery.utils.log import get_task_logger

from .context import get_context
from .events import UploadEvent
from .stages import FAILED, StageResult, build_adaptive_stream, normalize_upload

logger = get_task_logger(__name__)

# Failed invocations are never retried automatically; recovery is a re-upload or replay_upload.
TASK_OPTIONS = dict(bind=True, max_retries=0, acks_late=False, ignore_result=False)


def _run(task, handler, payload: dict) -> dict:
    event = UploadEvent.from_dict(payload)
    logger.info("Task %s received %s", task.request.id, event.uri)
    try:
        result = handler(event, get_context())
    except Exception as e:
        # Stages report their own failures; this only covers context construction.
        logger.exception("Could not start %s for %s", handler.__name__, event.uri)
        result = StageResult(handler.__name__, event.path, FAILED, reason=type(e).__name__, error=str(e))
    return result.to_dict()


@shared_task(name="transcoding.tasks.process_video_upload", **TASK_OPTIONS)
def process_video_upload(self, payload: dict) -> dict:
    return _run(self, normalize_upload, payload)


@shared_task(name="transcoding.tasks.convert_video_to_hls", **TASK_OPTIONS)
def convert_video_to_hls(self, payload: dict) -> dict:
    return _run(self, build_adaptive_stream, payload)


STAGE_TASKS = {
    "normalize": process_video_upload,
    "adaptive": convert_video_to_hls,
}
