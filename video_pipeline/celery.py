import os
from celery import Celery
from celery.signals import worker_process_init

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "video_pipeline.settings")

celery_app = Celery("video_pipeline")
celery_app.config_from_object("django.conf:settings", namespace="CELERY")
celery_app.autodiscover_tasks()


@worker_process_init.connect
def _reset_pipeline_context(**kwargs):
    # boto3 clients must not be shared across a fork; each child builds its own.
    from transcoding.context import get_context

    get_context.cache_clear()
