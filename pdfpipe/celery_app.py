# pdfpipe/celery_app.py
from celery import Celery
from pdfpipe.config import settings

celery_app = Celery(
    "pdfpipe",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["pdfpipe.tasks"],
)

celery_app.conf.task_default_queue = settings.celery_queue
celery_app.conf.task_routes = {
    "pdfpipe.tasks.*": {"queue": settings.celery_queue},
}

celery_app.conf.update(
    # one document per worker slot; redeliver if the worker dies mid-document
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    # a document takes at most pipeline_max_iterations conversion-bound stages
    task_soft_time_limit=settings.pipeline_max_iterations * int(settings.convert_timeout) * 2,
    result_expires=60 * 60 * 24,
)
