# pdfpipe/tasks.py
import asyncio
import logging
from datetime import timedelta

from celery.signals import worker_process_init

from pdfpipe.celery_app import celery_app
from pdfpipe.config import settings
from pdfpipe.metrics import start_metrics_server
from pdfpipe.runner import drive_document, open_runtime

logger = logging.getLogger(__name__)


@worker_process_init.connect
def _start_worker_metrics(**kwargs):
    if settings.prometheus_enabled:
        start_metrics_server(settings.metrics_port)


async def _drive(document_id: str) -> dict:
    async with open_runtime(settings) as runtime:
        result = await drive_document(runtime.router, document_id, settings.pipeline_max_iterations)
    return {"doc_id": result.document_id, "status": result.status.value, "skipped": result.skipped}


async def _reclaim(older_than_minutes: int) -> list:
    async with open_runtime(settings) as runtime:
        return await runtime.router.reclaim_stale(timedelta(minutes=older_than_minutes))


@celery_app.task(bind=True, name="pdfpipe.tasks.process_document_task")
def process_document_task(self, document_id: str):
    try:
        # fresh event loop and runtime per task
        return asyncio.run(_drive(document_id))
    except Exception:
        # the failure is already recorded on the document row when a stage raised
        logger.exception("process_document failed for %s", document_id)
        raise


@celery_app.task(name="pdfpipe.tasks.reclaim_stale_task")
def reclaim_stale_task(older_than_minutes: int = 30):
    reclaimed = asyncio.run(_reclaim(older_than_minutes))
    for doc_id in reclaimed:
        process_document_task.delay(doc_id)
    return {"reclaimed": reclaimed}
