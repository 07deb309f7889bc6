# pdfpipe/metrics.py
import logging

from prometheus_client import Counter, start_http_server

logger = logging.getLogger(__name__)

# Prometheus counters
stage_runs_total = Counter("pdfpipe_stage_runs_total", "Stages completed", ["stage"])
stage_failures_total = Counter("pdfpipe_stage_failures_total", "Stage failures", ["stage"])
claims_skipped_total = Counter("pdfpipe_claims_skipped_total", "Steps skipped because another worker owns the document")
documents_completed_total = Counter("pdfpipe_documents_completed_total", "Documents that reached completed")
documents_reclaimed_total = Counter("pdfpipe_documents_reclaimed_total", "Stale processing documents reset to pending")

_server_started = False


def start_metrics_server(port: int) -> None:
    global _server_started
    if _server_started:
        return
    try:
        start_http_server(port)
        _server_started = True
        logger.info("Prometheus metrics exposed on :%s", port)
    except OSError as e:
        logger.warning("Could not start metrics server on :%s: %s", port, e)
