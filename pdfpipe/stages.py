# pdfpipe/stages.py
"""
Document status values and the stage transition table.

The table is checked when this module is imported, so a broken chain (a stage
without a successor, a cycle, an unreachable stage) fails at startup instead of
at the first document that hits it.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pdfpipe.errors import InvalidStatus


class DocumentStatus(str, Enum):
    UPLOADED = "uploaded"
    PENDING = "pending"
    FAILED = "failed"
    PDF_TO_HTML = "processing:pdf_to_html"
    CLEANUP_HTML = "processing:cleanup_html"
    HTML_TO_MD = "processing:html_to_md"
    EXTRACT_PDF_TEXT = "processing:extract_pdf_text"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value, document_id: Optional[str] = None) -> "DocumentStatus":
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatus(value, document_id) from None

    @property
    def is_processing(self) -> bool:
        return self in NEXT_STATUS


class RetryPolicy(str, Enum):
    RESTART = "restart"  # failed documents start over at the first stage
    RESUME = "resume"    # failed documents re-enter at the stage that failed


# statuses a worker may claim to start (or restart) a run
ENTRY_STATUSES: FrozenSet[DocumentStatus] = frozenset(
    {DocumentStatus.UPLOADED, DocumentStatus.PENDING, DocumentStatus.FAILED}
)

FIRST_STAGE = DocumentStatus.PDF_TO_HTML

NEXT_STATUS: Dict[DocumentStatus, DocumentStatus] = {
    DocumentStatus.PDF_TO_HTML: DocumentStatus.CLEANUP_HTML,
    DocumentStatus.CLEANUP_HTML: DocumentStatus.HTML_TO_MD,
    DocumentStatus.HTML_TO_MD: DocumentStatus.EXTRACT_PDF_TEXT,
    DocumentStatus.EXTRACT_PDF_TEXT: DocumentStatus.COMPLETED,
}

PROCESSING_STATUSES: FrozenSet[DocumentStatus] = frozenset(NEXT_STATUS)


def next_status(status: DocumentStatus) -> DocumentStatus:
    try:
        return NEXT_STATUS[status]
    except KeyError:
        raise InvalidStatus(status.value) from None


def entry_stage(failed_stage: Optional[str], policy: RetryPolicy) -> DocumentStatus:
    """Stage a claimed document starts at, given the retry policy."""
    if policy is RetryPolicy.RESUME and failed_stage:
        try:
            stage = DocumentStatus(failed_stage)
        except ValueError:
            return FIRST_STAGE
        if stage in PROCESSING_STATUSES:
            return stage
    return FIRST_STAGE


def _validate_transitions() -> None:
    declared = set(DocumentStatus)
    covered = set(ENTRY_STATUSES) | set(NEXT_STATUS) | {DocumentStatus.COMPLETED}
    if covered != declared:
        raise RuntimeError(f"Statuses without a role in the pipeline: {sorted(s.value for s in declared - covered)}")

    seen = set()
    status = FIRST_STAGE
    while status is not DocumentStatus.COMPLETED:
        if status in seen:
            raise RuntimeError(f"Stage cycle detected at {status.value}")
        seen.add(status)
        if status not in NEXT_STATUS:
            raise RuntimeError(f"Stage {status.value} has no successor")
        status = NEXT_STATUS[status]

    if seen != set(NEXT_STATUS):
        unreachable = set(NEXT_STATUS) - seen
        raise RuntimeError(f"Unreachable stages: {sorted(s.value for s in unreachable)}")


_validate_transitions()
