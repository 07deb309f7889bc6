# pdfpipe/errors.py
"""
Error taxonomy for the pipeline.

Stage-local errors are recorded on the document by the router and re-raised;
ConfigurationError is fatal for the whole process.
"""
from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised by pdfpipe."""


class ConfigurationError(PipelineError):
    """Missing or invalid process configuration (storage, conversion secret, DB)."""


class InvalidChunkParams(PipelineError, ValueError):
    def __init__(self, message: str):
        super().__init__(f"Invalid chunking params: {message}")


class InvalidStatus(PipelineError):
    def __init__(self, status: object, document_id: Optional[str] = None):
        self.status = status
        self.document_id = document_id
        where = f" for document {document_id}" if document_id else ""
        super().__init__(f"Invalid status{where}: {status!r}")


class DocumentNotFound(PipelineError):
    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Document not found: {document_id}")


class PipelineStalled(PipelineError):
    def __init__(self, document_id: str, iterations: int, last_status: Optional[str] = None):
        self.document_id = document_id
        self.iterations = iterations
        self.last_status = last_status
        super().__init__(
            f"Pipeline for document {document_id} did not complete within "
            f"{iterations} steps (last status: {last_status})"
        )


class ConversionServiceError(PipelineError):
    BODY_LIMIT = 500

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = (body or "")[: self.BODY_LIMIT]
        detail = f" ({status_code})" if status_code is not None else ""
        tail = f": {self.body}" if self.body else ""
        super().__init__(f"{message}{detail}{tail}")


class DownloadError(PipelineError):
    def __init__(self, url: str, status_code: int, reason: str = ""):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to download {_redact(url)}: {status_code} {reason}".rstrip())


class PayloadTooLarge(DownloadError):
    def __init__(self, url: str, size: int, max_bytes: int):
        self.size = size
        self.max_bytes = max_bytes
        PipelineError.__init__(
            self, f"Payload too large: {size} bytes exceeds max_bytes={max_bytes} ({_redact(url)})"
        )
        self.url = url
        self.status_code = 413


class DownloadTimeout(PipelineError):
    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"Download timed out after {timeout:.0f}s ({_redact(url)})")


class TextLayerError(PipelineError):
    """The text-layer parser could not read the PDF at all."""


def _redact(url: str) -> str:
    # presigned URLs carry credentials in the query string
    return url.split("?", 1)[0]
