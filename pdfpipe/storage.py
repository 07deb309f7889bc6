# pdfpipe/storage.py
import asyncio
import io
import logging
from datetime import timedelta

from minio import Minio

from pdfpipe.config import Settings
from pdfpipe.errors import ConfigurationError

logger = logging.getLogger(__name__)


class BlobStorage:
    """
    Blob storage on MinIO / S3.

    The minio client is blocking, so every call is pushed to a worker thread.
    """

    def __init__(self, client: Minio, bucket: str, public_base: str):
        self.client = client
        self.bucket = bucket
        self.public_base = public_base.rstrip("/")

    async def get(self, key: str) -> bytes:
        def _get():
            resp = self.client.get_object(self.bucket, key)
            try:
                return resp.read()
            finally:
                resp.close()
                resp.release_conn()

        return await asyncio.to_thread(_get)

    async def put(self, data: bytes, key: str, content_type: str = "application/octet-stream") -> str:
        def _put():
            self.client.put_object(
                self.bucket, key, io.BytesIO(data), length=len(data), content_type=content_type
            )

        await asyncio.to_thread(_put)
        logger.debug("Stored %d bytes at %s/%s", len(data), self.bucket, key)
        return f"{self.public_base}/{self.bucket}/{key}"

    async def presigned_url(self, key: str, expires_seconds: int = 900) -> str:
        """Time-limited read URL, handed to the conversion service instead of credentials."""
        return await asyncio.to_thread(
            self.client.presigned_get_object, self.bucket, key, expires=timedelta(seconds=expires_seconds)
        )


def build_storage(settings: Settings) -> BlobStorage:
    if not settings.storage_configured:
        raise ConfigurationError(
            "Blob storage is not configured: set MINIO_ENDPOINT, MINIO_ACCESS_KEY and MINIO_SECRET_KEY"
        )
    client = Minio(
        settings.minio_endpoint,
        access_key=settings.minio_access_key,
        secret_key=settings.minio_secret_key,
        secure=settings.minio_secure,
        region=settings.minio_region,
    )
    scheme = "https" if settings.minio_secure else "http"
    return BlobStorage(client, settings.storage_bucket, f"{scheme}://{settings.minio_endpoint}")
