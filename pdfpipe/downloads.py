# pdfpipe/downloads.py
"""
Bounded HTTP downloads.

Every byte fetched by the pipeline (source PDFs via presigned URLs, converter
output files) goes through fetch_bounded(), which enforces a request timeout and
a maximum payload size. The body is spooled to a scratch file in 64KB pieces so a
runaway response is cut off before it is held in memory.
"""
import asyncio
import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional
from uuid import uuid4

import aiofiles
import httpx

from pdfpipe.errors import DownloadError, DownloadTimeout, PayloadTooLarge

logger = logging.getLogger(__name__)

READ_CHUNK = 1024 * 64
DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_BYTES = 30 * 1024 * 1024


def ensure_dir(path):
    os.makedirs(path, exist_ok=True)


@contextmanager
def scratch_file(temp_dir: str, suffix: str = "") -> Iterator[str]:
    """
    Yield a fresh path under temp_dir and remove it afterwards.

    Removal is best effort: a failure is logged and never raised.
    """
    ensure_dir(temp_dir)
    path = os.path.join(temp_dir, f"{uuid4()}{suffix}")
    try:
        yield path
    finally:
        remove_quietly(path)


def remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Failed to remove scratch file %s: %s", path, e)


async def fetch_bounded(
    client: httpx.AsyncClient,
    url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
    temp_dir: str = ".temp",
) -> bytes:
    """
    GET url and return the body, enforcing `timeout` seconds overall and `max_bytes`.

    Raises DownloadTimeout, PayloadTooLarge or DownloadError (non-2xx).
    """
    with scratch_file(temp_dir, suffix=".part") as path:
        try:
            await asyncio.wait_for(_stream_to_file(client, url, path, timeout, max_bytes), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise DownloadTimeout(url, timeout) from e

        async with aiofiles.open(path, "rb") as in_file:
            data = await in_file.read()
    logger.debug("Downloaded %d bytes from %s", len(data), url.split("?", 1)[0])
    return data


async def _stream_to_file(client: httpx.AsyncClient, url: str, path: str, timeout: float, max_bytes: int) -> None:
    written = 0
    async with client.stream("GET", url, timeout=timeout) as resp:
        if resp.status_code < 200 or resp.status_code >= 300:
            raise DownloadError(url, resp.status_code, resp.reason_phrase)

        # fail early when the server announces the size
        declared = _content_length(resp)
        if declared is not None and declared > max_bytes:
            raise PayloadTooLarge(url, declared, max_bytes)

        async with aiofiles.open(path, "wb") as out_file:
            async for chunk in resp.aiter_bytes(READ_CHUNK):
                written += len(chunk)
                if written > max_bytes:
                    raise PayloadTooLarge(url, written, max_bytes)
                await out_file.write(chunk)


def _content_length(resp: httpx.Response) -> Optional[int]:
    value = resp.headers.get("content-length")
    if value and value.strip().isdigit():
        return int(value)
    return None
