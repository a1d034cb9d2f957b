"""Async streaming download of platform-hosted files.

WHY: Shared videos live behind short-lived, authenticated URLs. The
pipeline needs them on local disk before ffmpeg can read them, without
holding whole videos in memory.

HOW: A platform resolver turns the opaque file reference into a
DownloadLocator (URL plus headers). TransferClient streams the body with
httpx.AsyncClient and writes it chunk by chunk. It is an async context
manager owning the connection pool, like the other HTTP clients in this
codebase.

RULES:
- Always use as: async with TransferClient(resolver) as client: ...
- fetch() returns only after the local file is closed
- Every failure is a TransferError with the cause chained, except a body
  larger than max_bytes, which is a SizeExceeded
- Partial files are left in place; the pipeline owns cleanup
- The resolver may block; it runs in a worker thread
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx

from mp3bot.core.errors import SizeExceeded, TransferError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_LOG_EVERY_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class DownloadLocator:
    """A resolved, directly downloadable location for a file reference."""

    url: str
    headers: Dict[str, str] = field(default_factory=dict)


Resolver = Callable[[str], DownloadLocator]


def direct_url_resolver(file_reference: str) -> DownloadLocator:
    """Resolver for references that already are plain http(s) URLs."""
    return DownloadLocator(url=file_reference)


class TransferClient:
    """Downloads a file reference to a local path."""

    def __init__(
        self,
        resolver: Resolver,
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_size: int = _CHUNK_SIZE,
    ) -> None:
        self._resolver = resolver
        self._timeout = timeout or httpx.Timeout(60.0, connect=15.0)
        self._transport = transport
        self._chunk_size = chunk_size
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> TransferClient:
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "TransferClient must be used as an async context manager: "
                "async with TransferClient(resolver) as client: ..."
            )
        return self._client

    async def fetch(
        self,
        file_reference: str,
        destination: Path,
        max_bytes: Optional[int] = None,
    ) -> Path:
        """Download ``file_reference`` to ``destination``.

        WHY: First stage of every job. The pipeline has already checked the
        declared size; this is where the real bytes arrive.

        HOW: Resolves the reference, opens a streaming GET and appends each
        chunk to the destination file. When max_bytes is set, both the
        Content-Length header and the running byte count are checked.

        RULES:
        - Non-2xx responses raise TransferError (the body is not read)
        - max_bytes exceeded raises SizeExceeded
        - Returns the destination path

        Args:
            file_reference: Opaque platform reference (e.g. a Slack file ID).
            destination: Local path to write; parent directories are created.
            max_bytes: Optional hard cap on the downloaded size.

        Returns:
            The destination path, fully written and closed.
        """
        client = self._ensure_client()

        try:
            locator = await asyncio.to_thread(self._resolver, file_reference)
        except Exception as exc:
            raise TransferError(
                "Could not resolve download URL for {}: {}".format(file_reference, exc),
                cause=exc,
            ) from exc

        logger.info("Downloading %s to %s", file_reference, destination)

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            async with client.stream("GET", locator.url, headers=locator.headers) as resp:
                if resp.status_code != 200:
                    raise TransferError(
                        "Download of {} failed with HTTP {}".format(
                            file_reference, resp.status_code
                        )
                    )
                _check_content_length(resp, max_bytes)

                downloaded = 0
                next_log = _LOG_EVERY_BYTES
                with open(destination, "wb") as f:
                    async for chunk in resp.aiter_bytes(self._chunk_size):
                        downloaded += len(chunk)
                        if max_bytes is not None and downloaded > max_bytes:
                            raise SizeExceeded(max_bytes, downloaded)
                        f.write(chunk)
                        if downloaded >= next_log:
                            logger.debug("Downloaded %d bytes of %s", downloaded, file_reference)
                            next_log += _LOG_EVERY_BYTES
        except (TransferError, SizeExceeded):
            raise
        except httpx.HTTPError as exc:
            raise TransferError(
                "Failed to download {}: {}".format(file_reference, exc), cause=exc
            ) from exc
        except OSError as exc:
            raise TransferError(
                "Failed to write {}: {}".format(destination, exc), cause=exc
            ) from exc

        logger.info("Downloaded %d bytes to %s", downloaded, destination)
        return destination


def _check_content_length(resp: httpx.Response, max_bytes: Optional[int]) -> None:
    if max_bytes is None:
        return
    header = resp.headers.get("content-length")
    if header and header.isdigit() and int(header) > max_bytes:
        raise SizeExceeded(max_bytes, int(header))
