from __future__ import annotations
"""Bytes-in/bytes-out transfers against signed URLs."""
import asyncio
import logging
import os
from pathlib import Path
import tempfile
from typing import AsyncIterator, Callable, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from .errors import TransferCancelledError, TransferError
from .models import LocalFile, TransferAuthorization

LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

ProgressFn = Callable[[int], None]
CancelFn = Callable[[], bool]


def redact_url(url: str) -> str:
    """Drop the query string, which carries the signature, from a URL."""

    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def build_transfer_callback(
    progress_callback: Optional[ProgressFn],
    cancel_requested: Optional[CancelFn],
) -> Callable[[int], None]:
    transferred = 0

    def _callback(bytes_amount: int) -> None:
        nonlocal transferred
        if cancel_requested and cancel_requested():
            raise TransferCancelledError("Transfer cancelled by user")
        transferred += bytes_amount
        if progress_callback:
            progress_callback(transferred)

    return _callback


def _is_expiry_failure(authorization: TransferAuthorization, response: httpx.Response) -> bool:
    if response.status_code != 403:
        return False
    if authorization.is_expired():
        return True
    return b"expired" in response.content.lower()


class ObjectTransport:
    """Performs exactly one PUT or GET against an authorized URL.

    No retry and no chunked upload protocol: a failed transfer is reported
    and the caller decides whether to start over with a fresh authorization.
    """

    def __init__(self, *, timeout: float = 300.0, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def upload(
        self,
        authorization: TransferAuthorization,
        file: LocalFile,
        *,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> None:
        callback = build_transfer_callback(progress_callback, cancel_requested)
        headers = {
            "Content-Type": file.content_type,
            "Content-Length": str(file.size_bytes),
        }
        LOGGER.debug("PUT %s (%d bytes)", redact_url(authorization.url), file.size_bytes)
        try:
            response = await self._client.put(
                authorization.url,
                content=self._iter_source(file, callback),
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise TransferError(f"Upload of '{authorization.key}' timed out", retryable=True) from exc
        except httpx.HTTPError as exc:
            raise TransferError(f"Upload of '{authorization.key}' failed: {exc}", retryable=True) from exc
        except OSError as exc:
            raise TransferError(f"Could not read '{file.name}' for upload: {exc}") from exc
        if not response.is_success:
            raise TransferError(
                f"Upload of '{authorization.key}' was rejected with status {response.status_code}",
                retryable=_is_expiry_failure(authorization, response),
            )

    async def download(
        self,
        url: str,
        destination: Path,
        *,
        label: str,
        authorization: TransferAuthorization | None = None,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> int:
        """Stream ``url`` into ``destination`` and return the number of bytes written.

        The body lands in a temporary file next to ``destination`` that is
        renamed into place only once the transfer completed.
        """

        callback = build_transfer_callback(progress_callback, cancel_requested)
        temp_name: str | None = None
        written = 0
        LOGGER.debug("GET %s -> %s", redact_url(url), destination)
        try:
            temp_name, output = await asyncio.to_thread(_open_partial, destination)
            with output:
                async with self._client.stream("GET", url) as response:
                    if not response.is_success:
                        await response.aread()
                        retryable = (
                            authorization is not None and _is_expiry_failure(authorization, response)
                        )
                        raise TransferError(
                            f"Download of '{label}' failed with status {response.status_code}",
                            retryable=retryable,
                        )
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        await asyncio.to_thread(output.write, chunk)
                        written += len(chunk)
                        callback(len(chunk))
            os.replace(temp_name, destination)
        except httpx.TimeoutException as exc:
            raise TransferError(f"Download of '{label}' timed out", retryable=True) from exc
        except httpx.HTTPError as exc:
            raise TransferError(f"Download of '{label}' failed: {exc}", retryable=True) from exc
        except OSError as exc:
            raise TransferError(f"Could not save '{label}' to {destination}: {exc}") from exc
        finally:
            _discard_partial(temp_name)
        return written

    async def _iter_source(self, file: LocalFile, callback: Callable[[int], None]) -> AsyncIterator[bytes]:
        if file.data is not None:
            for start in range(0, len(file.data), CHUNK_SIZE):
                chunk = file.data[start:start + CHUNK_SIZE]
                callback(len(chunk))
                yield chunk
            return
        if file.path is None:
            raise TransferError(f"No content to upload for '{file.name}'")
        source = await asyncio.to_thread(open, file.path, "rb")
        with source:
            while True:
                chunk = await asyncio.to_thread(source.read, CHUNK_SIZE)
                if not chunk:
                    break
                callback(len(chunk))
                yield chunk


def _open_partial(destination: Path):
    """Create the temporary file a download is written to before the final rename."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    handle, temp_name = tempfile.mkstemp(prefix=".partial-", dir=destination.parent)
    return temp_name, os.fdopen(handle, "wb")


def _discard_partial(temp_name: str | None) -> None:
    if temp_name is not None and os.path.exists(temp_name):
        os.unlink(temp_name)


def write_archive(content: bytes, destination: Path) -> int:
    """Atomically write an archive returned inline by the backend."""

    temp_name: str | None = None
    try:
        temp_name, output = _open_partial(destination)
        with output:
            output.write(content)
        os.replace(temp_name, destination)
    except OSError as exc:
        raise TransferError(f"Could not save archive to {destination}: {exc}") from exc
    finally:
        _discard_partial(temp_name)
    return len(content)
