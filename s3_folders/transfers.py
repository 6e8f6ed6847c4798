from __future__ import annotations
"""Upload and download orchestration through signed URLs."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

from .authorizer import TransferAuthorizer
from .cache import ListingCache
from .errors import BundlingError, ListingError
from .keyspace import bundle_filename, compose_key, normalize_prefix, object_filename
from .models import DownloadResult, LocalFile, Operation, UploadResult
from .transport import CancelFn, ObjectTransport, ProgressFn, write_archive

LOGGER = logging.getLogger(__name__)


class UploadOrchestrator:
    """Authorizes, transfers and then refreshes the target folder's listing."""

    def __init__(self, authorizer: TransferAuthorizer, transport: ObjectTransport, cache: ListingCache):
        self._authorizer = authorizer
        self._transport = transport
        self._cache = cache

    async def upload(
        self,
        target_folder: str,
        file: LocalFile,
        *,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> UploadResult:
        folder = normalize_prefix(target_folder)
        key = compose_key(folder, file.name)
        authorization = await self._authorizer.authorize(key, Operation.WRITE)
        await self._transport.upload(
            authorization,
            file,
            progress_callback=progress_callback,
            cancel_requested=cancel_requested,
        )
        LOGGER.debug("Uploaded '%s' (%d bytes)", key, file.size_bytes)

        result = UploadResult(key=key, size_bytes=file.size_bytes)
        try:
            await self._cache.refresh(folder)
        except ListingError as exc:
            LOGGER.warning("Uploaded '%s' but refreshing '%s' failed: %s", key, folder, exc)
            result.refresh_error = exc
        return result


class DownloadOrchestrator:
    """Downloads single objects directly and folders as backend-built archives."""

    def __init__(self, authorizer: TransferAuthorizer, transport: ObjectTransport, backend):
        self._authorizer = authorizer
        self._transport = transport
        self._backend = backend

    async def download_object(
        self,
        key: str,
        destination_dir: str | Path,
        *,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> DownloadResult:
        authorization = await self._authorizer.authorize(key, Operation.READ)
        destination = Path(destination_dir) / object_filename(key)
        size = await self._transport.download(
            authorization.url,
            destination,
            label=key,
            authorization=authorization,
            progress_callback=progress_callback,
            cancel_requested=cancel_requested,
        )
        LOGGER.debug("Downloaded '%s' to %s (%d bytes)", key, destination, size)
        return DownloadResult(key=key, destination=destination, size_bytes=size)

    async def download_folder(
        self,
        prefix: str,
        destination_dir: str | Path,
        *,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> DownloadResult:
        folder = normalize_prefix(prefix)
        if not folder:
            raise BundlingError("A folder must be selected to download it as an archive")
        bundle = await self._backend.request_bundle(folder)
        destination = Path(destination_dir) / (bundle.filename or bundle_filename(folder))
        if bundle.url:
            size = await self._transport.download(
                bundle.url,
                destination,
                label=bundle.filename,
                progress_callback=progress_callback,
                cancel_requested=cancel_requested,
            )
        elif bundle.content is not None:
            size = await asyncio.to_thread(write_archive, bundle.content, destination)
            if progress_callback:
                progress_callback(size)
        else:
            raise BundlingError(f"Backend returned no archive for '{folder}'")
        LOGGER.debug("Downloaded archive of '%s' to %s (%d bytes)", folder, destination, size)
        return DownloadResult(key=folder, destination=destination, size_bytes=size)

    async def preview_url(self, key: str) -> str:
        authorization = await self._authorizer.authorize(key, Operation.READ)
        return authorization.url
