from __future__ import annotations
"""Presentation-facing controller for the folder view."""
import logging
from pathlib import Path
from typing import Optional

from .authorizer import TransferAuthorizer
from .cache import ListingCache
from .errors import ListingError
from .keyspace import ROOT, belongs_to_scope, derive_display_name, normalize_prefix, parent_prefix
from .models import DownloadResult, Listing, LocalFile, ScopeState, UploadResult, VisibleFile
from .transfers import DownloadOrchestrator, UploadOrchestrator
from .transport import CancelFn, ObjectTransport, ProgressFn

LOGGER = logging.getLogger(__name__)


class FolderViewController:
    """Tracks the selected folder and what should be rendered for it."""

    def __init__(
        self,
        cache: ListingCache,
        uploads: UploadOrchestrator,
        downloads: DownloadOrchestrator,
        *,
        download_dir: str | Path = ".",
    ):
        self._cache = cache
        self._uploads = uploads
        self._downloads = downloads
        self._download_dir = Path(download_dir)
        self._selected_folder = ROOT
        self._states: dict[str, ScopeState] = {}
        self._errors: dict[str, ListingError] = {}
        self._loads: dict[str, int] = {}

    @property
    def selected_folder(self) -> str:
        return self._selected_folder

    @property
    def download_dir(self) -> Path:
        return self._download_dir

    @property
    def state(self) -> ScopeState:
        return self.state_of(self._selected_folder)

    @property
    def error(self) -> ListingError | None:
        return self._errors.get(self._selected_folder)

    def state_of(self, prefix: str) -> ScopeState:
        state = self._states.get(prefix)
        if state is not None:
            return state
        if self._cache.peek(prefix) is not None:
            return ScopeState.LOADED
        return ScopeState.UNLOADED

    async def load_root(self) -> Listing:
        return await self._load(ROOT, refresh=False)

    async def select_folder(self, prefix: str) -> Listing | None:
        folder = normalize_prefix(prefix)
        self._selected_folder = folder
        if self._cache.peek(folder) is not None:
            self._states[folder] = ScopeState.LOADED
            return self._cache.peek(folder)
        return await self._load(folder, refresh=False)

    def select_root(self) -> None:
        self._selected_folder = ROOT

    async def go_up(self) -> Listing | None:
        if not self._selected_folder:
            return self._cache.peek(ROOT)
        return await self.select_folder(parent_prefix(self._selected_folder))

    def reset_view(self) -> None:
        self._cache.reset()
        self._states.clear()
        self._errors.clear()
        self.select_root()

    async def refresh(self) -> Listing:
        return await self._load(self._selected_folder, refresh=True)

    async def retry(self) -> Listing:
        """Re-fetch the selected scope, typically after it failed."""

        if self.state is ScopeState.LOADED:
            return await self.refresh()
        return await self._load(self._selected_folder, refresh=False)

    def listing_in_scope(self) -> Listing | None:
        """The listing rows come from: the scope's own, or a filtered root until it arrives."""

        scope = self._selected_folder
        if self.state_of(scope) is ScopeState.FAILED:
            return None
        dedicated = self._cache.peek(scope)
        if dedicated is not None or not scope:
            return dedicated
        root = self._cache.peek(ROOT)
        if root is None:
            return None
        return Listing(
            prefix=scope,
            files=tuple(record for record in root.files if belongs_to_scope(record.key, scope)),
            folders=tuple(folder for folder in root.folders if folder != scope and belongs_to_scope(folder, scope)),
        )

    @property
    def visible_files(self) -> list[VisibleFile]:
        listing = self.listing_in_scope()
        if listing is None:
            return []
        rows: list[VisibleFile] = []
        for record in listing.files:
            name = derive_display_name(record.key, self._selected_folder)
            if name is None:
                continue
            rows.append(VisibleFile(name=name, record=record))
        return rows

    @property
    def visible_folders(self) -> list[str]:
        listing = self.listing_in_scope()
        if listing is None:
            return []
        return list(listing.folders)

    @property
    def visible_file_count(self) -> int:
        return len(self.visible_files)

    async def upload(
        self,
        file: LocalFile,
        *,
        folder: str | None = None,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> UploadResult:
        folder = self._selected_folder if folder is None else normalize_prefix(folder)
        result = await self._uploads.upload(
            folder,
            file,
            progress_callback=progress_callback,
            cancel_requested=cancel_requested,
        )
        if result.refresh_error is None:
            self._states[folder] = ScopeState.LOADED
            self._errors.pop(folder, None)
        return result

    async def download_object(
        self,
        key: str,
        *,
        destination_dir: str | Path | None = None,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> DownloadResult:
        return await self._downloads.download_object(
            key,
            destination_dir or self._download_dir,
            progress_callback=progress_callback,
            cancel_requested=cancel_requested,
        )

    async def download_folder(
        self,
        prefix: str | None = None,
        *,
        destination_dir: str | Path | None = None,
        progress_callback: Optional[ProgressFn] = None,
        cancel_requested: Optional[CancelFn] = None,
    ) -> DownloadResult:
        return await self._downloads.download_folder(
            self._selected_folder if prefix is None else prefix,
            destination_dir or self._download_dir,
            progress_callback=progress_callback,
            cancel_requested=cancel_requested,
        )

    async def preview(self, key: str) -> str:
        return await self._downloads.preview_url(key)

    async def _load(self, scope: str, *, refresh: bool) -> Listing:
        # Only the most recent load of a scope, within the current cache
        # generation, decides its state.
        ticket = self._loads.get(scope, 0) + 1
        self._loads[scope] = ticket
        self._states[scope] = ScopeState.LOADING
        generation = self._cache.generation
        try:
            if refresh:
                listing = await self._cache.refresh(scope)
            elif scope:
                listing = await self._cache.get_folder_listing(scope)
            else:
                listing = await self._cache.get_root_listing()
        except ListingError as exc:
            if self._is_current_load(scope, ticket, generation):
                LOGGER.debug("Listing '%s' failed: %s", scope, exc)
                self._states[scope] = ScopeState.FAILED
                self._errors[scope] = exc
            raise
        if self._is_current_load(scope, ticket, generation):
            self._states[scope] = ScopeState.LOADED
            self._errors.pop(scope, None)
        return listing

    def _is_current_load(self, scope: str, ticket: int, generation: int) -> bool:
        return ticket == self._loads.get(scope) and generation == self._cache.generation


def build_controller(
    backend,
    *,
    transport: ObjectTransport | None = None,
    download_dir: str | Path = ".",
    authorization_timeout: float | None = None,
) -> FolderViewController:
    """Wire the cache, authorizer and orchestrators around one backend."""

    transport = transport or ObjectTransport()
    cache = ListingCache(backend.fetch_listing)
    authorizer = TransferAuthorizer(backend, timeout=authorization_timeout)
    return FolderViewController(
        cache,
        UploadOrchestrator(authorizer, transport, cache),
        DownloadOrchestrator(authorizer, transport, backend),
        download_dir=download_dir,
    )
