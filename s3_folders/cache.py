from __future__ import annotations
"""Read-through cache of per-prefix listings."""
import asyncio
import logging
from typing import Awaitable, Callable

from .errors import ListingError
from .keyspace import ROOT
from .models import Listing

FetchFn = Callable[[str], Awaitable[Listing]]

LOGGER = logging.getLogger(__name__)


class ListingCache:
    """Holds the root listing plus one listing per visited folder.

    Entries live until :meth:`reset`; there is no expiry. At most one fetch
    per scope is outstanding for readers: concurrent reads share it. Each
    fetch gets an issuance number for its scope, and only the latest issue
    may write the entry, so a slow stale fetch can never overwrite a newer
    refresh. A superseded fetch that fails hands its callers the newer
    result instead of the error. Responses issued before a :meth:`reset`
    are dropped on arrival.

    All mutation happens between awaits on the event loop thread, so readers
    never see a half-updated entry and no lock is needed.
    """

    def __init__(self, fetch_listing: FetchFn):
        self._fetch_listing = fetch_listing
        self._root: Listing | None = None
        self._by_prefix: dict[str, Listing] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._issued: dict[str, int] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def root(self) -> Listing | None:
        return self._root

    def peek(self, prefix: str = ROOT) -> Listing | None:
        if not prefix:
            return self._root
        return self._by_prefix.get(prefix)

    def is_loading(self, prefix: str = ROOT) -> bool:
        return prefix in self._in_flight

    async def get_root_listing(self) -> Listing:
        return await self.get_folder_listing(ROOT)

    async def get_folder_listing(self, prefix: str) -> Listing:
        cached = self.peek(prefix)
        if cached is not None:
            return cached
        task = self._in_flight.get(prefix)
        if task is None:
            task = self._issue(prefix)
        else:
            LOGGER.debug("Joining in-flight fetch for '%s'", prefix)
        return await asyncio.shield(task)

    async def refresh(self, prefix: str = ROOT) -> Listing:
        """Re-fetch ``prefix`` and replace its entry, superseding any fetch in flight."""

        return await asyncio.shield(self._issue(prefix))

    def reset(self) -> None:
        self._generation += 1
        self._root = None
        self._by_prefix.clear()
        self._in_flight.clear()
        LOGGER.debug("Listing cache reset (generation %d)", self._generation)

    def _issue(self, prefix: str) -> asyncio.Task:
        sequence = self._issued.get(prefix, 0) + 1
        self._issued[prefix] = sequence
        task = asyncio.ensure_future(self._run_fetch(prefix, sequence, self._generation))
        self._in_flight[prefix] = task
        LOGGER.debug("Fetching '%s' (issue %d)", prefix, sequence)
        return task

    def _is_latest(self, prefix: str, sequence: int) -> bool:
        return sequence == self._issued.get(prefix, 0)

    async def _run_fetch(self, prefix: str, sequence: int, generation: int) -> Listing:
        try:
            listing = await self._fetch_listing(prefix)
        except ListingError:
            self._release(prefix)
            if generation != self._generation or self._is_latest(prefix, sequence):
                raise
            LOGGER.debug("Ignoring failure of superseded '%s' issue %d", prefix, sequence)
            newer = self._in_flight.get(prefix)
            if newer is not None:
                return await asyncio.shield(newer)
            cached = self.peek(prefix)
            if cached is None:
                raise
            return cached
        except BaseException:
            self._release(prefix)
            raise
        self._release(prefix)
        if generation != self._generation:
            LOGGER.debug("Discarding '%s' issue %d fetched before a reset", prefix, sequence)
            return listing
        if not self._is_latest(prefix, sequence):
            LOGGER.debug("Discarding out-of-order '%s' issue %d", prefix, sequence)
            newer = self.peek(prefix)
            return newer if newer is not None else listing
        if prefix:
            self._by_prefix[prefix] = listing
        else:
            self._root = listing
        return listing

    def _release(self, prefix: str) -> None:
        current = self._in_flight.get(prefix)
        if current is not None and current is asyncio.current_task():
            del self._in_flight[prefix]
