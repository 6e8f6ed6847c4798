from __future__ import annotations
"""View-agnostic presenter that wraps controller operations."""
import asyncio
from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Awaitable, Callable

from .controller import FolderViewController
from .errors import (
    AuthorizationError,
    BundlingError,
    ListingError,
    TransferCancelledError,
    TransferError,
)
from .models import DownloadResult, Listing, LocalFile, UploadResult


@dataclass(frozen=True)
class Notification:
    """A human-readable message describing the outcome of an operation."""

    title: str
    message: str
    level: str = "error"
    retryable: bool = False


DispatchFn = Callable[[Callable[[], None]], None]
ErrorFn = Callable[[Notification], None]
DoneFn = Callable[[], None]

LOGGER = logging.getLogger(__name__)


def describe_error(exc: Exception) -> Notification:
    if isinstance(exc, AuthorizationError):
        return Notification("Could not authorize", str(exc), retryable=True)
    if isinstance(exc, TransferCancelledError):
        return Notification("Transfer cancelled", str(exc), level="info")
    if isinstance(exc, TransferError):
        return Notification("Could not transfer", str(exc), retryable=exc.retryable)
    if isinstance(exc, ListingError):
        return Notification("Could not list folder", str(exc), retryable=True)
    if isinstance(exc, BundlingError):
        return Notification("Could not bundle folder", str(exc))
    return Notification("Unexpected error", str(exc))


class FolderBrowserPresenter:
    """Runs controller operations as tasks and returns results via callbacks."""

    def __init__(
        self,
        controller: FolderViewController,
        *,
        dispatch: DispatchFn | None = None,
    ) -> None:
        self._controller = controller
        self._dispatch = dispatch or (lambda func: func())
        self._tasks: set[asyncio.Task] = set()

    @property
    def controller(self) -> FolderViewController:
        return self._controller

    @property
    def busy(self) -> bool:
        return bool(self._tasks)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def load_root(
        self,
        *,
        on_success: Callable[[Listing], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        LOGGER.debug("Loading root listing")
        return self._run(
            "load root listing",
            self._controller.load_root,
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def select_folder(
        self,
        prefix: str,
        *,
        on_success: Callable[[Listing | None], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        LOGGER.debug("Selecting folder '%s'", prefix)
        return self._run(
            f"select folder '{prefix}'",
            lambda: self._controller.select_folder(prefix),
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def refresh(
        self,
        *,
        on_success: Callable[[Listing], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        return self._run(
            "refresh listing",
            self._controller.refresh,
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def upload(
        self,
        file: LocalFile,
        *,
        folder: str | None = None,
        on_success: Callable[[UploadResult], None],
        on_error: ErrorFn,
        on_warning: ErrorFn | None = None,
        on_progress: Callable[[int], None] | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        progress_callback = self._progress(on_progress)

        def succeeded(result: UploadResult) -> None:
            on_success(result)
            if result.refresh_error is not None and on_warning:
                notification = describe_error(result.refresh_error)
                on_warning(
                    Notification(
                        notification.title,
                        f"{result.key} was uploaded, but the folder view could not be refreshed: "
                        f"{notification.message}",
                        level="warning",
                        retryable=True,
                    )
                )

        return self._run(
            f"upload '{file.name}'",
            lambda: self._controller.upload(
                file,
                folder=folder,
                progress_callback=progress_callback,
                cancel_requested=cancel_requested,
            ),
            on_success=succeeded,
            on_error=on_error,
            on_done=on_done,
        )

    def download_object(
        self,
        key: str,
        *,
        destination_dir: str | Path | None = None,
        on_success: Callable[[DownloadResult], None],
        on_error: ErrorFn,
        on_progress: Callable[[int], None] | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        progress_callback = self._progress(on_progress)
        return self._run(
            f"download '{key}'",
            lambda: self._controller.download_object(
                key,
                destination_dir=destination_dir,
                progress_callback=progress_callback,
                cancel_requested=cancel_requested,
            ),
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def download_folder(
        self,
        prefix: str | None = None,
        *,
        destination_dir: str | Path | None = None,
        on_success: Callable[[DownloadResult], None],
        on_error: ErrorFn,
        on_progress: Callable[[int], None] | None = None,
        cancel_requested: Callable[[], bool] | None = None,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        progress_callback = self._progress(on_progress)
        return self._run(
            f"download folder '{prefix or self._controller.selected_folder}'",
            lambda: self._controller.download_folder(
                prefix,
                destination_dir=destination_dir,
                progress_callback=progress_callback,
                cancel_requested=cancel_requested,
            ),
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def preview(
        self,
        key: str,
        *,
        on_success: Callable[[str], None],
        on_error: ErrorFn,
        on_done: DoneFn | None = None,
    ) -> asyncio.Task:
        return self._run(
            f"preview '{key}'",
            lambda: self._controller.preview(key),
            on_success=on_success,
            on_error=on_error,
            on_done=on_done,
        )

    def _progress(self, on_progress: Callable[[int], None] | None):
        if not on_progress:
            return None
        return lambda total: self._dispatch(lambda: on_progress(total))

    def _run(
        self,
        label: str,
        operation: Callable[[], Awaitable[object]],
        *,
        on_success: Callable[[object], None],
        on_error: ErrorFn,
        on_done: DoneFn | None,
    ) -> asyncio.Task:
        async def task() -> None:
            try:
                result = await operation()
            except TransferCancelledError as exc:
                LOGGER.info("Cancelled %s", label)
                notification = describe_error(exc)
                self._dispatch(lambda: on_error(notification))
            except (AuthorizationError, TransferError, ListingError, BundlingError) as exc:
                LOGGER.exception("Failed to %s", label)
                notification = describe_error(exc)
                self._dispatch(lambda: on_error(notification))
            except Exception as exc:
                LOGGER.exception("Unexpected error while trying to %s", label)
                notification = describe_error(exc)
                self._dispatch(lambda: on_error(notification))
            else:
                self._dispatch(lambda: on_success(result))
            finally:
                if on_done:
                    self._dispatch(on_done)

        scheduled = asyncio.ensure_future(task())
        self._tasks.add(scheduled)
        scheduled.add_done_callback(self._tasks.discard)
        return scheduled
