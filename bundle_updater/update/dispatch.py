"""Single-completion asynchronous wrappers around :class:`UpdateCore`."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, TypeVar

from bundle_updater.result import Result
from bundle_updater.update.core import UpdateCore
from bundle_updater.update.models import (
    InstallMode,
    LocalPackage,
    RemotePackage,
    SyncOptions,
    UpdateError,
    UpdateState,
)

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

CompletionCallback = Callable[[Result], None]


def capture_result(operation: Callable[[], T]) -> "Result[T, UpdateError]":
    """Run ``operation`` and convert its outcome into a :class:`Result`."""

    try:
        return Result.ok(operation())
    except UpdateError as exc:
        _LOGGER.warning("Update operation failed: %s", exc)
        return Result.err(exc)
    except Exception as exc:
        _LOGGER.exception("Unexpected error during update operation")
        error = UpdateError(f"Unexpected error: {exc}")
        error.__cause__ = exc
        return Result.err(error)


def run_async(
    operation: Callable[[], T],
    *,
    name: str = "bundle-updater",
    on_complete: CompletionCallback | None = None,
) -> "Future[Result[T, UpdateError]]":
    """Run ``operation`` on a daemon thread and deliver exactly one result.

    The returned future resolves before ``on_complete`` is invoked; neither is
    ever notified twice.
    """

    future: Future[Result[T, UpdateError]] = Future()
    future.set_running_or_notify_cancel()

    def _worker() -> None:
        result = capture_result(operation)
        future.set_result(result)
        if on_complete is None:
            return
        try:
            on_complete(result)
        except Exception:
            _LOGGER.exception("Update completion callback raised")

    thread = threading.Thread(target=_worker, name=name, daemon=True)
    thread.start()
    return future


class UpdateClient:
    """Host-facing API: every call returns a future resolving to one result."""

    def __init__(self, core: UpdateCore) -> None:
        self._core = core

    @property
    def core(self) -> UpdateCore:
        return self._core

    def check_for_update(
        self,
        deployment_key: str | None = None,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> "Future[Result[RemotePackage | None, UpdateError]]":
        return run_async(
            lambda: self._core.check_for_update(deployment_key),
            name="bundle-updater-check",
            on_complete=on_complete,
        )

    def sync(
        self,
        options: SyncOptions | None = None,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> "Future[Result[bool, UpdateError]]":
        return run_async(
            lambda: self._core.sync(options),
            name="bundle-updater-sync",
            on_complete=on_complete,
        )

    def get_update_metadata(
        self,
        state: UpdateState = UpdateState.RUNNING,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> "Future[Result[LocalPackage | None, UpdateError]]":
        return run_async(
            lambda: self._core.get_update_metadata(state),
            name="bundle-updater-metadata",
            on_complete=on_complete,
        )

    def download_update(
        self,
        remote: RemotePackage,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> "Future[Result[LocalPackage, UpdateError]]":
        return run_async(
            lambda: self._core.download_update(remote),
            name="bundle-updater-download",
            on_complete=on_complete,
        )

    def install_update(
        self,
        package: LocalPackage,
        install_mode: InstallMode = InstallMode.ON_NEXT_RESTART,
        *,
        on_complete: CompletionCallback | None = None,
    ) -> "Future[Result[bool, UpdateError]]":
        return run_async(
            lambda: self._core.install_update(package, install_mode),
            name="bundle-updater-install",
            on_complete=on_complete,
        )

    def rollback_package(
        self, *, on_complete: CompletionCallback | None = None
    ) -> "Future[Result[None, UpdateError]]":
        return run_async(
            self._core.rollback_package,
            name="bundle-updater-rollback",
            on_complete=on_complete,
        )

    def notify_application_ready(
        self, *, on_complete: CompletionCallback | None = None
    ) -> "Future[Result[None, UpdateError]]":
        return run_async(
            self._core.notify_application_ready,
            name="bundle-updater-ready",
            on_complete=on_complete,
        )


__all__ = ["UpdateClient", "capture_result", "run_async"]
