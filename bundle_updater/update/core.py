"""Lifecycle orchestration: check, download, install, confirm and roll back."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from bundle_updater.update.acquisition import UpdateQueryClient
from bundle_updater.update.models import (
    Configuration,
    DownloadError,
    InstallError,
    InstallMode,
    LocalPackage,
    Package,
    PendingUpdate,
    RemotePackage,
    RollbackError,
    SyncOptions,
    UpdateError,
    UpdateState,
)
from bundle_updater.update.settings import SettingsStore
from bundle_updater.update.store import UpdateStore
from bundle_updater.update.versioning import is_binary_newer, is_same_binary_version

_LOGGER = logging.getLogger(__name__)


@dataclass
class LifecycleState:
    """Process-wide state; ``did_update`` is set when this launch runs a new package."""

    did_update: bool = False


class UpdateCore:
    """Coordinate the stores and the acquisition client.

    The orchestrator owns no persistent state.  Every method is synchronous and
    raises :class:`UpdateError` subclasses; :mod:`bundle_updater.update.dispatch`
    turns those into single-completion results for the host.
    """

    def __init__(
        self,
        configuration: Configuration,
        *,
        update_store: UpdateStore,
        settings_store: SettingsStore,
        acquisition_client: UpdateQueryClient,
        entry_point: str,
        state: LifecycleState | None = None,
        restart_handler: Callable[[], None] | None = None,
    ) -> None:
        self._configuration = configuration
        self._store = update_store
        self._settings = settings_store
        self._acquisition = acquisition_client
        self._entry_point = entry_point
        self._state = state or LifecycleState()
        self._restart_handler = restart_handler

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    @property
    def state(self) -> LifecycleState:
        return self._state

    def check_for_update(self, deployment_key: str | None = None) -> RemotePackage | None:
        """Return the update offered for this client, or ``None`` when up to date."""

        return self._check_for_update(self._configuration.with_deployment_key(deployment_key))

    def sync(self, options: SyncOptions | None = None) -> bool:
        """Check for an update and, when one is offered, download and install it."""

        resolved = (options or SyncOptions()).resolve(self._configuration.deployment_key)
        _LOGGER.debug(
            "Sync options: install=%s mandatory=%s frequency=%s (explicit=%s)",
            resolved.install_mode.value,
            resolved.mandatory_install_mode.value,
            resolved.check_frequency.value,
            sorted(resolved.explicitly_set),
        )
        configuration = self._configuration.with_deployment_key(resolved.deployment_key)

        remote = self._check_for_update(configuration)
        if remote is None:
            _LOGGER.info("Sync finished: app is up to date")
            return False
        if remote.failed_install and resolved.ignore_failed_updates:
            _LOGGER.warning(
                "Skipping package %s because it previously failed to install", remote.package_hash
            )
            return False

        local = self.download_update(remote)
        install_mode = resolved.install_mode_for(remote)
        return self.install_update(local, install_mode)

    def get_update_metadata(self, state: UpdateState = UpdateState.RUNNING) -> LocalPackage | None:
        """Return the installed package matching ``state``."""

        current = self._store.get_current_package()
        if current is None:
            return None

        package_hash = current.package_hash or ""
        is_pending = bool(package_hash) and self._settings.is_pending_update(package_hash)

        if state is UpdateState.PENDING and not is_pending:
            return None
        if state is UpdateState.RUNNING and is_pending:
            # The pending package only runs after the next restart.
            return self._store.get_previous_package()

        return replace(
            current,
            failed_install=self._settings.exists_failed_update(package_hash),
            is_first_run=self.is_first_run(package_hash),
            is_pending=is_pending,
        )

    def download_update(self, remote: RemotePackage) -> LocalPackage:
        """Download ``remote`` into its package folder.

        Any failure records the package as failed before the original error is
        re-raised, so the same release is not retried as if it were new.
        """

        if not remote.package_hash:
            raise DownloadError("Cannot download a package without a hash")
        try:
            if not remote.download_url:
                raise DownloadError(f"Package {remote.package_hash} has no download URL")
            staged_file = self._store.download_package(
                remote.package_hash,
                remote.download_url,
                expected_size=remote.download_size or None,
            )
            local = LocalPackage.from_remote(remote, entry_point=self._entry_point)
            return self._store.stage_package(local, staged_file)
        except UpdateError as error:
            self._record_failed_download(remote, error)
            raise

    def install_update(
        self, package: LocalPackage, install_mode: InstallMode = InstallMode.ON_NEXT_RESTART
    ) -> bool:
        """Make ``package`` current and mark it pending until its first launch."""

        package_hash = package.package_hash
        if not package_hash:
            raise InstallError("Cannot install a package without a hash")
        if package_hash == self._store.get_current_package_hash():
            _LOGGER.info("Package %s is already installed", package_hash)
            return True

        previous_marker = self._settings.get_pending_update()
        try:
            self._settings.save_pending_update(
                PendingUpdate(package_hash=package_hash, is_mandatory=package.is_mandatory)
            )
        except UpdateError as exc:
            raise InstallError(f"Unable to record pending package {package_hash}: {exc}") from exc

        try:
            self._store.install_package(package_hash)
        except UpdateError:
            self._restore_pending_marker(previous_marker)
            raise
        _LOGGER.info(
            "Installed package %s (%s); it will run after %s",
            package_hash,
            package.label or "no label",
            "an immediate restart" if install_mode is InstallMode.IMMEDIATE else "the next restart",
        )
        if install_mode is InstallMode.IMMEDIATE:
            self._request_restart(package_hash)
        return True

    def rollback_package(self) -> None:
        """Blacklist the current package and restore the previous one."""

        current = self._store.get_current_package()
        if current is None:
            raise RollbackError("There is no current package to roll back")
        if self._store.get_previous_package_hash() is None:
            raise RollbackError("There is no previous package to roll back to")

        self._store.rollback_package()
        self._settings.save_failed_update(current)
        self._settings.remove_pending_update()
        _LOGGER.info("Rolled back package %s", current.package_hash)

    def initialize_after_restart(self) -> None:
        """Reconcile the pending marker with the package that is about to run.

        A marker whose launch was already in progress means the package never
        confirmed it started; it is rolled back (to the binary bundle when there
        is no previous package).
        """

        pending = self._settings.get_pending_update()
        if pending is None:
            return

        current_hash = self._store.get_current_package_hash()
        if pending.package_hash != current_hash:
            _LOGGER.info(
                "Clearing stale pending marker for %s (current=%s)", pending.package_hash, current_hash
            )
            self._settings.remove_pending_update()
            return

        if pending.is_loading:
            _LOGGER.warning(
                "Package %s did not confirm its launch; rolling back", pending.package_hash
            )
            self._rollback_unconfirmed_launch(pending)
            return

        self._state.did_update = True
        self._settings.mark_pending_update_loading()
        _LOGGER.info("First launch of package %s", pending.package_hash)

    def notify_application_ready(self) -> None:
        """Confirm that the running package started successfully."""

        self._settings.remove_pending_update()

    def is_first_run(self, package_hash: str | None) -> bool:
        return (
            self._state.did_update
            and bool(package_hash)
            and package_hash == self._store.get_current_package_hash()
        )

    def exists_failed_update(self, package_hash: str) -> bool:
        return self._settings.exists_failed_update(package_hash)

    def remove_failed_updates(self) -> None:
        self._settings.remove_failed_updates()

    def clear_updates(self) -> None:
        self._store.clear_updates()
        self._settings.clear()
        self._state.did_update = False

    def get_current_package_entry_path(self) -> Path | None:
        """Return the bundle the host should load, or ``None`` for the binary's own.

        Packages installed for another binary version are discarded, since an
        app-store upgrade replaces the bundle they were built against.
        """

        package = self._store.get_current_package()
        if package is None:
            return None
        binary_version = self._configuration.app_version
        if not is_same_binary_version(package.app_version, binary_version):
            _LOGGER.info(
                "Binary version changed from %s to %s (%s); discarding downloaded packages",
                package.app_version,
                binary_version,
                "upgrade" if is_binary_newer(package.app_version, binary_version) else "downgrade",
            )
            self.clear_updates()
            return None
        return self._store.get_package_entry_path(package)

    def _check_for_update(self, configuration: Configuration) -> RemotePackage | None:
        local = self.get_update_metadata(UpdateState.LATEST)
        if local is not None and is_same_binary_version(local.app_version, configuration.app_version):
            query = local
        else:
            query = LocalPackage.empty_for_query(configuration.app_version)

        remote = self._acquisition.query_update(configuration, query)
        if remote is None:
            return None
        if remote.update_app_version:
            _LOGGER.info("A newer binary is required to receive further updates")
            return None
        if not remote.is_available:
            return None
        if local is not None and remote.package_hash == local.package_hash:
            _LOGGER.debug("Package %s is already installed", remote.package_hash)
            return None

        _LOGGER.info("Update available: %s (%s)", remote.package_hash, remote.label or "no label")
        if self._settings.exists_failed_update(remote.package_hash):
            return replace(remote, failed_install=True)
        return remote

    def _record_failed_download(self, package: Package, error: UpdateError) -> None:
        _LOGGER.warning("Download of package %s failed: %s", package.package_hash, error)
        try:
            self._settings.save_failed_update(package)
        except UpdateError:
            _LOGGER.exception("Unable to record package %s as failed", package.package_hash)

    def _request_restart(self, package_hash: str) -> None:
        if self._restart_handler is None:
            return
        _LOGGER.info("Restarting to apply package %s", package_hash)
        try:
            self._restart_handler()
        except Exception:
            _LOGGER.exception(
                "Restart handler failed; package %s applies on next start", package_hash
            )

    def _restore_pending_marker(self, marker: PendingUpdate | None) -> None:
        try:
            if marker is None:
                self._settings.remove_pending_update()
            else:
                self._settings.save_pending_update(marker)
        except UpdateError:
            _LOGGER.exception("Unable to restore the pending update marker")

    def _rollback_unconfirmed_launch(self, pending: PendingUpdate) -> None:
        current = self._store.get_current_package() or Package(package_hash=pending.package_hash)
        if self._store.get_previous_package_hash() is None:
            self._store.reset_to_binary()
        else:
            try:
                self._store.rollback_package()
            except RollbackError as exc:
                _LOGGER.warning("Falling back to the binary bundle: %s", exc)
                self._store.reset_to_binary()
        self._settings.save_failed_update(current)
        self._settings.remove_pending_update()


__all__ = ["LifecycleState", "UpdateCore"]
