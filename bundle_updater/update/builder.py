"""Helpers for constructing the update client and scheduling the startup sync."""

from __future__ import annotations

import logging
import os
import uuid
from concurrent.futures import Future
from pathlib import Path
from typing import Callable

from bundle_updater.config import ClientDefaults, get_client_defaults
from bundle_updater.result import Result
from bundle_updater.update.acquisition import AcquisitionClient, UpdateQueryClient
from bundle_updater.update.constants import (
    BASE_DIR_ENV,
    DEPLOYMENT_KEY_ENV,
    SERVER_URL_ENV,
    SETTINGS_FILE_NAME,
)
from bundle_updater.update.core import UpdateCore
from bundle_updater.update.dispatch import run_async
from bundle_updater.update.entry_point import AppEntryPointProvider, StaticEntryPointProvider
from bundle_updater.update.file_utils import FileUtils
from bundle_updater.update.models import (
    CheckFrequency,
    Configuration,
    InitializationError,
    SyncOptions,
    UpdateError,
)
from bundle_updater.update.settings import SettingsStore
from bundle_updater.update.store import UpdateStore
from bundle_updater.version import get_app_version


_LOGGER = logging.getLogger(__name__)


def default_client_unique_id() -> str:
    """Stable per-machine identifier reported to the update service."""

    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"bundle-updater:{uuid.getnode()}"))


def build_configuration(
    deployment_key: str | None = None,
    *,
    server_url: str | None = None,
    app_name: str | None = None,
    app_version: str | None = None,
    base_directory: str | Path | None = None,
    client_unique_id: str | None = None,
    defaults: ClientDefaults | None = None,
) -> Configuration:
    """Combine host-provided values, environment overrides and bundled defaults."""

    defaults = defaults or get_client_defaults()

    key = deployment_key or os.environ.get(DEPLOYMENT_KEY_ENV) or ""
    if not key:
        raise InitializationError("A deployment key is required")

    version = app_version or get_app_version()
    if not version:
        raise InitializationError("Unable to determine the application version")

    url = server_url or os.environ.get(SERVER_URL_ENV) or defaults.server_url
    if not url.endswith("/"):
        url = f"{url}/"

    directory = base_directory or os.environ.get(BASE_DIR_ENV)
    base = Path(directory).expanduser() if directory else Path.cwd() / defaults.folder_name

    return Configuration(
        deployment_key=key,
        server_url=url,
        app_name=app_name or defaults.app_name,
        app_version=version,
        client_unique_id=client_unique_id or default_client_unique_id(),
        base_directory=base,
    )


def resolve_entry_point(provider: AppEntryPointProvider) -> str:
    try:
        return provider.get_app_entry_point()
    except (LookupError, ValueError, OSError) as exc:
        raise InitializationError(f"Unable to determine the app entry point: {exc}") from exc


def build_update_core(
    configuration: Configuration,
    *,
    entry_point_provider: AppEntryPointProvider | None = None,
    acquisition_client: UpdateQueryClient | None = None,
    file_utils: FileUtils | None = None,
    restart_handler: Callable[[], None] | None = None,
) -> UpdateCore:
    """Construct an :class:`UpdateCore` sharing one :class:`FileUtils` between its stores."""

    provider = entry_point_provider or StaticEntryPointProvider(get_client_defaults().entry_point)
    entry_point = resolve_entry_point(provider)

    files = file_utils or FileUtils()
    base = configuration.base_directory
    _LOGGER.info(
        "Update client for %s %s using %s (entry point %s)",
        configuration.app_name,
        configuration.app_version,
        base,
        entry_point,
    )
    return UpdateCore(
        configuration,
        update_store=UpdateStore(base, files),
        settings_store=SettingsStore(base / SETTINGS_FILE_NAME, files),
        acquisition_client=acquisition_client or AcquisitionClient(),
        entry_point=entry_point,
        restart_handler=restart_handler,
    )


def schedule_startup_sync(
    core: UpdateCore,
    *,
    enabled: bool = True,
    options: SyncOptions | None = None,
    on_complete: Callable[[Result], None] | None = None,
) -> "Future[Result[bool, UpdateError]] | None":
    """Reconcile the previous launch, then sync in the background when configured.

    Returns the pending sync future, or ``None`` when no sync was started.
    """

    try:
        core.initialize_after_restart()
    except UpdateError as exc:
        _LOGGER.warning("Unable to reconcile the pending update: %s", exc)

    if not enabled:
        _LOGGER.debug("Automatic updates disabled by host preference")
        return None

    resolved = (options or SyncOptions()).resolve(core.configuration.deployment_key)
    if resolved.check_frequency is not CheckFrequency.ON_APP_START:
        _LOGGER.debug("Startup sync skipped (check frequency %s)", resolved.check_frequency.value)
        return None

    return run_async(lambda: core.sync(options), name="bundle-updater-startup", on_complete=on_complete)


__all__ = [
    "build_configuration",
    "build_update_core",
    "default_client_unique_id",
    "resolve_entry_point",
    "schedule_startup_sync",
]
