"""Public API for the update lifecycle package."""

from __future__ import annotations

from bundle_updater.update.acquisition import AcquisitionClient, UpdateQueryClient
from bundle_updater.update.builder import (
    build_configuration,
    build_update_core,
    schedule_startup_sync,
)
from bundle_updater.update.constants import (
    BASE_DIR_ENV,
    DEPLOYMENT_KEY_ENV,
    PACKAGE_FILE_NAME,
    SERVER_URL_ENV,
    SETTINGS_FILE_NAME,
    STATUS_FILE_NAME,
)
from bundle_updater.update.core import LifecycleState, UpdateCore
from bundle_updater.update.dispatch import UpdateClient, run_async
from bundle_updater.update.entry_point import (
    AppEntryPointProvider,
    BundleDirectoryEntryPointProvider,
    StaticEntryPointProvider,
)
from bundle_updater.update.file_utils import FileUtils
from bundle_updater.update.models import (
    AcquisitionError,
    CheckFrequency,
    Configuration,
    DownloadError,
    InitializationError,
    InstallError,
    InstallMode,
    LocalPackage,
    MalformedDataError,
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

__all__ = [
    "BASE_DIR_ENV",
    "DEPLOYMENT_KEY_ENV",
    "PACKAGE_FILE_NAME",
    "SERVER_URL_ENV",
    "SETTINGS_FILE_NAME",
    "STATUS_FILE_NAME",
    "AcquisitionClient",
    "AcquisitionError",
    "AppEntryPointProvider",
    "BundleDirectoryEntryPointProvider",
    "CheckFrequency",
    "Configuration",
    "DownloadError",
    "FileUtils",
    "InitializationError",
    "InstallError",
    "InstallMode",
    "LifecycleState",
    "LocalPackage",
    "MalformedDataError",
    "Package",
    "PendingUpdate",
    "RemotePackage",
    "RollbackError",
    "SettingsStore",
    "StaticEntryPointProvider",
    "SyncOptions",
    "UpdateClient",
    "UpdateCore",
    "UpdateError",
    "UpdateQueryClient",
    "UpdateState",
    "UpdateStore",
    "build_configuration",
    "build_update_core",
    "run_async",
    "schedule_startup_sync",
]
