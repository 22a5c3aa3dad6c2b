"""Over-the-air bundle update client."""

from __future__ import annotations

from bundle_updater.logging_config import LogVerbosity, ensure_app_logging, set_file_log_verbosity
from bundle_updater.result import Result
from bundle_updater.update import (
    SyncOptions,
    UpdateClient,
    UpdateCore,
    UpdateError,
    UpdateState,
    build_configuration,
    build_update_core,
    schedule_startup_sync,
)

__all__ = [
    "LogVerbosity",
    "Result",
    "SyncOptions",
    "UpdateClient",
    "UpdateCore",
    "UpdateError",
    "UpdateState",
    "build_configuration",
    "build_update_core",
    "ensure_app_logging",
    "schedule_startup_sync",
    "set_file_log_verbosity",
]
