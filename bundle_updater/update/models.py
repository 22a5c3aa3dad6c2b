"""Data models and errors used by the update lifecycle."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Mapping


class UpdateError(RuntimeError):
    """Base class for every failure reported by the update client."""


class InitializationError(UpdateError):
    """Raised when the client cannot determine the app version or entry point."""


class AcquisitionError(UpdateError):
    """Raised when the update service cannot be queried."""


class DownloadError(UpdateError):
    """Raised when a package cannot be transferred or staged."""


class InstallError(UpdateError):
    """Raised when a staged package cannot become the current package."""


class RollbackError(UpdateError):
    """Raised when there is nothing to roll back to or the rollback fails."""


class MalformedDataError(UpdateError):
    """Raised when persisted metadata exists but cannot be parsed."""


class UpdateState(str, Enum):
    """Which installed package :meth:`UpdateCore.get_update_metadata` returns."""

    RUNNING = "running"
    PENDING = "pending"
    LATEST = "latest"


class InstallMode(str, Enum):
    IMMEDIATE = "immediate"
    ON_NEXT_RESTART = "on_next_restart"
    ON_NEXT_RESUME = "on_next_resume"


class CheckFrequency(str, Enum):
    ON_APP_START = "on_app_start"
    ON_APP_RESUME = "on_app_resume"
    MANUAL = "manual"


@dataclass(frozen=True)
class Configuration:
    """Immutable per-session settings shared by every update operation."""

    deployment_key: str
    server_url: str
    app_name: str
    app_version: str
    client_unique_id: str
    base_directory: Path
    override_deployment_key: str | None = None

    @property
    def effective_deployment_key(self) -> str:
        return self.override_deployment_key or self.deployment_key

    def with_deployment_key(self, deployment_key: str | None) -> "Configuration":
        """Return a copy that queries ``deployment_key`` instead of the configured key."""

        if not deployment_key:
            return self
        return replace(self, override_deployment_key=deployment_key)


@dataclass(frozen=True)
class Package:
    deployment_key: str | None = None
    package_hash: str | None = None
    label: str | None = None
    is_mandatory: bool = False
    description: str | None = None
    app_version: str | None = None
    failed_install: bool = False


@dataclass(frozen=True)
class RemotePackage(Package):
    """Update offered by the service; the transient result of a check."""

    download_url: str | None = None
    download_size: int = 0
    # False only for the synthetic notice returned when no package is offered.
    is_available: bool = True
    update_app_version: bool = False


@dataclass(frozen=True)
class LocalPackage(Package):
    """A downloaded package tracked by the update store."""

    entry_point: str | None = None
    is_first_run: bool = False
    is_pending: bool = False
    was_failed_install: bool = False
    is_debug_only: bool = False

    @classmethod
    def from_remote(
        cls,
        remote: RemotePackage,
        *,
        entry_point: str,
        is_pending: bool = True,
        is_debug_only: bool = False,
    ) -> "LocalPackage":
        return cls(
            deployment_key=remote.deployment_key,
            package_hash=remote.package_hash,
            label=remote.label,
            is_mandatory=remote.is_mandatory,
            description=remote.description,
            app_version=remote.app_version,
            failed_install=remote.failed_install,
            entry_point=entry_point,
            is_pending=is_pending,
            was_failed_install=remote.failed_install,
            is_debug_only=is_debug_only,
        )

    @classmethod
    def empty_for_query(cls, app_version: str) -> "LocalPackage":
        """Package describing a client that has never installed an update."""

        return cls(app_version=app_version)


@dataclass(frozen=True)
class PendingUpdate:
    """Marker for an installed package that has not yet confirmed a launch."""

    package_hash: str
    is_mandatory: bool = False
    is_loading: bool = False


@dataclass(frozen=True)
class ResolvedSyncOptions:
    deployment_key: str
    install_mode: InstallMode
    mandatory_install_mode: InstallMode
    check_frequency: CheckFrequency
    ignore_failed_updates: bool
    explicitly_set: frozenset[str] = field(default_factory=frozenset)

    def install_mode_for(self, package: Package) -> InstallMode:
        if package.is_mandatory:
            return self.mandatory_install_mode
        return self.install_mode


@dataclass
class SyncOptions:
    """Caller-supplied sync options; ``None`` means "use the default"."""

    deployment_key: str | None = None
    install_mode: InstallMode | None = None
    mandatory_install_mode: InstallMode | None = None
    check_frequency: CheckFrequency | None = None
    ignore_failed_updates: bool = True

    @property
    def explicitly_set(self) -> frozenset[str]:
        names = ("deployment_key", "install_mode", "mandatory_install_mode", "check_frequency")
        return frozenset(name for name in names if getattr(self, name) not in (None, ""))

    def resolve(self, default_deployment_key: str) -> ResolvedSyncOptions:
        """Apply the defaults once and record which values the caller chose."""

        return ResolvedSyncOptions(
            deployment_key=self.deployment_key or default_deployment_key,
            install_mode=self.install_mode or InstallMode.ON_NEXT_RESTART,
            mandatory_install_mode=self.mandatory_install_mode or InstallMode.IMMEDIATE,
            check_frequency=self.check_frequency or CheckFrequency.ON_APP_START,
            ignore_failed_updates=self.ignore_failed_updates,
            explicitly_set=self.explicitly_set,
        )


def package_to_dict(package: Package) -> dict[str, Any]:
    return asdict(package)


def package_from_dict(data: Any) -> Package:
    """Parse a failed-update record; extra keys from subclasses are ignored."""

    mapping = _require_mapping(data)
    return Package(**_base_fields(mapping))


def local_package_from_dict(data: Any) -> LocalPackage:
    mapping = _require_mapping(data)
    return LocalPackage(
        **_base_fields(mapping),
        entry_point=_optional_text(mapping, "entry_point"),
        is_first_run=_flag(mapping, "is_first_run"),
        is_pending=_flag(mapping, "is_pending"),
        was_failed_install=_flag(mapping, "was_failed_install"),
        is_debug_only=_flag(mapping, "is_debug_only"),
    )


def pending_update_from_dict(data: Any) -> PendingUpdate:
    mapping = _require_mapping(data)
    package_hash = _optional_text(mapping, "hash")
    if not package_hash:
        raise MalformedDataError("Pending update marker is missing its hash")
    return PendingUpdate(
        package_hash=package_hash,
        is_mandatory=_flag(mapping, "is_mandatory"),
        is_loading=_flag(mapping, "is_loading"),
    )


def pending_update_to_dict(pending: PendingUpdate) -> dict[str, Any]:
    return {
        "hash": pending.package_hash,
        "is_mandatory": pending.is_mandatory,
        "is_loading": pending.is_loading,
    }


def _base_fields(mapping: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "deployment_key": _optional_text(mapping, "deployment_key"),
        "package_hash": _optional_text(mapping, "package_hash"),
        "label": _optional_text(mapping, "label"),
        "is_mandatory": _flag(mapping, "is_mandatory"),
        "description": _optional_text(mapping, "description"),
        "app_version": _optional_text(mapping, "app_version"),
        "failed_install": _flag(mapping, "failed_install"),
    }


def _require_mapping(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise MalformedDataError(f"Expected a JSON object but found {type(data).__name__}")
    return data


def _optional_text(mapping: Mapping[str, Any], key: str) -> str | None:
    value = mapping.get(key)
    if value is None or isinstance(value, str):
        return value
    raise MalformedDataError(f"Field '{key}' must be a string")


def _flag(mapping: Mapping[str, Any], key: str) -> bool:
    value = mapping.get(key, False)
    if isinstance(value, bool):
        return value
    raise MalformedDataError(f"Field '{key}' must be a boolean")


__all__ = [
    "AcquisitionError",
    "CheckFrequency",
    "Configuration",
    "DownloadError",
    "InitializationError",
    "InstallError",
    "InstallMode",
    "LocalPackage",
    "MalformedDataError",
    "Package",
    "PendingUpdate",
    "RemotePackage",
    "ResolvedSyncOptions",
    "RollbackError",
    "SyncOptions",
    "UpdateError",
    "UpdateState",
    "local_package_from_dict",
    "package_from_dict",
    "package_to_dict",
    "pending_update_from_dict",
    "pending_update_to_dict",
]
