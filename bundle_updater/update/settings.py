"""Persistent record of failed updates and the pending-update marker."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any

from bundle_updater.update.constants import SETTINGS_FAILED_KEY, SETTINGS_PENDING_KEY
from bundle_updater.update.file_utils import FileUtils
from bundle_updater.update.models import (
    MalformedDataError,
    Package,
    PendingUpdate,
    UpdateError,
    package_from_dict,
    package_to_dict,
    pending_update_from_dict,
    pending_update_to_dict,
)

_LOGGER = logging.getLogger(__name__)


class SettingsStore:
    """Small JSON document consulted to tell current, pending and failed apart.

    The failed set only grows; :meth:`remove_failed_updates` is the single
    operation that shrinks it.  An unreadable settings file reads as empty and
    is left on disk untouched until the next write replaces it.
    """

    def __init__(self, settings_path: Path, file_utils: FileUtils) -> None:
        self._path = Path(settings_path)
        self._files = file_utils
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    def get_failed_updates(self) -> list[Package]:
        with self._lock:
            return list(self._load()[SETTINGS_FAILED_KEY])

    def exists_failed_update(self, package_hash: str | None) -> bool:
        if not package_hash:
            return False
        return any(package.package_hash == package_hash for package in self.get_failed_updates())

    def save_failed_update(self, package: Package) -> None:
        if not package.package_hash:
            raise UpdateError("Cannot record a failed update without a package hash")
        with self._lock:
            data = self._load()
            failed: list[Package] = data[SETTINGS_FAILED_KEY]
            if any(entry.package_hash == package.package_hash for entry in failed):
                _LOGGER.debug("Package %s already recorded as failed", package.package_hash)
                return
            failed.append(package)
            self._save(data)
        _LOGGER.info("Recorded package %s as failed", package.package_hash)

    def remove_failed_updates(self) -> None:
        with self._lock:
            data = self._load()
            if not data[SETTINGS_FAILED_KEY]:
                return
            data[SETTINGS_FAILED_KEY] = []
            self._save(data)
        _LOGGER.info("Cleared failed update records")

    def get_pending_update(self) -> PendingUpdate | None:
        with self._lock:
            return self._load()[SETTINGS_PENDING_KEY]

    def is_pending_update(self, package_hash: str | None) -> bool:
        """Return ``True`` when ``package_hash`` is installed but not yet launched.

        A marker whose launch is already in progress (``is_loading``) belongs to
        the running package and no longer counts as pending.
        """

        pending = self.get_pending_update()
        return (
            pending is not None
            and bool(package_hash)
            and not pending.is_loading
            and pending.package_hash == package_hash
        )

    def save_pending_update(self, pending: PendingUpdate) -> None:
        with self._lock:
            data = self._load()
            data[SETTINGS_PENDING_KEY] = pending
            self._save(data)
        _LOGGER.info(
            "Marked package %s as pending (mandatory=%s, loading=%s)",
            pending.package_hash,
            pending.is_mandatory,
            pending.is_loading,
        )

    def mark_pending_update_loading(self) -> PendingUpdate | None:
        with self._lock:
            pending = self.get_pending_update()
            if pending is None:
                return None
            loading = replace(pending, is_loading=True)
            self.save_pending_update(loading)
            return loading

    def remove_pending_update(self) -> None:
        with self._lock:
            data = self._load()
            if data[SETTINGS_PENDING_KEY] is None:
                return
            data[SETTINGS_PENDING_KEY] = None
            self._save(data)
        _LOGGER.info("Removed pending update marker")

    def clear(self) -> None:
        with self._lock:
            self._files.remove_path(self._path)

    def _load(self) -> dict[str, Any]:
        data: dict[str, Any] = {SETTINGS_FAILED_KEY: [], SETTINGS_PENDING_KEY: None}
        try:
            raw = self._files.read_json(self._path)
        except MalformedDataError as exc:
            _LOGGER.warning("Ignoring unreadable settings file %s: %s", self._path, exc)
            return data
        except OSError as exc:
            raise UpdateError(f"Unable to read settings: {exc}") from exc
        if raw is None:
            return data
        if not isinstance(raw, dict):
            _LOGGER.warning("Ignoring settings file %s with unexpected layout", self._path)
            return data

        entries = raw.get(SETTINGS_FAILED_KEY) or []
        if isinstance(entries, list):
            for entry in entries:
                try:
                    data[SETTINGS_FAILED_KEY].append(package_from_dict(entry))
                except MalformedDataError as exc:
                    _LOGGER.debug("Skipping malformed failed-update record: %s", exc)

        pending = raw.get(SETTINGS_PENDING_KEY)
        if pending is not None:
            try:
                data[SETTINGS_PENDING_KEY] = pending_update_from_dict(pending)
            except MalformedDataError as exc:
                _LOGGER.warning("Ignoring malformed pending update marker: %s", exc)
        return data

    def _save(self, data: dict[str, Any]) -> None:
        pending: PendingUpdate | None = data[SETTINGS_PENDING_KEY]
        payload = {
            SETTINGS_FAILED_KEY: [package_to_dict(package) for package in data[SETTINGS_FAILED_KEY]],
            SETTINGS_PENDING_KEY: pending_update_to_dict(pending) if pending is not None else None,
        }
        try:
            self._files.write_json(self._path, payload)
        except OSError as exc:
            raise UpdateError(f"Unable to write settings: {exc}") from exc


__all__ = ["SettingsStore"]
