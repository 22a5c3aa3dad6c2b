"""On-disk package folders and the current/previous package pointers.

Layout under the base directory::

    status.json            {"current_package": <hash>, "previous_package": <hash>}
    settings.json          owned by :class:`SettingsStore`
    download/              in-flight transfers
    <hash>/app.json        metadata for the package with that hash
    <hash>/<entry point>   the downloaded bundle
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import threading
import weakref
from http.client import HTTPException
from pathlib import Path
from typing import Any
from urllib.request import urlopen

from bundle_updater.update.constants import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_DIR_NAME,
    PACKAGE_FILE_NAME,
    SETTINGS_FILE_NAME,
    STATUS_CURRENT_KEY,
    STATUS_FILE_NAME,
    STATUS_PREVIOUS_KEY,
)
from bundle_updater.update.file_utils import FileUtils
from bundle_updater.update.models import (
    DownloadError,
    InstallError,
    LocalPackage,
    MalformedDataError,
    RollbackError,
    local_package_from_dict,
    package_to_dict,
)

_LOGGER = logging.getLogger(__name__)

_HASH_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]*")
_RESERVED_NAMES = frozenset({DOWNLOAD_DIR_NAME, STATUS_FILE_NAME, SETTINGS_FILE_NAME})


class UpdateStore:
    """Own the package folders and swap the pointer that names the current one."""

    def __init__(self, base_directory: Path, file_utils: FileUtils) -> None:
        self._base = Path(base_directory)
        self._files = file_utils
        self._status_lock = threading.RLock()
        self._hash_locks: weakref.WeakValueDictionary[str, threading.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._hash_locks_guard = threading.Lock()

    @property
    def base_directory(self) -> Path:
        return self._base

    @property
    def status_path(self) -> Path:
        return self._base / STATUS_FILE_NAME

    @property
    def download_directory(self) -> Path:
        return self._base / DOWNLOAD_DIR_NAME

    def get_package_folder_path(self, package_hash: str) -> Path:
        if not _is_valid_hash(package_hash):
            raise MalformedDataError(f"Invalid package hash: {package_hash!r}")
        return self._base / package_hash

    def get_package_metadata_path(self, package_hash: str) -> Path:
        return self.get_package_folder_path(package_hash) / PACKAGE_FILE_NAME

    def download_package(
        self, package_hash: str, url: str, *, expected_size: int | None = None
    ) -> Path:
        """Transfer ``url`` into a temporary file and return its path.

        The pointers are not touched; a failed transfer removes its partial file.
        """

        self.get_package_folder_path(package_hash)
        with self._lock_for(package_hash):
            try:
                self._files.ensure_directory(self.download_directory)
                fd, temp_name = tempfile.mkstemp(
                    prefix=f"{package_hash}-", suffix=".download", dir=self.download_directory
                )
            except OSError as exc:
                raise DownloadError(f"Unable to prepare download for {package_hash}: {exc}") from exc

            target = Path(temp_name)
            _LOGGER.info("Downloading package %s from %s", package_hash, url)
            try:
                with os.fdopen(fd, "wb") as destination, urlopen(url) as response:  # nosec - HTTPS
                    shutil.copyfileobj(response, destination, DOWNLOAD_CHUNK_SIZE)
            except (OSError, HTTPException, ValueError) as exc:
                self._files.remove_path(target)
                raise DownloadError(f"Failed to download package {package_hash}: {exc}") from exc

            received = target.stat().st_size
            if expected_size and received != expected_size:
                self._files.remove_path(target)
                raise DownloadError(
                    f"Package {package_hash} download incomplete: expected {expected_size} bytes "
                    f"but received {received}"
                )
            _LOGGER.debug("Downloaded %d bytes for package %s to %s", received, package_hash, target)
            return target

    def stage_package(self, package: LocalPackage, staged_file: Path) -> LocalPackage:
        """Move ``staged_file`` into the package folder and write its metadata."""

        package_hash = package.package_hash or ""
        folder = self.get_package_folder_path(package_hash)
        if not package.entry_point:
            raise DownloadError(f"Package {package_hash} has no entry point to stage")
        with self._lock_for(package_hash):
            try:
                self._files.ensure_directory(folder)
                self._files.move_file(staged_file, folder / package.entry_point)
                self._files.write_json(folder / PACKAGE_FILE_NAME, package_to_dict(package))
            except OSError as exc:
                raise DownloadError(f"Failed to stage package {package_hash}: {exc}") from exc
        _LOGGER.info("Staged package %s in %s", package_hash, folder)
        return package

    def install_package(self, package_hash: str) -> None:
        """Make the staged ``package_hash`` current; the old current becomes previous.

        The status document is replaced atomically, so a crash before the
        replace leaves the old current package authoritative.
        """

        with self._lock_for(package_hash), self._status_lock:
            try:
                package = self.get_package(package_hash)
            except MalformedDataError as exc:
                raise InstallError(f"Package {package_hash} metadata is unreadable: {exc}") from exc
            if package is None:
                raise InstallError(f"Package {package_hash} has not been staged")

            try:
                status = self._read_status()
            except MalformedDataError as exc:
                raise InstallError(f"Package status is unreadable: {exc}") from exc
            current_hash = status.get(STATUS_CURRENT_KEY)
            previous_hash = status.get(STATUS_PREVIOUS_KEY)
            if current_hash == package_hash:
                _LOGGER.info("Package %s is already current", package_hash)
                return

            try:
                self._write_status(current=package_hash, previous=current_hash)
            except OSError as exc:
                raise InstallError(f"Failed to install package {package_hash}: {exc}") from exc

            if _is_valid_hash(previous_hash) and previous_hash not in {package_hash, current_hash}:
                self._files.remove_path(self._base / previous_hash)
                _LOGGER.debug("Pruned superseded package %s", previous_hash)
        _LOGGER.info("Installed package %s (previous=%s)", package_hash, current_hash)

    def rollback_package(self) -> None:
        """Point current back at the previous package.

        The abandoned package folder is kept so it can still be inspected.
        """

        with self._status_lock:
            try:
                status = self._read_status()
            except MalformedDataError as exc:
                raise RollbackError(f"Package status is unreadable: {exc}") from exc
            current_hash = status.get(STATUS_CURRENT_KEY)
            previous_hash = status.get(STATUS_PREVIOUS_KEY)
            if not isinstance(previous_hash, str) or not previous_hash:
                raise RollbackError("There is no previous package to roll back to")
            if (
                not _is_valid_hash(previous_hash)
                or not (self._base / previous_hash / PACKAGE_FILE_NAME).exists()
            ):
                raise RollbackError(f"Previous package {previous_hash} is missing from disk")
            try:
                self._write_status(current=previous_hash, previous=None)
            except OSError as exc:
                raise RollbackError(f"Failed to roll back package {current_hash}: {exc}") from exc
        _LOGGER.info("Rolled back from package %s to %s", current_hash, previous_hash)

    def reset_to_binary(self) -> None:
        """Drop both pointers so the app falls back to the bundle shipped in the binary."""

        with self._status_lock:
            try:
                self._write_status(current=None, previous=None)
            except OSError as exc:
                raise RollbackError(f"Failed to reset package status: {exc}") from exc
        _LOGGER.info("Reset package status to the binary bundle")

    def get_current_package_hash(self) -> str | None:
        return self._read_pointer(STATUS_CURRENT_KEY)

    def get_previous_package_hash(self) -> str | None:
        return self._read_pointer(STATUS_PREVIOUS_KEY)

    def get_current_package(self) -> LocalPackage | None:
        return self._read_pointed_package(self.get_current_package_hash())

    def get_previous_package(self) -> LocalPackage | None:
        return self._read_pointed_package(self.get_previous_package_hash())

    def get_package(self, package_hash: str) -> LocalPackage | None:
        """Return the metadata stored for ``package_hash``.

        Raises :class:`MalformedDataError` when the file exists but is unreadable.
        """

        path = self.get_package_metadata_path(package_hash)
        try:
            data = self._files.read_json(path)
        except OSError as exc:
            raise MalformedDataError(f"Unable to read {path}: {exc}") from exc
        if data is None:
            return None
        return local_package_from_dict(data)

    def get_package_entry_path(self, package: LocalPackage) -> Path | None:
        if not package.package_hash or not package.entry_point:
            return None
        path = self.get_package_folder_path(package.package_hash) / package.entry_point
        return path if path.exists() else None

    def clear_updates(self) -> None:
        with self._status_lock:
            self._files.remove_path(self.status_path)
            self._files.remove_path(self.download_directory)
            for child in self._base.iterdir() if self._base.exists() else ():
                if child.is_dir() and (child / PACKAGE_FILE_NAME).exists():
                    self._files.remove_path(child)
        _LOGGER.info("Removed all downloaded packages from %s", self._base)

    def _lock_for(self, package_hash: str) -> threading.Lock:
        with self._hash_locks_guard:
            return self._hash_locks.setdefault(package_hash, threading.Lock())

    def _read_status(self) -> dict[str, Any]:
        try:
            data = self._files.read_json(self.status_path)
        except OSError as exc:
            raise MalformedDataError(f"Unable to read package status: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise MalformedDataError("Package status must be a JSON object")
        return data

    def _write_status(self, *, current: str | None, previous: str | None) -> None:
        self._files.write_json(
            self.status_path,
            {STATUS_CURRENT_KEY: current, STATUS_PREVIOUS_KEY: previous},
        )

    def _read_pointer(self, key: str) -> str | None:
        with self._status_lock:
            try:
                value = self._read_status().get(key)
            except MalformedDataError as exc:
                _LOGGER.warning("Treating unreadable package status as empty: %s", exc)
                return None
        return value if isinstance(value, str) and value else None

    def _read_pointed_package(self, package_hash: str | None) -> LocalPackage | None:
        if not package_hash:
            return None
        try:
            return self.get_package(package_hash)
        except MalformedDataError as exc:
            _LOGGER.warning("Treating unreadable package %s as missing: %s", package_hash, exc)
            return None


def _is_valid_hash(package_hash: object) -> bool:
    return (
        isinstance(package_hash, str)
        and package_hash not in _RESERVED_NAMES
        and _HASH_PATTERN.fullmatch(package_hash) is not None
    )


__all__ = ["UpdateStore"]
