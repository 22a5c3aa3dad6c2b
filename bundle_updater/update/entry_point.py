"""Discovery of the bundle file the host application loads at startup."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from typing import Iterable, Protocol

_LOGGER = logging.getLogger(__name__)

DEFAULT_BUNDLE_PATTERNS = ("*.bundle", "*.jsbundle")


class AppEntryPointProvider(Protocol):
    """Return the relative file name of the application's entry bundle."""

    def get_app_entry_point(self) -> str:
        """Raise ``LookupError`` or ``ValueError`` when no entry point exists."""


class StaticEntryPointProvider:
    """Use a fixed, configured entry-point file name."""

    def __init__(self, entry_point: str) -> None:
        self._entry_point = entry_point

    def get_app_entry_point(self) -> str:
        return normalise_entry_point(self._entry_point)


class BundleDirectoryEntryPointProvider:
    """Find the bundle shipped next to the binary by file pattern."""

    def __init__(self, directory: Path, patterns: Iterable[str] = DEFAULT_BUNDLE_PATTERNS) -> None:
        self._directory = Path(directory)
        self._patterns = tuple(patterns)

    def get_app_entry_point(self) -> str:
        for pattern in self._patterns:
            matches = sorted(path for path in self._directory.glob(pattern) if path.is_file())
            if matches:
                _LOGGER.debug("Discovered entry point %s in %s", matches[0].name, self._directory)
                return matches[0].name
        raise LookupError(f"No bundle matching {self._patterns} in {self._directory}")


def normalise_entry_point(raw: str) -> str:
    cleaned = (raw or "").strip().replace("\\", "/").strip("/")
    if not cleaned:
        raise ValueError("Entry point must not be empty")
    parts = PurePosixPath(cleaned).parts
    if any(part in {"..", "."} for part in parts):
        raise ValueError(f"Entry point must stay inside the package folder: {raw!r}")
    return cleaned


__all__ = [
    "AppEntryPointProvider",
    "BundleDirectoryEntryPointProvider",
    "StaticEntryPointProvider",
    "normalise_entry_point",
]
