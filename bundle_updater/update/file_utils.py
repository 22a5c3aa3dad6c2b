"""Filesystem and JSON helpers shared by the update stores."""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any

from bundle_updater.update.models import MalformedDataError

_LOGGER = logging.getLogger(__name__)


class FileUtils:
    """Stateless file access service constructed once and passed to the stores.

    JSON documents are always replaced atomically: the payload is written to a
    temporary sibling, flushed to disk and then moved over the target with
    :func:`os.replace`, so a crash leaves either the old or the new document.
    """

    def read_json(self, path: Path) -> Any | None:
        """Return the parsed document at ``path`` or ``None`` when it is missing."""

        try:
            raw = path.read_text(encoding="utf-8-sig")
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as exc:
            raise MalformedDataError(f"Unable to decode {path.name}: {exc}") from exc
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise MalformedDataError(f"Unable to parse {path.name}: {exc}") from exc

    def write_json(self, path: Path, payload: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(payload, indent=2, sort_keys=True) + "\n"
        fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(text)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, path)
        except BaseException:
            self.remove_path(temp_path)
            raise
        _LOGGER.debug("Wrote %s", path)

    def ensure_directory(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path

    def move_file(self, source: Path, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        try:
            os.replace(source, destination)
        except OSError:
            # Different filesystems; fall back to copy + delete.
            shutil.move(str(source), str(destination))
        return destination

    def remove_path(self, path: Path) -> None:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            return
        except OSError:
            _LOGGER.debug("Unable to remove %s", path, exc_info=True)


__all__ = ["FileUtils"]
