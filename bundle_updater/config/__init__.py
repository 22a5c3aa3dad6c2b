"""Client defaults loaded from the bundled JSON resource."""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Any, Mapping

_DEFAULTS_RESOURCE = "defaults.json"
_DEFAULTS_CACHE: ClientDefaults | None = None

_BUILTIN_SERVER_URL = "https://codepush.appcenter.ms/"
_BUILTIN_APP_NAME = "BundleUpdaterApp"
_BUILTIN_FOLDER_NAME = "BundleUpdates"
_BUILTIN_ENTRY_POINT = "index.bundle"


@dataclass(frozen=True)
class ClientDefaults:
    """Values used when the host does not supply its own."""

    server_url: str
    app_name: str
    folder_name: str
    entry_point: str


def get_client_defaults() -> ClientDefaults:
    """Return the cached client defaults."""

    global _DEFAULTS_CACHE
    if _DEFAULTS_CACHE is None:
        _DEFAULTS_CACHE = load_client_defaults()
    return _DEFAULTS_CACHE


def reset_client_defaults_cache() -> None:
    global _DEFAULTS_CACHE
    _DEFAULTS_CACHE = None


def load_client_defaults(path: str | Path | None = None) -> ClientDefaults:
    """Load defaults from ``path`` or the bundled JSON resource."""

    data = _read_defaults_data(path)
    server_url = _coerce_text(data.get("server_url"), default=_BUILTIN_SERVER_URL)
    if not server_url.endswith("/"):
        server_url = f"{server_url}/"
    return ClientDefaults(
        server_url=server_url,
        app_name=_coerce_text(data.get("app_name"), default=_BUILTIN_APP_NAME),
        folder_name=_coerce_name(data.get("folder_name"), default=_BUILTIN_FOLDER_NAME),
        entry_point=_coerce_name(data.get("entry_point"), default=_BUILTIN_ENTRY_POINT),
    )


def _read_defaults_data(path: str | Path | None) -> Mapping[str, Any]:
    try:
        if path is not None:
            raw = Path(path).expanduser().read_text(encoding="utf-8")
        else:
            raw = resources.files(__package__).joinpath(_DEFAULTS_RESOURCE).read_text(encoding="utf-8")
    except (FileNotFoundError, OSError):
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {}
    if isinstance(parsed, Mapping):
        return parsed
    return {}


def _coerce_text(value: Any, *, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def _coerce_name(value: Any, *, default: str) -> str:
    """Accept a single path component only."""

    text = _coerce_text(value, default=default)
    if "/" in text or "\\" in text or text in {".", ".."}:
        return default
    return text


__all__ = [
    "ClientDefaults",
    "get_client_defaults",
    "load_client_defaults",
    "reset_client_defaults_cache",
]
