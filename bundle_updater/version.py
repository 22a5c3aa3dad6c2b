from __future__ import annotations

"""Binary application version discovery."""

from functools import lru_cache
import os
import subprocess
from importlib import resources

APP_VERSION_ENV = "BUNDLE_UPDATER_APP_VERSION"


def _version_from_env() -> str | None:
    env_version = os.environ.get(APP_VERSION_ENV)
    if not env_version:
        return None
    return _normalize(env_version)


def _read_version_file() -> str | None:
    try:
        text = resources.files(__package__).joinpath("VERSION").read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError):
        return None
    version = text.strip()
    return version or None


def _version_from_git() -> str | None:
    try:
        output = subprocess.check_output(
            ["git", "describe", "--tags", "--dirty"],
            stderr=subprocess.DEVNULL,
            text=True,
        )
    except (OSError, subprocess.CalledProcessError):
        return None
    return _normalize(output.strip()) or None


def _normalize(raw_version: str) -> str:
    version = raw_version.strip()
    if version.startswith("v"):
        version = version[1:]
    return version


@lru_cache(maxsize=1)
def get_app_version() -> str | None:
    """Return the version of the binary the update client runs inside.

    The order of precedence is:
    1. The ``BUNDLE_UPDATER_APP_VERSION`` environment variable.
    2. The ``VERSION`` file packaged with the client.
    3. ``git describe`` output when running from a source checkout.

    ``None`` means the version cannot be determined; callers treat that as an
    initialization failure because every update query is scoped to it.
    """

    for resolver in (_version_from_env, _read_version_file, _version_from_git):
        version = resolver()
        if version:
            return version
    return None


__all__ = ["APP_VERSION_ENV", "get_app_version"]
