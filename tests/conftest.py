from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_project_root_on_path() -> None:
    """Guarantee the repository root is discoverable for absolute imports."""

    root = Path(__file__).resolve().parent.parent
    root_str = str(root)
    if root_str not in sys.path:
        sys.path.insert(0, root_str)


_ensure_project_root_on_path()


@pytest.fixture(autouse=True)
def _isolated_update_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory):
    """Keep update folders and logs out of the real user profile."""

    base_dir = tmp_path_factory.mktemp("updates")
    log_dir = tmp_path_factory.mktemp("logs")
    monkeypatch.setenv("BUNDLE_UPDATER_BASE_DIR", str(base_dir))
    monkeypatch.setenv("BUNDLE_UPDATER_LOG_DIR", str(log_dir))
    for name in (
        "BUNDLE_UPDATER_DEPLOYMENT_KEY",
        "BUNDLE_UPDATER_SERVER_URL",
        "BUNDLE_UPDATER_APP_VERSION",
        "BUNDLE_UPDATER_LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)

    from bundle_updater.config import reset_client_defaults_cache
    from bundle_updater.version import get_app_version

    get_app_version.cache_clear()  # type: ignore[attr-defined]
    reset_client_defaults_cache()
    yield
    get_app_version.cache_clear()  # type: ignore[attr-defined]
    reset_client_defaults_cache()
