from __future__ import annotations

from pathlib import Path

import pytest

from bundle_updater.update import (
    BundleDirectoryEntryPointProvider,
    CheckFrequency,
    InitializationError,
    PendingUpdate,
    StaticEntryPointProvider,
    SyncOptions,
    build_configuration,
    build_update_core,
    schedule_startup_sync,
)
from bundle_updater.update.builder import default_client_unique_id
from tests.unit.update_test_utils import (
    StaticQueryClient,
    build_harness,
    install_package,
    make_configuration,
)


def test_configuration_reads_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BUNDLE_UPDATER_DEPLOYMENT_KEY", "env-key")
    monkeypatch.setenv("BUNDLE_UPDATER_APP_VERSION", "v3.2.1")
    monkeypatch.setenv("BUNDLE_UPDATER_SERVER_URL", "https://updates.example")
    monkeypatch.setenv("BUNDLE_UPDATER_BASE_DIR", str(tmp_path / "custom"))

    configuration = build_configuration()

    assert configuration.deployment_key == "env-key"
    assert configuration.app_version == "3.2.1"
    assert configuration.server_url == "https://updates.example/"
    assert configuration.base_directory == tmp_path / "custom"
    assert configuration.app_name == "BundleUpdaterApp"
    assert configuration.client_unique_id == default_client_unique_id()


def test_explicit_values_override_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("BUNDLE_UPDATER_DEPLOYMENT_KEY", "env-key")

    configuration = build_configuration(
        "host-key",
        app_version="5.0.0",
        app_name="Host",
        base_directory=tmp_path,
        client_unique_id="device-7",
    )

    assert configuration.deployment_key == "host-key"
    assert configuration.app_version == "5.0.0"
    assert configuration.app_name == "Host"
    assert configuration.base_directory == tmp_path
    assert configuration.client_unique_id == "device-7"


def test_default_base_directory_is_under_working_directory(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    monkeypatch.delenv("BUNDLE_UPDATER_BASE_DIR", raising=False)
    monkeypatch.chdir(tmp_path)

    configuration = build_configuration("key", app_version="1.0.0")

    assert configuration.base_directory == tmp_path / "BundleUpdates"


def test_configuration_requires_deployment_key() -> None:
    with pytest.raises(InitializationError):
        build_configuration(app_version="1.0.0")


def test_configuration_requires_app_version(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("bundle_updater.update.builder.get_app_version", lambda: None)

    with pytest.raises(InitializationError):
        build_configuration("key")


def test_missing_entry_point_fails_initialization(tmp_path: Path) -> None:
    bundle_dir = tmp_path / "bundle"
    bundle_dir.mkdir()

    with pytest.raises(InitializationError):
        build_update_core(
            make_configuration(tmp_path),
            entry_point_provider=BundleDirectoryEntryPointProvider(bundle_dir),
            acquisition_client=StaticQueryClient(),
        )


def test_update_core_uses_discovered_entry_point(tmp_path: Path) -> None:
    bundle_dir = tmp_path / "bundle"
    bundle_dir.mkdir()
    (bundle_dir / "main.jsbundle").write_text("bundle", encoding="utf-8")

    core = build_update_core(
        make_configuration(tmp_path),
        entry_point_provider=BundleDirectoryEntryPointProvider(bundle_dir),
        acquisition_client=StaticQueryClient(),
    )

    assert core._entry_point == "main.jsbundle"  # type: ignore[attr-defined]


def test_startup_sync_disabled_still_reconciles_marker(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")

    assert schedule_startup_sync(harness.core, enabled=False) is None

    assert harness.core.state.did_update is True
    assert harness.settings.get_pending_update() == PendingUpdate(package_hash="h1", is_loading=True)
    assert harness.query_client.queries == []


def test_startup_sync_respects_manual_check_frequency(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    options = SyncOptions(check_frequency=CheckFrequency.MANUAL)
    assert schedule_startup_sync(harness.core, options=options) is None
    assert harness.query_client.queries == []


def test_startup_sync_runs_in_background(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    future = schedule_startup_sync(harness.core)

    assert future is not None
    result = future.result(timeout=5)
    assert result.is_ok()
    assert result.value is False
    assert len(harness.query_client.queries) == 1


def test_static_entry_point_rejects_escaping_paths() -> None:
    assert StaticEntryPointProvider("/bundles/index.bundle/").get_app_entry_point() == "bundles/index.bundle"
    with pytest.raises(ValueError):
        StaticEntryPointProvider("../index.bundle").get_app_entry_point()
    with pytest.raises(ValueError):
        StaticEntryPointProvider("  ").get_app_entry_point()
