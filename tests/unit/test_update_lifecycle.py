from __future__ import annotations

from pathlib import Path
from urllib.error import URLError

import pytest

from bundle_updater.update import (
    DownloadError,
    FileUtils,
    InstallError,
    LocalPackage,
    PendingUpdate,
    RollbackError,
    UpdateState,
)
from tests.unit.update_test_utils import (
    DOWNLOAD_ROOT,
    ENTRY_POINT,
    build_harness,
    install_fake_urlopen,
    install_package,
    make_remote,
    stage_package,
)


def test_download_stages_package_without_touching_pointers(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = install_fake_urlopen(monkeypatch)
    fake.add(DOWNLOAD_ROOT, b"payload")
    harness = build_harness(tmp_path)

    local = harness.core.download_update(make_remote("h1", download_size=7))

    assert local.package_hash == "h1"
    assert local.entry_point == ENTRY_POINT
    assert local.is_pending is True
    assert local.app_version == "1.0.0"
    folder = harness.configuration.base_directory / "h1"
    assert (folder / ENTRY_POINT).read_bytes() == b"payload"
    assert (folder / "app.json").exists()
    assert harness.store.get_current_package_hash() is None
    assert fake.requested == [f"{DOWNLOAD_ROOT}h1.bundle"]


def test_download_failure_records_failed_hash_and_surfaces_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = install_fake_urlopen(monkeypatch)
    fake.add(DOWNLOAD_ROOT, URLError("connection reset"))
    harness = build_harness(tmp_path)

    with pytest.raises(DownloadError, match="connection reset"):
        harness.core.download_update(make_remote("h1"))

    assert harness.core.exists_failed_update("h1") is True
    assert not (harness.configuration.base_directory / "h1").exists()
    download_dir = harness.configuration.base_directory / "download"
    assert not download_dir.exists() or list(download_dir.iterdir()) == []


def test_download_rejects_truncated_transfer(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    fake = install_fake_urlopen(monkeypatch)
    fake.add(DOWNLOAD_ROOT, b"short")
    harness = build_harness(tmp_path)

    with pytest.raises(DownloadError, match="incomplete"):
        harness.core.download_update(make_remote("h1", download_size=1024))

    assert harness.core.exists_failed_update("h1") is True


def test_download_without_url_is_recorded_as_failed(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    with pytest.raises(DownloadError):
        harness.core.download_update(make_remote("h1", download_url=None))

    assert harness.core.exists_failed_update("h1") is True


def test_install_moves_current_to_previous(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    install_package(harness, "h2")

    assert harness.store.get_current_package_hash() == "h2"
    assert harness.store.get_previous_package_hash() == "h1"
    pending = harness.settings.get_pending_update()
    assert pending == PendingUpdate(package_hash="h2")


def test_install_of_unstaged_package_restores_marker(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    before = harness.settings.get_pending_update()

    with pytest.raises(InstallError):
        harness.core.install_update(LocalPackage(package_hash="missing", entry_point=ENTRY_POINT))

    assert harness.settings.get_pending_update() == before
    assert harness.store.get_current_package_hash() == "h1"


def test_install_without_hash_is_rejected(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    with pytest.raises(InstallError):
        harness.core.install_update(LocalPackage())


def test_rollback_restores_previous_and_blacklists_current(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    install_package(harness, "h2")

    harness.core.rollback_package()

    assert harness.store.get_current_package_hash() == "h1"
    assert harness.core.exists_failed_update("h2") is True
    assert harness.core.exists_failed_update("h1") is False
    assert harness.settings.get_pending_update() is None


def test_rollback_without_previous_changes_nothing(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")

    with pytest.raises(RollbackError):
        harness.core.rollback_package()

    assert harness.store.get_current_package_hash() == "h1"
    assert harness.settings.get_pending_update() == PendingUpdate(package_hash="h1")
    assert harness.settings.get_failed_updates() == []


def test_rollback_without_any_package_fails(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)

    with pytest.raises(RollbackError):
        harness.core.rollback_package()


def test_initialize_after_restart_marks_first_launch(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")

    harness.core.initialize_after_restart()

    assert harness.core.state.did_update is True
    assert harness.settings.get_pending_update() == PendingUpdate(
        package_hash="h1", is_loading=True
    )


def test_initialize_after_restart_rolls_back_unconfirmed_launch(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    harness.core.notify_application_ready()
    install_package(harness, "h2")
    harness.settings.mark_pending_update_loading()

    harness.core.initialize_after_restart()

    assert harness.store.get_current_package_hash() == "h1"
    assert harness.core.exists_failed_update("h2") is True
    assert harness.settings.get_pending_update() is None
    assert harness.core.state.did_update is False


def test_initialize_after_restart_falls_back_to_binary(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    harness.settings.mark_pending_update_loading()

    harness.core.initialize_after_restart()

    assert harness.store.get_current_package_hash() is None
    assert harness.core.exists_failed_update("h1") is True
    assert harness.settings.get_pending_update() is None


def test_initialize_after_restart_clears_stale_marker(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    harness.settings.save_pending_update(PendingUpdate(package_hash="other"))

    harness.core.initialize_after_restart()

    assert harness.settings.get_pending_update() is None
    assert harness.store.get_current_package_hash() == "h1"
    assert harness.core.state.did_update is False


def test_notify_application_ready_confirms_package(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    harness.core.initialize_after_restart()

    harness.core.notify_application_ready()

    assert harness.settings.get_pending_update() is None
    assert harness.store.get_current_package_hash() == "h1"


def test_entry_path_points_at_installed_bundle(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    assert harness.core.get_current_package_entry_path() is None

    install_package(harness, "h1", content=b"bundle")

    path = harness.core.get_current_package_entry_path()
    assert path == harness.configuration.base_directory / "h1" / ENTRY_POINT
    assert path.read_bytes() == b"bundle"


def test_entry_path_discards_packages_for_other_binary(tmp_path: Path) -> None:
    harness = build_harness(tmp_path, app_version="2.0.0")
    install_package(harness, "h1", app_version="1.0.0")
    harness.settings.mark_pending_update_loading()

    assert harness.core.get_current_package_entry_path() is None

    assert harness.store.get_current_package_hash() is None
    assert not (harness.configuration.base_directory / "h1").exists()
    assert harness.settings.get_pending_update() is None


def test_remove_failed_updates_clears_blacklist(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    stage_package(harness, "h1")
    harness.settings.save_failed_update(LocalPackage(package_hash="h1"))

    harness.core.remove_failed_updates()

    assert harness.core.exists_failed_update("h1") is False


def test_unconfirmed_launch_without_previous_folder_reverts_to_binary(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    harness.core.notify_application_ready()
    install_package(harness, "h2")
    harness.settings.mark_pending_update_loading()
    FileUtils().remove_path(harness.configuration.base_directory / "h1")

    harness.core.initialize_after_restart()

    assert harness.store.get_current_package_hash() is None
    assert harness.core.exists_failed_update("h2") is True
    assert harness.settings.get_pending_update() is None
    assert harness.core.get_current_package_entry_path() is None


def test_unreadable_package_metadata_reads_as_no_package(tmp_path: Path) -> None:
    harness = build_harness(tmp_path)
    install_package(harness, "h1")
    (harness.configuration.base_directory / "h1" / "app.json").write_bytes(b"\xff\xfe\x00garbage")

    assert harness.core.get_update_metadata(UpdateState.LATEST) is None
    assert harness.core.get_current_package_entry_path() is None
