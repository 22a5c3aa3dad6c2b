from __future__ import annotations

import gc
import json
from pathlib import Path

import pytest

from bundle_updater.update import (
    FileUtils,
    InstallError,
    LocalPackage,
    MalformedDataError,
    RollbackError,
    UpdateStore,
)


def _stage(store: UpdateStore, tmp_path: Path, package_hash: str) -> LocalPackage:
    staged = tmp_path / f"{package_hash}.staged"
    staged.write_bytes(package_hash.encode("utf-8"))
    package = LocalPackage(package_hash=package_hash, app_version="1.0.0", entry_point="index.bundle")
    return store.stage_package(package, staged)


@pytest.fixture
def store(tmp_path: Path) -> UpdateStore:
    return UpdateStore(tmp_path / "updates", FileUtils())


def test_staged_package_round_trips_metadata(store: UpdateStore, tmp_path: Path) -> None:
    package = _stage(store, tmp_path, "h1")

    assert store.get_package("h1") == package
    assert store.get_package("unknown") is None


def test_install_and_rollback_swap_pointers(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    _stage(store, tmp_path, "h2")

    store.install_package("h1")
    store.install_package("h2")
    assert store.get_current_package_hash() == "h2"
    assert store.get_previous_package_hash() == "h1"

    store.rollback_package()
    assert store.get_current_package_hash() == "h1"
    assert store.get_previous_package_hash() is None
    # The abandoned package stays on disk.
    assert store.get_package("h2") is not None


def test_install_prunes_superseded_previous_package(store: UpdateStore, tmp_path: Path) -> None:
    for package_hash in ("h1", "h2", "h3"):
        _stage(store, tmp_path, package_hash)
        store.install_package(package_hash)

    assert store.get_current_package_hash() == "h3"
    assert store.get_previous_package_hash() == "h2"
    assert not store.get_package_folder_path("h1").exists()


def test_install_is_noop_for_current_package(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    store.install_package("h1")
    store.install_package("h1")

    assert store.get_current_package_hash() == "h1"
    assert store.get_previous_package_hash() is None


def test_install_requires_staged_package(store: UpdateStore) -> None:
    with pytest.raises(InstallError):
        store.install_package("h1")


def test_rollback_requires_previous_folder(store: UpdateStore, tmp_path: Path) -> None:
    with pytest.raises(RollbackError):
        store.rollback_package()

    _stage(store, tmp_path, "h1")
    _stage(store, tmp_path, "h2")
    store.install_package("h1")
    store.install_package("h2")
    FileUtils().remove_path(store.get_package_folder_path("h1"))

    with pytest.raises(RollbackError):
        store.rollback_package()
    assert store.get_current_package_hash() == "h2"


@pytest.mark.parametrize(
    "package_hash",
    ["", "../escape", "a/b", ".hidden", "download", "status.json", "settings.json"],
)
def test_invalid_hashes_are_rejected(store: UpdateStore, package_hash: str) -> None:
    with pytest.raises(MalformedDataError):
        store.get_package_folder_path(package_hash)


def test_malformed_metadata_reads_as_missing_package(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    store.install_package("h1")
    store.get_package_metadata_path("h1").write_text("{not json", encoding="utf-8")

    with pytest.raises(MalformedDataError):
        store.get_package("h1")
    assert store.get_current_package() is None
    assert store.get_current_package_hash() == "h1"


def test_malformed_status_blocks_install(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    store.status_path.write_text("[1, 2, 3]", encoding="utf-8")

    assert store.get_current_package_hash() is None
    with pytest.raises(InstallError):
        store.install_package("h1")


def test_status_file_records_both_pointers(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    store.install_package("h1")

    status = json.loads(store.status_path.read_text(encoding="utf-8"))
    assert status == {"current_package": "h1", "previous_package": None}


def test_reset_to_binary_and_clear_updates(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    store.install_package("h1")

    store.reset_to_binary()
    assert store.get_current_package_hash() is None

    store.clear_updates()
    assert not store.status_path.exists()
    assert not store.get_package_folder_path("h1").exists()


def test_undecodable_files_read_as_missing(store: UpdateStore, tmp_path: Path) -> None:
    _stage(store, tmp_path, "h1")
    store.install_package("h1")
    store.get_package_metadata_path("h1").write_bytes(b"\xff\xfe\x00garbage")

    with pytest.raises(MalformedDataError):
        store.get_package("h1")
    assert store.get_current_package() is None

    store.status_path.write_bytes(b"\xff\xfe\x00garbage")
    assert store.get_current_package_hash() is None
    with pytest.raises(RollbackError):
        store.rollback_package()


def test_hash_locks_are_released_after_use(store: UpdateStore, tmp_path: Path) -> None:
    for package_hash in ("h1", "h2"):
        _stage(store, tmp_path, package_hash)
        store.install_package(package_hash)

    gc.collect()
    assert len(store._hash_locks) == 0  # type: ignore[attr-defined]
