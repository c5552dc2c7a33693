from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from bundle_ota.domain.errors import BundleReplaceError
from bundle_ota.usecases import replace_bundle
from bundle_ota.usecases.replace_bundle import BundleReplacer, ReplaceState


def _make_tree(root: Path, files: Dict[str, str]) -> Path:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def _read_tree(root: Path) -> Dict[str, str]:
    return {
        path.relative_to(root).as_posix(): path.read_text(encoding="utf-8")
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture()
def bundle(tmp_path: Path) -> Path:
    return _make_tree(
        tmp_path / "app" / "bundle",
        {"index.html": "v1", "js/app.js": "old()", "stale.txt": "remove me"},
    )


def test_backup_round_trip_restores_exact_tree(bundle: Path) -> None:
    replacer = BundleReplacer(bundle, platform="linux64")
    before = _read_tree(bundle)

    backup = replacer.create_backup()
    (bundle / "index.html").write_text("corrupted", encoding="utf-8")
    (bundle / "extra.txt").write_text("new", encoding="utf-8")
    replacer.restore(backup)

    assert backup is not None
    assert backup.name.startswith("bundle.backup.")
    assert _read_tree(bundle) == before


def test_create_backup_without_bundle_returns_none(tmp_path: Path) -> None:
    assert BundleReplacer(tmp_path / "missing", platform="win").create_backup() is None


def test_replace_installs_new_content_and_keeps_backup(bundle: Path, tmp_path: Path) -> None:
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2", "js/app.js": "new()"})
    replacer = BundleReplacer(bundle, platform="linux64")

    replacer.replace(new_content)

    assert _read_tree(bundle) == {"index.html": "v2", "js/app.js": "new()"}
    assert replacer.state is ReplaceState.DONE
    backups = replacer.list_backups()
    assert len(backups) == 1
    assert _read_tree(backups[0])["index.html"] == "v1"


def test_replace_without_backup_takes_no_snapshot(bundle: Path, tmp_path: Path) -> None:
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2"})
    replacer = BundleReplacer(bundle, backup=False, platform="linux64")

    replacer.replace(new_content)

    assert _read_tree(bundle) == {"index.html": "v2"}
    assert replacer.list_backups() == []


def test_replace_creates_missing_bundle(tmp_path: Path) -> None:
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v1"})
    target = tmp_path / "fresh" / "bundle"

    BundleReplacer(target, platform="mac").replace(new_content)

    assert _read_tree(target) == {"index.html": "v1"}


def test_failed_replace_rolls_back_and_deletes_backup(bundle: Path, tmp_path: Path) -> None:
    replacer = BundleReplacer(bundle, platform="linux64")
    before = _read_tree(bundle)

    with pytest.raises(BundleReplaceError) as excinfo:
        replacer.replace(tmp_path / "does-not-exist")

    err = excinfo.value
    assert err.code == "bundle.replace_failed"
    assert err.rollback_attempted is True
    assert err.rollback_succeeded is True
    assert "Backup restored" in err.message
    assert isinstance(err.original, FileNotFoundError)
    assert _read_tree(bundle) == before
    assert replacer.list_backups() == []
    assert replacer.state is ReplaceState.FAILED


def test_failed_replace_without_backup_reports_no_rollback(bundle: Path, tmp_path: Path) -> None:
    replacer = BundleReplacer(bundle, backup=False, platform="linux64")

    with pytest.raises(BundleReplaceError) as excinfo:
        replacer.replace(tmp_path / "does-not-exist")

    assert excinfo.value.rollback_attempted is False
    assert excinfo.value.code == "bundle.replace_failed"


def test_failed_rollback_keeps_backup_on_disk(
    monkeypatch: pytest.MonkeyPatch, bundle: Path, tmp_path: Path
) -> None:
    replacer = BundleReplacer(bundle, platform="linux64")

    def broken_restore(backup_path: Path) -> None:
        raise PermissionError("restore denied")

    monkeypatch.setattr(replacer, "restore", broken_restore)

    with pytest.raises(BundleReplaceError) as excinfo:
        replacer.replace(tmp_path / "does-not-exist")

    err = excinfo.value
    assert err.rollback_attempted is True
    assert err.rollback_succeeded is False
    assert "Rollback failed" in err.message
    assert err.backup_path is not None and err.backup_path.is_dir()


def test_backup_failure_leaves_bundle_untouched(
    monkeypatch: pytest.MonkeyPatch, bundle: Path, tmp_path: Path
) -> None:
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2"})
    before = _read_tree(bundle)

    def no_space(source: Path, destination: Path) -> None:
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(replace_bundle, "copy_recursive", no_space)
    replacer = BundleReplacer(bundle, platform="linux64")

    with pytest.raises(BundleReplaceError) as excinfo:
        replacer.replace(new_content)

    assert excinfo.value.code == "bundle.backup_failed"
    assert _read_tree(bundle) == before
    assert replacer.state is ReplaceState.FAILED


def test_locked_bundle_directory_is_cleared_not_removed(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    bundle = _make_tree(tmp_path / "package.nw", {"index.html": "v1"})
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2"})
    removed: List[Path] = []
    real_remove = replace_bundle.remove_recursive

    def spy_remove(path, *args, **kwargs):
        removed.append(Path(path))
        return real_remove(path, *args, **kwargs)

    monkeypatch.setattr(replace_bundle, "remove_recursive", spy_remove)

    BundleReplacer(bundle, backup=False, platform="win").replace(new_content)

    assert bundle.absolute() not in removed
    assert _read_tree(bundle) == {"index.html": "v2"}


def test_same_directory_is_removed_on_other_platforms(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    bundle = _make_tree(tmp_path / "package.nw", {"index.html": "v1"})
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2"})
    removed: List[Path] = []
    real_remove = replace_bundle.remove_recursive

    def spy_remove(path, *args, **kwargs):
        removed.append(Path(path))
        return real_remove(path, *args, **kwargs)

    monkeypatch.setattr(replace_bundle, "remove_recursive", spy_remove)

    BundleReplacer(bundle, backup=False, platform="mac").replace(new_content)

    assert bundle.absolute() in removed


def test_list_and_prune_backups_oldest_first(tmp_path: Path) -> None:
    bundle = _make_tree(tmp_path / "bundle", {"index.html": "v1"})
    for name in ("bundle.backup.300", "bundle.backup.100", "bundle.backup.300-1", "bundle.backup.200"):
        (tmp_path / name).mkdir()
    (tmp_path / "bundle.backup.junk").mkdir()
    replacer = BundleReplacer(bundle, platform="linux64")

    names = [path.name for path in replacer.list_backups()]
    removed = replacer.prune_backups(2)

    assert names == ["bundle.backup.100", "bundle.backup.200", "bundle.backup.300", "bundle.backup.300-1"]
    assert [path.name for path in removed] == ["bundle.backup.100", "bundle.backup.200"]
    assert [path.name for path in replacer.list_backups()] == ["bundle.backup.300", "bundle.backup.300-1"]
    assert (tmp_path / "bundle.backup.junk").is_dir()


def test_keep_backups_prunes_after_successful_swap(bundle: Path, tmp_path: Path) -> None:
    replacer = BundleReplacer(bundle, platform="linux64", keep_backups=1)

    replacer.replace(_make_tree(tmp_path / "v2", {"index.html": "v2"}))
    replacer.replace(_make_tree(tmp_path / "v3", {"index.html": "v3"}))

    backups = replacer.list_backups()
    assert len(backups) == 1
    assert _read_tree(backups[0]) == {"index.html": "v2"}


def test_non_os_error_during_install_still_rolls_back(
    monkeypatch: pytest.MonkeyPatch, bundle: Path, tmp_path: Path
) -> None:
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2"})
    before = _read_tree(bundle)
    real_copy = replace_bundle.copy_recursive

    def deep_tree_copy(source: Path, destination: Path) -> None:
        if Path(source) == new_content:
            (Path(destination) / "half.js").write_text("partial", encoding="utf-8")
            raise RecursionError("maximum recursion depth exceeded")
        real_copy(source, destination)

    monkeypatch.setattr(replace_bundle, "copy_recursive", deep_tree_copy)
    replacer = BundleReplacer(bundle, platform="linux64")

    with pytest.raises(BundleReplaceError) as excinfo:
        replacer.replace(new_content)

    err = excinfo.value
    assert err.rollback_attempted is True
    assert err.rollback_succeeded is True
    assert isinstance(err.original, RecursionError)
    assert _read_tree(bundle) == before
    assert replacer.state is ReplaceState.FAILED


def test_partial_backup_is_removed_when_backup_fails(
    monkeypatch: pytest.MonkeyPatch, bundle: Path, tmp_path: Path
) -> None:
    new_content = _make_tree(tmp_path / "incoming", {"index.html": "v2"})

    def disk_full_midway(source: Path, destination: Path) -> None:
        _make_tree(Path(destination), {"index.html": "v1"})
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(replace_bundle, "copy_recursive", disk_full_midway)
    replacer = BundleReplacer(bundle, platform="linux64")

    with pytest.raises(BundleReplaceError) as excinfo:
        replacer.replace(new_content)

    assert excinfo.value.code == "bundle.backup_failed"
    assert replacer.list_backups() == []
    assert [p.name for p in bundle.parent.iterdir()] == ["bundle"]


def test_list_backups_ignores_non_ascii_digit_suffixes(bundle: Path) -> None:
    (bundle.parent / "bundle.backup.²").mkdir()
    (bundle.parent / "bundle.backup.100").mkdir()

    names = [path.name for path in BundleReplacer(bundle, platform="linux64").list_backups()]

    assert names == ["bundle.backup.100"]
