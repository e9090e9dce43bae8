"""Archive backup manager tests."""

from __future__ import annotations

import io
import json
import stat
import tarfile
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath

import pytest

from supercrew.backup import (
    METADATA_MEMBER,
    BackupError,
    BackupManager,
    BackupOptions,
    BackupVerificationError,
    UnsafeArchiveError,
    sidecar_path,
)
from supercrew.integrity import sha256_file
from supercrew.metadata import FRAMEWORK_VERSION, MetadataStore


def _install(tmp_path: Path) -> Path:
    """Return an installation directory with framework, user and scratch files.

    Args:
        tmp_path: Temporary directory provided by pytest.

    Returns:
        Path: The populated installation directory.
    """
    install_dir = tmp_path / "claude"
    (install_dir / "agents").mkdir(parents=True)
    (install_dir / "hooks").mkdir()
    (install_dir / ".crew" / "logs").mkdir(parents=True)
    (install_dir / "CLAUDE.md").write_text("# Claude\n", encoding="utf-8")
    (install_dir / "agents" / "architect-persona.md").write_text("architect", encoding="utf-8")
    hook = install_dir / "hooks" / "notify.sh"
    hook.write_text("#!/bin/sh\necho hi\n", encoding="utf-8")
    hook.chmod(0o755)
    (install_dir / ".DS_Store").write_bytes(b"\x00")
    (install_dir / ".crew" / "logs" / "crew.log").write_text("log line\n", encoding="utf-8")
    (install_dir / "notes.tmp").write_text("scratch", encoding="utf-8")
    MetadataStore(install_dir).refresh()
    return install_dir


def _manager(install_dir: Path, **overrides: object) -> BackupManager:
    options = {"install_dir": install_dir, "backup_dir": install_dir / ".crew" / "backups"}
    options.update(overrides)
    return BackupManager(BackupOptions(**options))


def _archive_names(archive: Path) -> set[str]:
    with tarfile.open(archive, "r:*") as tar:
        return set(tar.getnames())


def test_create_writes_archive_and_sidecar(tmp_path: Path) -> None:
    """Creating a backup writes a filtered archive and a matching sidecar.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    manager = _manager(install_dir, description="before update")

    archive = manager.create()

    assert archive.parent == install_dir / ".crew" / "backups"
    assert archive.name.startswith("crew_backup_")
    assert archive.name.endswith("_before_update.tar.gz")
    metadata = json.loads(sidecar_path(archive).read_text(encoding="utf-8"))
    assert metadata["checksum"] == sha256_file(archive)
    assert metadata["size"] == archive.stat().st_size
    assert metadata["description"] == "before update"
    assert metadata["framework_version"] == FRAMEWORK_VERSION

    names = _archive_names(archive)
    assert METADATA_MEMBER in names
    assert "CLAUDE.md" in names
    assert "hooks/notify.sh" in names
    assert ".crew/config/crew-metadata.json" in names
    assert ".DS_Store" not in names
    assert "notes.tmp" not in names
    assert ".crew/logs/crew.log" not in names
    assert not any(name.startswith(".crew/backups") for name in names)


def test_embedded_metadata_leaves_checksum_empty(tmp_path: Path) -> None:
    """The sidecar is authoritative; the in-archive copy is written before hashing.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    archive = _manager(install_dir).create()

    with tarfile.open(archive, "r:*") as tar:
        first = tar.next()
        assert first is not None and first.name == METADATA_MEMBER
        extracted = tar.extractfile(first)
        assert extracted is not None
        embedded = json.loads(extracted.read())

    assert embedded["checksum"] == ""
    assert embedded["size"] == 0
    assert embedded["install_dir"] == str(install_dir)


def test_backup_restore_round_trip(tmp_path: Path) -> None:
    """Restoring into an empty directory reproduces contents and modes.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    archive = _manager(install_dir, compress="bzip2").create()
    restore_dir = tmp_path / "restored"

    restored = _manager(restore_dir, backup_dir=archive.parent).restore(archive)

    assert restored > 0
    for relative in ("CLAUDE.md", "agents/architect-persona.md", "hooks/notify.sh"):
        assert (restore_dir / relative).read_bytes() == (install_dir / relative).read_bytes()
    assert stat.S_IMODE((restore_dir / "hooks" / "notify.sh").stat().st_mode) == 0o755
    assert not (restore_dir / ".DS_Store").exists()
    assert not (restore_dir / METADATA_MEMBER).exists()


def test_restore_skips_existing_files_unless_overwrite(tmp_path: Path) -> None:
    """Existing files survive a restore unless overwrite is requested.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    archive = _manager(install_dir, compress="none").create()
    (install_dir / "CLAUDE.md").write_text("local edits\n", encoding="utf-8")

    _manager(install_dir).restore(archive)
    assert (install_dir / "CLAUDE.md").read_text(encoding="utf-8") == "local edits\n"

    _manager(install_dir, overwrite=True).restore(archive)
    assert (install_dir / "CLAUDE.md").read_text(encoding="utf-8") == "# Claude\n"


def test_tampered_archive_fails_verification(tmp_path: Path) -> None:
    """Appended bytes break verification and block a restore.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    manager = _manager(install_dir)
    archive = manager.create()
    assert manager.verify(archive).checksum == sha256_file(archive)

    with archive.open("ab") as handle:
        handle.write(b"tampered")

    with pytest.raises(BackupVerificationError):
        manager.verify(archive)
    with pytest.raises(BackupVerificationError):
        _manager(tmp_path / "elsewhere").restore(archive)
    assert not (tmp_path / "elsewhere" / "CLAUDE.md").exists()


def test_same_size_tamper_is_detected_by_checksum(tmp_path: Path) -> None:
    """A flipped byte keeps the size but fails the checksum.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    manager = _manager(install_dir, compress="none")
    archive = manager.create()

    data = bytearray(archive.read_bytes())
    data[-1] ^= 0xFF
    archive.write_bytes(bytes(data))

    with pytest.raises(BackupVerificationError, match="checksum"):
        manager.verify(archive)


def _crafted_archive(path: Path, member: tarfile.TarInfo, payload: bytes = b"") -> Path:
    with tarfile.open(path, "w") as tar:
        member.size = len(payload) if member.isfile() else 0
        tar.addfile(member, io.BytesIO(payload) if member.isfile() else None)
    return path


@pytest.mark.parametrize(
    "member",
    [
        tarfile.TarInfo("../evil.txt"),
        tarfile.TarInfo("agents/../../evil.txt"),
        tarfile.TarInfo("/tmp/evil.txt"),
    ],
    ids=["parent", "nested-parent", "absolute"],
)
def test_restore_rejects_paths_outside_install_dir(
    tmp_path: Path, member: tarfile.TarInfo
) -> None:
    """Members that resolve outside the install directory are refused.

    Args:
        tmp_path: Temporary directory provided by pytest.
        member: Crafted archive member with an unsafe name.
    """
    archive = _crafted_archive(tmp_path / "crafted.tar", member, b"owned")
    install_dir = tmp_path / "install"

    with pytest.raises(UnsafeArchiveError):
        _manager(install_dir).restore(archive)

    assert not (tmp_path / "evil.txt").exists()


def test_restore_rejects_symlink_escaping_install_dir(tmp_path: Path) -> None:
    """Symlinks pointing outside the install directory are refused.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    link = tarfile.TarInfo("agents/passwd")
    link.type = tarfile.SYMTYPE
    link.linkname = "../../outside/passwd"
    archive = _crafted_archive(tmp_path / "link.tar", link)

    with pytest.raises(UnsafeArchiveError):
        _manager(tmp_path / "install").restore(archive)

    assert not (tmp_path / "install" / "agents" / "passwd").exists()


def test_restore_rejects_paths_through_archived_links(tmp_path: Path) -> None:
    """Links created by earlier members cannot redirect later writes.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    first = tarfile.TarInfo("l1")
    first.type = tarfile.SYMTYPE
    first.linkname = "."
    second = tarfile.TarInfo("l1/l2")
    second.type = tarfile.SYMTYPE
    second.linkname = ".."
    payload = b"owned"
    escaped = tarfile.TarInfo("l1/l2/escaped.txt")
    escaped.size = len(payload)
    archive = tmp_path / "chain.tar"
    with tarfile.open(archive, "w") as tar:
        tar.addfile(first)
        tar.addfile(second)
        tar.addfile(escaped, io.BytesIO(payload))
    install_dir = tmp_path / "install"

    with pytest.raises(UnsafeArchiveError):
        _manager(install_dir).restore(archive)
    with pytest.raises(UnsafeArchiveError):
        _manager(install_dir, dry_run=True).restore(archive)

    assert not (tmp_path / "escaped.txt").exists()
    assert not (install_dir / "l1").is_symlink()


def test_restore_missing_archive_raises(tmp_path: Path) -> None:
    """Restoring an absent archive raises a backup error.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    with pytest.raises(BackupError, match="not found"):
        _manager(tmp_path).restore(tmp_path / "absent.tar.gz")


def test_create_requires_install_dir(tmp_path: Path) -> None:
    """Backing up a missing installation raises a backup error.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    with pytest.raises(BackupError):
        _manager(tmp_path / "missing", backup_dir=tmp_path / "backups").create()


def test_dry_run_writes_nothing(tmp_path: Path) -> None:
    """A dry run names the archive without creating it.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    manager = _manager(install_dir, dry_run=True)

    archive = manager.create()

    assert archive.name.endswith(".tar.gz")
    assert not archive.exists()
    assert not manager.backup_dir.exists()


def _backdate(archive: Path, days: int) -> None:
    sidecar = sidecar_path(archive)
    data = json.loads(sidecar.read_text(encoding="utf-8"))
    data["timestamp"] = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
    sidecar.write_text(json.dumps(data), encoding="utf-8")


def test_cleanup_applies_age_and_count_rules(tmp_path: Path) -> None:
    """Age and count rules each prune archives along with their sidecars.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    manager = _manager(install_dir)
    archives = [manager.create() for _ in range(3)]
    assert len(set(archives)) == 3
    for archive, days in zip(archives, (10, 5, 1)):
        _backdate(archive, days)

    listed = manager.list_backups()
    assert [info.path for info in listed] == list(reversed(archives))

    assert manager.cleanup(older_than_days=7) == 1
    assert not archives[0].exists()
    assert not sidecar_path(archives[0]).exists()

    assert manager.cleanup(keep=1) == 1
    assert [info.path for info in manager.list_backups()] == [archives[2]]


def test_cleanup_dry_run_keeps_archives(tmp_path: Path) -> None:
    """Dry-run cleanup counts archives without deleting them.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    archives = [_manager(install_dir).create() for _ in range(2)]

    assert _manager(install_dir, dry_run=True).cleanup(keep=0) == 2
    assert all(archive.exists() for archive in archives)


def test_get_backup_info_counts_files(tmp_path: Path) -> None:
    """Backup info counts archived files excluding the embedded metadata.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    manager = _manager(install_dir)
    archive = manager.create()

    info = manager.get_backup_info(archive)

    assert info.exists
    assert info.metadata is not None
    assert info.file_count == 4
    assert info.to_payload()["file_count"] == 4


@pytest.mark.parametrize(
    ("relative", "is_dir", "expected"),
    [
        ("CLAUDE.md", False, True),
        (".crew", True, True),
        (".git", True, False),
        (".crew/logs", True, False),
        ("debug.log", False, False),
        ("agents/old.bak", False, False),
        ("agents/backups", True, False),
        (".crew/config/installation.json", False, True),
    ],
)
def test_should_include_filters(
    tmp_path: Path, relative: str, is_dir: bool, expected: bool
) -> None:
    """Exclusion rules decide which paths enter an archive.

    Args:
        tmp_path: Temporary directory provided by pytest.
        relative: Path relative to the install directory.
        is_dir: Whether the path names a directory.
        expected: Whether the path should be archived.
    """
    manager = _manager(tmp_path)

    assert manager.should_include(PurePosixPath(relative), is_dir) is expected


def test_should_include_can_skip_config(tmp_path: Path) -> None:
    """Turning off config inclusion drops only the config directory.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    manager = _manager(tmp_path, include_config=False)

    assert not manager.should_include(PurePosixPath(".crew/config/crew-metadata.json"), False)
    assert manager.should_include(PurePosixPath(".crew/workflows/a.md"), False)
