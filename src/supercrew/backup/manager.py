"""Tar archive snapshots of an installation directory."""

from __future__ import annotations

import io
import json
import logging
import os
import shutil
import tarfile
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Iterator, Optional

from pydantic import ValidationError

from supercrew.integrity import sha256_file
from supercrew.metadata import FRAMEWORK_VERSION, MetadataError, MetadataStore

from .errors import BackupError, BackupVerificationError, UnsafeArchiveError
from .models import BackupInfo, BackupMetadata, BackupOptions

LOGGER = logging.getLogger(__name__)

METADATA_MEMBER = "backup_metadata.json"
SIDECAR_SUFFIX = ".meta"
ARCHIVE_SUFFIXES = {"none": ".tar", "gzip": ".tar.gz", "bzip2": ".tar.bz2"}
_WRITE_MODES = {"none": "w", "gzip": "w:gz", "bzip2": "w:bz2"}
_RECOGNISED_SUFFIXES = (".tar", ".tar.gz", ".tar.bz2")
_FRAMEWORK_DOTDIRS = frozenset({".crew", ".claude"})
_SCRATCH_SUFFIXES = (".tmp", ".temp", ".backup", ".bak")


def sidecar_path(archive: Path) -> Path:
    """Return the ``.meta`` sidecar path for an archive."""
    return archive.with_name(archive.name + SIDECAR_SUFFIX)


def _is_within(path: Path, root: Path) -> bool:
    return path == root or root in path.parents


def _through_link(relative: str, links: set[str]) -> bool:
    """Return whether any parent of ``relative`` is one of ``links``."""
    parts = relative.split(os.sep)
    return any(os.sep.join(parts[:index]) in links for index in range(1, len(parts)))


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BackupManager:
    """Create, inspect, restore and prune archives of an installation."""

    def __init__(self, options: BackupOptions, *, logger: logging.Logger | None = None) -> None:
        """Initialize the manager.

        Args:
            options: Backup settings.
            logger: Optional logger; defaults to the module logger.
        """
        self._options = options
        self._install_dir = Path(options.install_dir).expanduser()
        self._backup_dir = Path(options.backup_dir).expanduser()
        self._logger = logger or LOGGER

    @property
    def options(self) -> BackupOptions:
        """Return the active backup options."""
        return self._options

    @property
    def backup_dir(self) -> Path:
        """Return the directory holding archives."""
        return self._backup_dir

    # Creation ---------------------------------------------------------

    def create(self) -> Path:
        """Write a new archive of the installation directory.

        Returns:
            Path: Location of the archive (the would-be location in dry-run mode).

        Raises:
            BackupError: If the installation directory is missing or any write fails.
        """
        now = datetime.now(timezone.utc)
        archive = self._next_archive_path(now)

        if self._options.dry_run:
            self._logger.info("Dry run: would create backup %s", archive)
            return archive

        if not self._install_dir.is_dir():
            raise BackupError(f"Installation directory not found: {self._install_dir}")

        try:
            self._backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise BackupError(
                f"Unable to create backup directory {self._backup_dir}: {exc}"
            ) from exc

        metadata = self._build_metadata(now)
        entries = 0
        try:
            with tarfile.open(archive, _WRITE_MODES[self._options.compress]) as tar:
                payload = json.dumps(metadata.model_dump(mode="json"), indent=2).encode("utf-8")
                member = tarfile.TarInfo(METADATA_MEMBER)
                member.size = len(payload)
                member.mtime = int(now.timestamp())
                member.mode = 0o644
                tar.addfile(member, io.BytesIO(payload))

                for full_path, arcname in self._iter_entries(archive):
                    tar.add(str(full_path), arcname=arcname, recursive=False)
                    entries += 1
                    if self._options.verbose:
                        self._logger.info("Archived %s", arcname)
        except (OSError, tarfile.TarError) as exc:
            raise BackupError(f"Failed to write backup archive {archive}: {exc}") from exc

        try:
            metadata.size = archive.stat().st_size
            metadata.checksum = sha256_file(archive)
            self._write_sidecar(archive, metadata)
        except OSError as exc:
            raise BackupError(f"Failed to record metadata for {archive}: {exc}") from exc

        self._logger.info("Created backup %s with %d entries", archive.name, entries)
        return archive

    def _next_archive_path(self, now: datetime) -> Path:
        stamp = now.astimezone().strftime("%Y%m%d_%H%M%S")
        stem = f"{self._options.backup_name}_{stamp}"
        description = self._options.description.strip()
        if description:
            stem = f"{stem}_{description.replace(' ', '_').replace('/', '_')}"
        suffix = ARCHIVE_SUFFIXES[self._options.compress]

        candidate = self._backup_dir / f"{stem}{suffix}"
        counter = 1
        while candidate.exists():
            candidate = self._backup_dir / f"{stem}-{counter}{suffix}"
            counter += 1
        return candidate

    def _build_metadata(self, now: datetime) -> BackupMetadata:
        components: dict[str, str] = {}
        framework_version = FRAMEWORK_VERSION
        try:
            current = MetadataStore(self._install_dir, logger=self._logger).load()
        except MetadataError as exc:
            self._logger.warning("Unable to read installation metadata: %s", exc)
        else:
            framework_version = current.framework.version or FRAMEWORK_VERSION
            components = {
                name: meta.version for name, meta in current.components.items() if meta.version
            }

        return BackupMetadata(
            created=now.astimezone().isoformat(timespec="seconds"),
            timestamp=now,
            install_dir=str(self._install_dir),
            components=components,
            framework_version=framework_version,
            description=self._options.description,
        )

    def _iter_entries(self, archive: Path) -> Iterator[tuple[Path, str]]:
        root = self._install_dir.resolve()
        skip = {archive.resolve(), sidecar_path(archive).resolve()}
        backup_root = self._backup_dir.resolve()

        for current, dirs, files in os.walk(root):
            current_path = Path(current)
            kept_dirs = []
            for name in sorted(dirs):
                full = current_path / name
                relative = PurePosixPath(full.relative_to(root).as_posix())
                if full.resolve() == backup_root or not self.should_include(relative, True):
                    continue
                if full.is_symlink():
                    if self._link_inside(full, root):
                        yield full, relative.as_posix()
                    continue
                kept_dirs.append(name)
                yield full, relative.as_posix()
            dirs[:] = kept_dirs

            for name in sorted(files):
                full = current_path / name
                relative = PurePosixPath(full.relative_to(root).as_posix())
                if full in skip or not self.should_include(relative, False):
                    continue
                if full.is_symlink():
                    if self._link_inside(full, root):
                        yield full, relative.as_posix()
                    continue
                if not full.is_file():
                    self._logger.warning("Skipping %s: not a regular file", full)
                    continue
                yield full, relative.as_posix()

    def _link_inside(self, link: Path, root: Path) -> bool:
        if _is_within(link.resolve(), root):
            return True
        self._logger.warning("Skipping %s: link points outside the installation", link)
        return False

    def should_include(self, relative: PurePosixPath, is_dir: bool) -> bool:
        """Return True when an install-relative path belongs in an archive.

        Args:
            relative: Path relative to the installation directory.
            is_dir: Whether the path is a directory.

        Returns:
            bool: Whether the entry is archived.
        """
        name = relative.name
        parts = relative.parts
        if name.startswith(".") and name not in _FRAMEWORK_DOTDIRS:
            return False
        if not self._options.include_logs:
            if name.endswith(".log") or "logs" in (parts if is_dir else parts[:-1]):
                return False
        if name.endswith(_SCRATCH_SUFFIXES):
            return False
        if "backups" in (parts if is_dir else parts[:-1]):
            return False
        if not self._options.include_config and parts[:2] == (".crew", "config"):
            return False
        return True

    # Restore ----------------------------------------------------------

    def restore(self, archive_path: Path) -> int:
        """Extract an archive into the installation directory.

        Args:
            archive_path: Archive to restore.

        Returns:
            int: Number of entries written (or that would be written in dry-run mode).

        Raises:
            BackupError: If the archive is missing or unreadable.
            BackupVerificationError: If the recorded size or checksum does not match.
            UnsafeArchiveError: If any member would land outside the installation.
        """
        archive = Path(archive_path).expanduser()
        if not archive.is_file():
            raise BackupError(f"Backup file not found: {archive}")

        metadata = self._load_metadata(archive)
        if metadata is not None and metadata.checksum:
            self._verify(archive, metadata)

        if not self._options.dry_run:
            try:
                self._install_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise BackupError(f"Unable to create {self._install_dir}: {exc}") from exc
        root = self._install_dir.resolve()

        try:
            with tarfile.open(archive, "r:*") as tar:
                plan = self._plan_restore(tar.getmembers(), root)
                if self._options.dry_run:
                    count = sum(1 for member, _ in plan if not member.isdir())
                    self._logger.info("Dry run: would restore %d entries from %s", count, archive)
                    return count
                restored = 0
                for member, target in plan:
                    if self._restore_member(tar, member, target, root):
                        restored += 1
        except (OSError, tarfile.TarError) as exc:
            raise BackupError(f"Failed to restore {archive}: {exc}") from exc

        self._logger.info("Restored %d entries from %s", restored, archive.name)
        return restored

    def _plan_restore(
        self, members: list[tarfile.TarInfo], root: Path
    ) -> list[tuple[tarfile.TarInfo, Path]]:
        plan: list[tuple[tarfile.TarInfo, Path]] = []
        # Links written earlier in this restore do not exist yet while planning.
        planned_links: set[str] = set()
        for member in members:
            if member.name == METADATA_MEMBER:
                continue
            if os.path.isabs(member.name):
                raise UnsafeArchiveError(f"Absolute path in archive: {member.name}")
            relative = os.path.normpath(member.name)
            if relative == ".." or relative.startswith("../"):
                raise UnsafeArchiveError(f"Path escapes installation directory: {member.name}")
            if _through_link(relative, planned_links) or (
                member.islnk() and _through_link(os.path.normpath(member.linkname), planned_links)
            ):
                raise UnsafeArchiveError(f"Path {member.name} passes through a link in the archive")
            # The final component is not resolved so existing links are replaced, not followed.
            candidate = root / relative
            target = candidate.parent.resolve() / candidate.name
            if not _is_within(target, root):
                raise UnsafeArchiveError(f"Path escapes installation directory: {member.name}")
            if member.issym():
                link_target = (target.parent / member.linkname).resolve()
                if os.path.isabs(member.linkname) or not _is_within(link_target, root):
                    raise UnsafeArchiveError(
                        f"Link {member.name} points outside installation: {member.linkname}"
                    )
                planned_links.add(relative)
            elif member.islnk():
                link_target = (root / member.linkname).resolve()
                if os.path.isabs(member.linkname) or not _is_within(link_target, root):
                    raise UnsafeArchiveError(
                        f"Link {member.name} points outside installation: {member.linkname}"
                    )
            elif not (member.isfile() or member.isdir()):
                self._logger.warning("Skipping %s: unsupported archive entry type", member.name)
                continue
            plan.append((member, target))
        return plan

    def _restore_member(
        self, tar: tarfile.TarFile, member: tarfile.TarInfo, target: Path, root: Path
    ) -> bool:
        if not _is_within(target.parent.resolve(), root):
            raise UnsafeArchiveError(f"Path escapes installation directory: {member.name}")
        if member.isdir():
            target.mkdir(parents=True, exist_ok=True)
            return False

        if target.exists() or target.is_symlink():
            if not self._options.overwrite:
                self._logger.info("Skipping existing file %s", member.name)
                return False
            if target.is_dir() and not target.is_symlink():
                self._logger.warning("Skipping %s: a directory exists at the target", member.name)
                return False
            target.unlink()

        target.parent.mkdir(parents=True, exist_ok=True)
        if member.issym():
            os.symlink(member.linkname, target)
        elif member.islnk():
            source = root / member.linkname
            if not source.is_file():
                self._logger.warning("Skipping %s: linked file %s missing", member.name, source)
                return False
            shutil.copyfile(source, target)
            os.chmod(target, member.mode & 0o7777)
            os.utime(target, (member.mtime, member.mtime))
        else:
            extracted = tar.extractfile(member)
            if extracted is None:
                return False
            with extracted, target.open("wb") as handle:
                shutil.copyfileobj(extracted, handle)
            os.chmod(target, member.mode & 0o7777)
            os.utime(target, (member.mtime, member.mtime))

        if self._options.verbose:
            self._logger.info("Restored %s", member.name)
        return True

    # Verification -----------------------------------------------------

    def verify(self, archive_path: Path) -> BackupMetadata:
        """Check an archive against its recorded size and checksum without extracting.

        Args:
            archive_path: Archive to verify.

        Returns:
            BackupMetadata: The metadata the archive was verified against.

        Raises:
            BackupError: If the archive does not exist.
            BackupVerificationError: If any check fails or no metadata is found.
        """
        archive = Path(archive_path).expanduser()
        if not archive.is_file():
            raise BackupError(f"Backup file not found: {archive}")
        metadata = self._load_metadata(archive)
        if metadata is None:
            raise BackupVerificationError(f"No backup metadata found for {archive}")
        self._verify(archive, metadata)
        return metadata

    def _verify(self, archive: Path, metadata: BackupMetadata) -> None:
        actual_size = archive.stat().st_size
        if metadata.size and metadata.size != actual_size:
            raise BackupVerificationError(
                f"Backup size mismatch: expected {metadata.size}, got {actual_size}"
            )
        if metadata.checksum:
            actual = sha256_file(archive)
            if actual != metadata.checksum:
                raise BackupVerificationError(
                    f"Backup checksum mismatch: expected {metadata.checksum}, got {actual}"
                )
        try:
            with tarfile.open(archive, "r:*") as tar:
                for _member in tar:
                    pass
        except (OSError, tarfile.TarError) as exc:
            raise BackupVerificationError(f"Backup archive is not readable: {exc}") from exc

    # Listing ----------------------------------------------------------

    def list_backups(self) -> list[BackupInfo]:
        """Return archives in the backup directory, newest first."""
        if not self._backup_dir.is_dir():
            return []
        infos = [
            self.get_backup_info(path)
            for path in self._backup_dir.iterdir()
            if path.is_file() and path.name.endswith(_RECOGNISED_SUFFIXES)
        ]
        oldest = datetime.min.replace(tzinfo=timezone.utc)
        infos.sort(key=lambda info: info.created or oldest, reverse=True)
        return infos

    def get_backup_info(self, archive_path: Path) -> BackupInfo:
        """Describe a single archive.

        Args:
            archive_path: Archive to inspect.

        Returns:
            BackupInfo: Details about the archive; ``error`` is set when it is unreadable.
        """
        archive = Path(archive_path).expanduser()
        info = BackupInfo(path=archive)
        try:
            stat = archive.stat()
        except OSError as exc:
            info.error = str(exc)
            return info

        info.exists = True
        info.size = stat.st_size
        info.created = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        info.metadata = self._load_metadata(archive)
        if info.metadata is not None:
            info.created = _aware(info.metadata.timestamp)

        try:
            info.file_count = self._count_files(archive)
        except (OSError, tarfile.TarError) as exc:
            info.error = str(exc)
        return info

    def _count_files(self, archive: Path) -> int:
        with tarfile.open(archive, "r:*") as tar:
            return sum(
                1 for member in tar if member.name != METADATA_MEMBER and not member.isdir()
            )

    # Cleanup ----------------------------------------------------------

    def cleanup(self, keep: int = -1, older_than_days: int = 0) -> int:
        """Remove old archives and their sidecars.

        Args:
            keep: Number of most recent archives to retain; negative disables the rule.
            older_than_days: Remove archives older than this many days; 0 disables the rule.

        Returns:
            int: Number of archives removed (or that would be removed in dry-run mode).
        """
        backups = self.list_backups()
        if not backups:
            return 0

        doomed: dict[Path, BackupInfo] = {}
        if older_than_days > 0:
            cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
            for info in backups:
                if info.created is not None and info.created < cutoff:
                    doomed.setdefault(info.path, info)
        if keep >= 0:
            for info in backups[keep:]:
                doomed.setdefault(info.path, info)

        if self._options.dry_run:
            for path in doomed:
                self._logger.info("Dry run: would remove backup %s", path.name)
            return len(doomed)

        removed = 0
        for path in doomed:
            try:
                path.unlink()
            except OSError as exc:
                self._logger.warning("Could not remove %s: %s", path, exc)
                continue
            removed += 1
            self._logger.info("Removed backup: %s", path.name)
            meta = sidecar_path(path)
            try:
                meta.unlink(missing_ok=True)
            except OSError as exc:
                self._logger.warning("Could not remove metadata %s: %s", meta, exc)
        return removed

    # Metadata helpers -------------------------------------------------

    def _write_sidecar(self, archive: Path, metadata: BackupMetadata) -> None:
        sidecar_path(archive).write_text(
            json.dumps(metadata.model_dump(mode="json"), indent=2), encoding="utf-8"
        )

    def _load_metadata(self, archive: Path) -> Optional[BackupMetadata]:
        sidecar = sidecar_path(archive)
        if sidecar.exists():
            try:
                return BackupMetadata.model_validate_json(sidecar.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as exc:
                self._logger.warning("Ignoring unreadable sidecar %s: %s", sidecar, exc)
        return self._read_embedded_metadata(archive)

    def _read_embedded_metadata(self, archive: Path) -> Optional[BackupMetadata]:
        try:
            with tarfile.open(archive, "r:*") as tar:
                for member in tar:
                    if member.name != METADATA_MEMBER:
                        continue
                    extracted = tar.extractfile(member)
                    if extracted is None:
                        return None
                    with extracted:
                        return BackupMetadata.model_validate_json(extracted.read())
        except (OSError, tarfile.TarError, ValidationError) as exc:
            self._logger.debug("No embedded metadata in %s: %s", archive, exc)
        return None


__all__ = ["BackupManager", "METADATA_MEMBER", "SIDECAR_SUFFIX", "ARCHIVE_SUFFIXES", "sidecar_path"]
