"""Unified metadata store tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from supercrew.integrity import sha256_file
from supercrew.metadata import (
    CHANGELOG_RELATIVE_PATH,
    DocumentVersionError,
    MetadataError,
    MetadataStore,
    MissingComponentError,
)


def _install(tmp_path: Path) -> Path:
    """Return an installation directory holding a couple of framework files.

    Args:
        tmp_path: Temporary directory provided by pytest.

    Returns:
        Path: The populated installation directory.
    """
    install_dir = tmp_path / "claude"
    (install_dir / "agents").mkdir(parents=True)
    (install_dir / "CLAUDE.md").write_text("# Claude\n", encoding="utf-8")
    (install_dir / "RULES.md").write_text("# Rules\n", encoding="utf-8")
    (install_dir / "agents" / "architect-persona.md").write_text("architect", encoding="utf-8")
    return install_dir


def test_load_without_document_returns_empty_record(tmp_path: Path) -> None:
    """Loading before any save yields a default record.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    store = MetadataStore(tmp_path)

    metadata = store.load()

    assert metadata.components == {}
    assert metadata.installation.install_dir == str(tmp_path)
    assert not store.check_installation_exists()


def test_load_rejects_corrupt_document(tmp_path: Path) -> None:
    """Unparsable metadata raises instead of being replaced.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    store = MetadataStore(tmp_path)
    store.metadata_path.parent.mkdir(parents=True)
    store.metadata_path.write_text("{not json", encoding="utf-8")

    with pytest.raises(MetadataError):
        store.load()


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    """Saved feature flags are read back unchanged.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    store = MetadataStore(tmp_path)
    store.set_feature_flag("second_opinion", True, "Ask a second agent")

    loaded = store.load()

    assert loaded.features["second_opinion"].enabled is True
    assert loaded.features["second_opinion"].description == "Ask a second agent"
    assert not list(store.metadata_path.parent.glob("*.tmp"))


def test_refresh_scans_components_and_documents(tmp_path: Path) -> None:
    """Refresh records present directories, documents and installation totals.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    store = MetadataStore(install_dir)

    metadata = store.refresh()

    assert metadata.components["core"].status == "installed"
    assert metadata.components["agents"].status == "installed"
    assert metadata.components["agents"].file_count == 1
    assert metadata.components["hooks"].status == "missing"
    assert metadata.documents["CLAUDE.md"].status == "present"
    assert metadata.documents["CLAUDE.md"].checksum == sha256_file(install_dir / "CLAUDE.md")
    assert metadata.documents["MODES.md"].status == "missing"
    assert metadata.documents["agents/architect-persona.md"].component == "agents"
    assert metadata.installation.total_files == sum(
        meta.file_count for meta in metadata.components.values()
    )


def test_refresh_preserves_document_versions(tmp_path: Path) -> None:
    """A refresh never resets versions assigned through update_document_version.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    store = MetadataStore(install_dir)
    store.refresh()
    store.update_document_version("RULES.md", "1.1.0", update_changelog=False)

    first = store.refresh()
    second = store.refresh()

    for metadata in (first, second):
        assert metadata.documents["RULES.md"].version == "1.1.0"
        assert metadata.documents["RULES.md"].previous_version == "1.0.0"
    assert first.documents["RULES.md"].updated_at == second.documents["RULES.md"].updated_at


def test_update_document_version_bumps_component_and_changelog(tmp_path: Path) -> None:
    """Bumping a core document bumps core and appends to the changelog.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    store = MetadataStore(install_dir)
    store.refresh()

    doc = store.update_document_version(install_dir / "CLAUDE.md", "1.1.0")
    store.update_document_version("CLAUDE.md", "1.2.0")

    assert doc.previous_version == "1.0.0"
    assert store.get_component_version("core") == "1.2.0"
    assert store.get_component_status("core").previous_version == "1.1.0"

    changelog = (install_dir / CHANGELOG_RELATIVE_PATH).read_text(encoding="utf-8")
    assert changelog.startswith("# Changelog")
    assert changelog.index("## 1.2.0") < changelog.index("## 1.1.0")
    assert "- CLAUDE.md: Version updated to 1.1.0" in changelog


def test_update_document_version_for_agent_leaves_component(tmp_path: Path) -> None:
    """Agent documents are versioned without touching their component.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    store = MetadataStore(install_dir)
    store.refresh()

    store.update_document_version("agents/architect-persona.md", "2.0.0", update_changelog=False)

    assert store.get_component_version("agents") is None
    assert not (install_dir / CHANGELOG_RELATIVE_PATH).exists()


@pytest.mark.parametrize(
    ("path", "version"),
    [("RULES.md", "1.1"), ("RULES.md", "1.0.0"), ("UNKNOWN.md", "1.2.0")],
)
def test_update_document_version_rejects_bad_requests(
    tmp_path: Path, path: str, version: str
) -> None:
    """Malformed, non-increasing and unknown document updates are refused.

    Args:
        tmp_path: Temporary directory provided by pytest.
        path: Document path passed to the update.
        version: Requested new version.
    """
    install_dir = _install(tmp_path)
    store = MetadataStore(install_dir)
    store.refresh()

    with pytest.raises(DocumentVersionError):
        store.update_document_version(path, version)


def test_inventory_tracks_unique_entries(tmp_path: Path) -> None:
    """Inventory entries are recorded once and relative to the install.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    store = MetadataStore(tmp_path)

    store.add_to_inventory(tmp_path / "agents", is_directory=True)
    store.add_to_inventory(tmp_path / "agents" / "a.md")
    store.add_to_inventory("agents/a.md")

    inventory = store.get_inventory()
    assert inventory.created_files == ["agents/a.md"]
    assert inventory.created_directories == ["agents"]
    assert inventory.total_created_files == 1

    store.remove_from_inventory(tmp_path / "agents" / "a.md")
    store.remove_from_inventory(tmp_path / "never-added.md")

    inventory = store.get_inventory()
    assert inventory.created_files == []
    assert inventory.total_created_dirs == 1


def test_record_component_install_summarizes_files(tmp_path: Path) -> None:
    """Recording an install stores file count, total size and a checksum.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    files = []
    for name in ("a.md", "b.md"):
        path = tmp_path / name
        path.write_text(name * 10, encoding="utf-8")
        files.append(path)
    store = MetadataStore(tmp_path)

    meta = store.record_component_install("agents", "1.0.1", files=files, dependencies=["core"])

    assert meta.status == "installed"
    assert meta.file_count == 2
    assert meta.size == sum(path.stat().st_size for path in files)
    assert meta.checksum is not None and len(meta.checksum) == 16
    assert store.get_component_status("agents").dependencies == ["core"]


def test_get_component_status_requires_record(tmp_path: Path) -> None:
    """Asking about an unrecorded component raises.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    with pytest.raises(MissingComponentError):
        MetadataStore(tmp_path).get_component_status("hooks")


def test_modified_file_is_logged_and_warned(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Editing a tracked file adds one log line naming both hash prefixes.

    Args:
        tmp_path: Temporary directory provided by pytest.
        caplog: Log capture fixture provided by pytest.
    """
    install_dir = _install(tmp_path)
    target = install_dir / "RULES.md"
    store = MetadataStore(install_dir)
    store.add_file_to_integrity_tracking(target, "core")
    original = sha256_file(target)

    target.write_text("# Rules, edited by hand\n", encoding="utf-8")
    current = sha256_file(target)
    with caplog.at_level(logging.WARNING, logger="supercrew"):
        result = store.check_file_integrity()

    record = result.file_hashes["RULES.md"]
    assert record.status == "modified"
    assert record.current_hash == current
    assert len(record.modification_log) == 2
    assert f"Original: {original[:8]}, Current: {current[:8]}" in record.modification_log[-1]
    assert result.status == "warning"
    assert result.modified_files == 1
    assert any("Integrity scan" in message for message in caplog.messages)


def test_integrity_missing_and_fix(tmp_path: Path) -> None:
    """Fixing drops modified files from tracking and keeps missing ones flagged.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install(tmp_path)
    store = MetadataStore(install_dir)
    store.add_file_to_integrity_tracking("RULES.md", "core")
    store.add_file_to_integrity_tracking("CLAUDE.md", "core")

    (install_dir / "RULES.md").unlink()
    (install_dir / "CLAUDE.md").write_text("changed", encoding="utf-8")
    result = store.check_file_integrity()

    assert result.missing_files == 1
    assert result.file_hashes["RULES.md"].modification_log[-1].endswith("File not found")

    dropped = store.fix_integrity_issues()

    assert dropped == ["CLAUDE.md"]
    status = store.get_integrity_status()
    assert set(status.file_hashes) == {"RULES.md"}
    assert status.status == "warning"


def test_add_file_to_integrity_tracking_requires_readable_file(tmp_path: Path) -> None:
    """Tracking a file that cannot be read raises.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    with pytest.raises(MetadataError):
        MetadataStore(tmp_path).add_file_to_integrity_tracking("missing.md", "core")


def test_delete_removes_document(tmp_path: Path) -> None:
    """Deleting the store removes the metadata file.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    store = MetadataStore(tmp_path)
    store.refresh()

    assert store.delete() is True
    assert store.delete() is False
