"""Component lifecycle tests."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from supercrew.components import (
    AgentsComponent,
    CommandsComponent,
    CoreComponent,
    HooksComponent,
    PrerequisiteError,
    SecurityValidator,
    SettingsManager,
)
from supercrew.components.core import SKELETON_DIRS
from supercrew.components.files import FRAMEWORK_SEPARATOR, merge_framework_content
from supercrew.metadata import MetadataStore


def _templates(tmp_path: Path) -> Path:
    """Return a template root with a few files per component.

    Args:
        tmp_path: Temporary directory provided by pytest.

    Returns:
        Path: Directory holding ``Core``, ``agents``, ``Commands`` and ``hooks``.
    """
    root = tmp_path / "templates"
    files = {
        "Core/CLAUDE.md": "framework instructions\n",
        "Core/RULES.md": "rules\n",
        "Core/README.md": "not installed\n",
        "agents/architect-persona.md": "architect\n",
        "agents/frontend-persona.md": "frontend\n",
        "agents/orchestrator-agent.md": "orchestrator\n",
        "Commands/analyze.md": "analyze\n",
        "Commands/README.md": "not installed\n",
        "Commands/helper.sh": "#!/bin/sh\n",
        "hooks/lint-on-save.sh": "#!/bin/sh\nruff\n",
    }
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


def _security(tmp_path: Path) -> SecurityValidator:
    return SecurityValidator(home=tmp_path)


def _install_dir(tmp_path: Path, *, with_core: bool = True) -> Path:
    install_dir = tmp_path / "claude"
    install_dir.mkdir()
    if with_core:
        (install_dir / "CLAUDE.md").write_text("core present\n", encoding="utf-8")
    return install_dir


def test_agents_install_records_metadata(tmp_path: Path) -> None:
    """Installing three agent files marks the component installed with three files.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path)
    agents = AgentsComponent(templates / "agents", security=_security(tmp_path))

    installed = agents.install(install_dir)

    assert len(installed) == 3
    assert agents.is_installed(install_dir)
    assert agents.list_installed_agents(install_dir) == [
        "architect-persona.md",
        "frontend-persona.md",
        "orchestrator-agent.md",
    ]
    assert agents.get_agent_count(install_dir) == 3
    assert agents.get_installed_version(install_dir) == "1.0.1"

    store = MetadataStore(install_dir)
    meta = store.get_component_status("agents")
    assert meta.status == "installed"
    assert meta.file_count == 3
    assert meta.dependencies == ["core"]
    assert "agents/frontend-persona.md" in store.get_inventory().created_files
    assert "agents" in store.get_inventory().created_directories
    assert store.get_integrity_status().file_hashes["agents/frontend-persona.md"].component == (
        "agents"
    )
    assert SettingsManager(install_dir).get_installed_components() == {"agents": "1.0.1"}


def test_missing_dependency_blocks_install(tmp_path: Path) -> None:
    """Agents refuse to install before core and leave no trace.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path, with_core=False)
    agents = AgentsComponent(templates / "agents", security=_security(tmp_path))

    with pytest.raises(PrerequisiteError) as excinfo:
        agents.install(install_dir)

    assert excinfo.value.component == "agents"
    assert any("Core component must be installed" in reason for reason in excinfo.value.reasons)
    assert not (install_dir / "agents").exists()
    assert not MetadataStore(install_dir).check_installation_exists()


def test_missing_source_directory_is_reported(tmp_path: Path) -> None:
    """A missing template directory fails the prerequisite check.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    install_dir = _install_dir(tmp_path)
    hooks = HooksComponent(tmp_path / "nowhere", security=_security(tmp_path))

    ok, errors = hooks.validate_prerequisites(install_dir)

    assert not ok
    assert any("Source directory not found" in error for error in errors)


def test_uninstall_is_idempotent_and_keeps_user_files(tmp_path: Path) -> None:
    """Uninstall removes only framework files and is safe to repeat.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path)
    agents = AgentsComponent(templates / "agents", security=_security(tmp_path))
    agents.install(install_dir)
    custom = install_dir / "agents" / "my-own-agent.md"
    custom.write_text("mine\n", encoding="utf-8")

    assert agents.uninstall(install_dir) == 3
    assert agents.uninstall(install_dir) == 0

    assert custom.exists()
    assert not agents.is_installed(install_dir)
    assert agents.list_installed_agents(install_dir) == ["my-own-agent.md"]
    assert agents.get_installed_version(install_dir) is None
    store = MetadataStore(install_dir)
    assert "agents" not in store.load().components
    assert store.get_inventory().created_files == []


def test_core_install_merges_existing_claude_file(tmp_path: Path) -> None:
    """A user's CLAUDE.md keeps its content above the framework separator.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path, with_core=False)
    (install_dir / "CLAUDE.md").write_text("my notes\n", encoding="utf-8")
    core = CoreComponent(templates / "Core", security=_security(tmp_path))

    core.install(install_dir)
    first = (install_dir / "CLAUDE.md").read_text(encoding="utf-8")
    core.install(install_dir)
    second = (install_dir / "CLAUDE.md").read_text(encoding="utf-8")

    assert first == "my notes\n" + FRAMEWORK_SEPARATOR + "framework instructions\n"
    assert second == first
    assert (install_dir / "RULES.md").exists()
    assert not (install_dir / "README.md").exists()
    assert (install_dir / "agents" / "orchestrator-agent.md").exists()
    for relative in SKELETON_DIRS:
        assert (install_dir / relative).is_dir()
    assert core.installation_validator is not None
    assert core.installation_validator(install_dir) == (True, [])


@pytest.mark.parametrize(
    ("option", "expected"),
    [("claude_skip", "my notes\n"), ("claude_overwrite", "framework instructions\n")],
)
def test_core_claude_options(tmp_path: Path, option: str, expected: str) -> None:
    """CLAUDE.md options either keep the user's file or replace it.

    Args:
        tmp_path: Temporary directory provided by pytest.
        option: Install option enabled for the run.
        expected: CLAUDE.md contents after the install.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path, with_core=False)
    (install_dir / "CLAUDE.md").write_text("my notes\n", encoding="utf-8")
    core = CoreComponent(templates / "Core", security=_security(tmp_path))

    core.install(install_dir, {option: True})

    assert (install_dir / "CLAUDE.md").read_text(encoding="utf-8") == expected


def test_merge_framework_content_is_idempotent() -> None:
    """Re-merging replaces the framework block and keeps user text."""
    merged = merge_framework_content("user\n", "framework v1\n")

    assert merge_framework_content(merged, "framework v2\n") == (
        "user\n" + FRAMEWORK_SEPARATOR + "framework v2\n"
    )


def test_commands_install_skips_readme_and_marks_scripts_executable(tmp_path: Path) -> None:
    """Command installs skip READMEs and make scripts executable.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path)
    commands = CommandsComponent(templates / "Commands", security=_security(tmp_path))

    installed = commands.install(install_dir)

    target = install_dir / "commands" / "crew"
    assert sorted(path.name for path in installed) == ["analyze.md", "helper.sh"]
    assert not (target / "README.md").exists()
    assert stat.S_IMODE((target / "helper.sh").stat().st_mode) == 0o755
    assert stat.S_IMODE((target / "analyze.md").stat().st_mode) == 0o644
    assert commands.is_installed(install_dir)


def test_update_backs_up_previous_files(tmp_path: Path) -> None:
    """Updating copies the previous files into a versioned backup first.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path)
    hooks = HooksComponent(templates / "hooks", security=_security(tmp_path))
    hooks.install(install_dir)
    (install_dir / "hooks" / "lint-on-save.sh").write_text("#!/bin/sh\nlocal\n", encoding="utf-8")

    hooks.update(install_dir)

    backup = install_dir / ".crew" / "backups" / "hooks-backup-1.0.0" / "hooks" / "lint-on-save.sh"
    assert backup.read_text(encoding="utf-8") == "#!/bin/sh\nlocal\n"
    assert (install_dir / "hooks" / "lint-on-save.sh").read_text(encoding="utf-8") == (
        "#!/bin/sh\nruff\n"
    )


def test_update_strategy_follows_installed_version(tmp_path: Path) -> None:
    """The update strategy compares installed and shipped versions.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    install_dir = _install_dir(tmp_path)
    hooks = HooksComponent(templates / "hooks", security=_security(tmp_path))

    assert hooks.get_update_strategy(install_dir) == "install"

    SettingsManager(install_dir).update_component_version("hooks", "0.9.0")
    assert hooks.get_update_strategy(install_dir) == "update"
    assert hooks.requires_update(install_dir)

    SettingsManager(install_dir).update_component_version("hooks", "2.0.0")
    assert hooks.get_update_strategy(install_dir) == "downgrade"

    hooks.install(install_dir)
    assert hooks.get_update_strategy(install_dir) == "current"
    assert hooks.installation_validator is None


def test_size_estimate_sums_template_files(tmp_path: Path) -> None:
    """The size estimate is the total size of the template files.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    templates = _templates(tmp_path)
    agents = AgentsComponent(templates / "agents")

    expected = sum(path.stat().st_size for path in (templates / "agents").iterdir())
    assert agents.get_size_estimate() == expected


def test_security_validator_rejects_system_and_suspicious_paths(tmp_path: Path) -> None:
    """System locations and unsafe file names are rejected.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    validator = SecurityValidator(home=tmp_path)

    assert validator.validate_installation_target(tmp_path / "claude") == (True, [])
    assert not validator.validate_installation_target("/etc/claude")[0]
    assert not validator.validate_installation_target("/")[0]
    assert validator.validate_file_name("a;rm.md") is not None
    assert validator.validate_file_name("../up.md") is not None
    assert validator.validate_file_name("fine-name.md") is None
