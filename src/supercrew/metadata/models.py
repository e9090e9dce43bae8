"""Unified metadata models persisted for an installation."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from supercrew.integrity import IntegrityStatus, OverallStatus

ComponentStatus = Literal["installed", "missing", "corrupted", "outdated"]
DocumentStatus = Literal["present", "missing", "modified"]

DEFAULT_VERSION = "1.0.0"
FRAMEWORK_VERSION = "1.0.0"
INSTALLER_VERSION = "1.0.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FrameworkMeta(BaseModel):
    """Framework-level version information."""

    version: str = FRAMEWORK_VERSION
    release_date: str = Field(default_factory=lambda: _utcnow().strftime("%Y-%m-%d"))
    updated_at: datetime = Field(default_factory=_utcnow)
    previous_version: str = ""
    build_hash: Optional[str] = None


class ComponentMeta(BaseModel):
    """Version and status tracking for a single component."""

    version: str = ""
    previous_version: Optional[str] = None
    status: ComponentStatus = "missing"
    dependencies: List[str] = Field(default_factory=list)
    size: int = 0
    file_count: int = 0
    checksum: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class DocumentMeta(BaseModel):
    """Version tracking for an individual markdown document."""

    version: str = DEFAULT_VERSION
    previous_version: Optional[str] = None
    checksum: str = ""
    size: int = 0
    status: DocumentStatus = "missing"
    component: str = ""
    updated_at: datetime = Field(default_factory=_utcnow)


class FeatureMeta(BaseModel):
    """Feature flag state."""

    enabled: bool = False
    version: Optional[str] = None
    description: Optional[str] = None
    flags: List[str] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=_utcnow)


class InstallationMeta(BaseModel):
    """Installation-wide bookkeeping."""

    install_dir: str = ""
    installed_at: datetime = Field(default_factory=_utcnow)
    last_updated: datetime = Field(default_factory=_utcnow)
    installer_version: str = INSTALLER_VERSION
    total_size: int = 0
    total_files: int = 0


class InventoryMeta(BaseModel):
    """Files and directories created by the installer, relative to the install dir."""

    created_files: List[str] = Field(default_factory=list)
    created_directories: List[str] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=_utcnow)
    total_created_files: int = 0
    total_created_dirs: int = 0


class FileIntegrityMeta(BaseModel):
    """Integrity record for one tracked file."""

    original_hash: str
    current_hash: str = ""
    last_checked: datetime = Field(default_factory=_utcnow)
    status: IntegrityStatus = "clean"
    component: str = ""
    file_path: str
    modification_log: List[str] = Field(default_factory=list)


class IntegrityMeta(BaseModel):
    """Aggregate integrity tracking for an installation."""

    file_hashes: Dict[str, FileIntegrityMeta] = Field(default_factory=dict)
    last_scan: datetime = Field(default_factory=_utcnow)
    total_files: int = 0
    clean_files: int = 0
    modified_files: int = 0
    missing_files: int = 0
    corrupted_files: int = 0
    status: OverallStatus = "clean"


class UnifiedMetadata(BaseModel):
    """Single metadata document describing an installation."""

    framework: FrameworkMeta = Field(default_factory=FrameworkMeta)
    components: Dict[str, ComponentMeta] = Field(default_factory=dict)
    documents: Dict[str, DocumentMeta] = Field(default_factory=dict)
    features: Dict[str, FeatureMeta] = Field(default_factory=dict)
    installation: InstallationMeta = Field(default_factory=InstallationMeta)
    inventory: InventoryMeta = Field(default_factory=InventoryMeta)
    integrity: IntegrityMeta = Field(default_factory=IntegrityMeta)


__all__ = [
    "ComponentStatus",
    "DocumentStatus",
    "DEFAULT_VERSION",
    "FRAMEWORK_VERSION",
    "INSTALLER_VERSION",
    "FrameworkMeta",
    "ComponentMeta",
    "DocumentMeta",
    "FeatureMeta",
    "InstallationMeta",
    "InventoryMeta",
    "FileIntegrityMeta",
    "IntegrityMeta",
    "UnifiedMetadata",
]
