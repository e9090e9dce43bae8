"""Unified metadata store for SuperCrew installations."""

from .errors import DocumentVersionError, MetadataError, MissingComponentError
from .models import (
    FRAMEWORK_VERSION,
    ComponentMeta,
    DocumentMeta,
    FeatureMeta,
    FileIntegrityMeta,
    FrameworkMeta,
    InstallationMeta,
    IntegrityMeta,
    InventoryMeta,
    UnifiedMetadata,
)
from .store import (
    CHANGELOG_RELATIVE_PATH,
    CORE_DOCUMENTS,
    METADATA_RELATIVE_PATH,
    STATE_DIRNAME,
    MetadataStore,
    is_semantic_version,
)

__all__ = [
    "MetadataStore",
    "METADATA_RELATIVE_PATH",
    "CHANGELOG_RELATIVE_PATH",
    "CORE_DOCUMENTS",
    "STATE_DIRNAME",
    "is_semantic_version",
    "MetadataError",
    "MissingComponentError",
    "DocumentVersionError",
    "FrameworkMeta",
    "ComponentMeta",
    "DocumentMeta",
    "FeatureMeta",
    "InstallationMeta",
    "InventoryMeta",
    "FileIntegrityMeta",
    "IntegrityMeta",
    "UnifiedMetadata",
    "FRAMEWORK_VERSION",
]
