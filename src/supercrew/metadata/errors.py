"""Metadata store errors."""


class MetadataError(Exception):
    """Base exception for metadata store operations."""


class MissingComponentError(MetadataError):
    """Raised when a component has no entry in the metadata store."""


class DocumentVersionError(MetadataError):
    """Raised when a document version update is rejected."""
