"""Custom exception hierarchy for atlascache."""


class AtlasCacheError(Exception):
    """Base exception for all atlascache errors."""


class ConfigError(AtlasCacheError):
    """Raised when a settings file cannot be read or fails schema validation."""


class DiagnosticError(AtlasCacheError):
    """Raised when a warning code is promoted to an error by policy."""


class MeshImportError(AtlasCacheError):
    """Raised when the importer cannot turn a source file into geometry."""


class GeometryError(AtlasCacheError):
    """Raised when pre-atlas geometry is unusable."""


class AtlasError(AtlasCacheError):
    """Raised when lightmap atlas generation fails."""


class EmptyGeometryError(GeometryError, AtlasError):
    """Raised when a mesh has no vertices or no indices."""


class PackingFailedError(AtlasError):
    """Raised when the packer reports an empty atlas or empty output."""


class UnexpectedPackerOutputError(AtlasError):
    """Raised when the packer output violates its contract."""


class CacheError(AtlasCacheError):
    """Base class for lightmap cache file errors."""


class InvalidFormatError(CacheError):
    """Raised when a cache file is not a well-formed lightmap cache."""


class VersionMismatchError(CacheError):
    """Raised when a cache file was written by another format version."""


class StaleCacheError(CacheError):
    """Raised when a cache file was built from different geometry."""


class TruncatedCacheError(CacheError):
    """Raised when a cache file ends before a field is complete."""


class CacheWriteError(CacheError):
    """Raised when a cache file cannot be written."""


class ExportError(AtlasCacheError):
    """Raised when glTF/GLB export fails."""
