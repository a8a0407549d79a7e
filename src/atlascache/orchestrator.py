"""Decide between a cached lightmap atlas and a fresh one for a single mesh load."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path

from atlascache.codec import CacheRecord, read_cache_file, write_cache_file
from atlascache.config import DEFAULT_CACHE_SUFFIX, LightmapSettings
from atlascache.consolidate import generate_lightmap_uvs
from atlascache.errors import (
    AtlasError,
    CacheError,
    CacheWriteError,
    EmptyGeometryError,
    StaleCacheError,
    VersionMismatchError,
)
from atlascache.geometry import GeometrySnapshot
from atlascache.hashing import compute_geometry_hash, format_hash
from atlascache.packer import AtlasPacker
from atlascache.warning_policy import (
    CACHE_WRITE_FAILED,
    CORRUPT_CACHE,
    PACKING_FAILED,
    STALE_CACHE,
    VERSION_MISMATCH,
    WarningPolicy,
    emit_warning,
)

logger = logging.getLogger(__name__)


class LoadState(enum.Enum):
    START = "start"
    HASH_COMPUTED = "hash_computed"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    GENERATED = "generated"
    SKIPPED = "skipped"
    DONE = "done"


@dataclass
class LightmapOutcome:
    """Geometry adopted by a mesh load and how it was obtained."""

    snapshot: GeometrySnapshot
    geometry_hash: int
    cache_path: Path
    width: int = 0
    height: int = 0
    has_lightmap_uvs: bool = False
    cache_written: bool = False
    states: list[LoadState] = field(default_factory=list)

    @property
    def cache_hit(self) -> bool:
        return LoadState.CACHE_HIT in self.states

    @property
    def resolution(self) -> LoadState:
        """CACHE_HIT, GENERATED or SKIPPED."""
        for state in (LoadState.CACHE_HIT, LoadState.GENERATED, LoadState.SKIPPED):
            if state in self.states:
                return state
        return self.states[-1]


def cache_path_for(mesh_path: str | Path, suffix: str = DEFAULT_CACHE_SUFFIX) -> Path:
    """Return ``<mesh dir>/<mesh stem><suffix>``."""
    mesh_path = Path(mesh_path)
    return mesh_path.parent / f"{mesh_path.stem}{suffix}"


def _try_read_cache(
    cache_path: Path, geometry_hash: int, policy: WarningPolicy | None
) -> CacheRecord | None:
    """Decode the cache file, turning every cache error into a miss."""
    try:
        return read_cache_file(cache_path, geometry_hash)
    except FileNotFoundError:
        logger.debug("No lightmap cache at %s", cache_path)
    except StaleCacheError as e:
        emit_warning(STALE_CACHE, f"{cache_path}: {e} - mesh geometry changed", policy=policy)
    except VersionMismatchError as e:
        emit_warning(VERSION_MISMATCH, f"{cache_path}: {e}", policy=policy)
    except CacheError as e:
        emit_warning(CORRUPT_CACHE, f"{cache_path}: {e}", policy=policy)
    return None


def apply_lightmap_cache(
    snapshot: GeometrySnapshot,
    mesh_path: str | Path,
    packer: AtlasPacker,
    settings: LightmapSettings | None = None,
) -> LightmapOutcome:
    """Produce lightmap-ready geometry for a freshly imported mesh.

    The pre-atlas hash is computed first. A cache file whose magic, version
    and hash all match is adopted as-is. Otherwise the packer runs and the
    consolidated result is written back under the same hash. If packing
    fails the input geometry is returned without lightmap UVs.

    Cache and packing failures are reported as warnings (W01-W05) and never
    raised, unless the settings promote a code to an error.

    Raises:
        EmptyGeometryError: If the mesh has no vertices or no indices.
    """
    settings = settings or LightmapSettings()
    policy = settings.warning_policy()
    mesh_path = Path(mesh_path)

    if snapshot.is_empty:
        raise EmptyGeometryError(
            f"{mesh_path}: mesh has {snapshot.vertex_count} vertices and "
            f"{snapshot.index_count} indices"
        )

    states = [LoadState.START]
    geometry_hash = compute_geometry_hash(snapshot)
    states.append(LoadState.HASH_COMPUTED)
    logger.debug("Geometry hash for %s: %s", mesh_path, format_hash(geometry_hash))

    outcome = LightmapOutcome(
        snapshot=snapshot,
        geometry_hash=geometry_hash,
        cache_path=cache_path_for(mesh_path, settings.cache_suffix),
        states=states,
    )

    record = None
    if settings.read_cache:
        record = _try_read_cache(outcome.cache_path, geometry_hash, policy)

    if record is not None:
        states.append(LoadState.CACHE_HIT)
        outcome.snapshot = record.snapshot
        outcome.width = record.width
        outcome.height = record.height
        outcome.has_lightmap_uvs = True
        states.append(LoadState.DONE)
        logger.info("Loaded lightmap cache: %s", outcome.cache_path)
        return outcome

    states.append(LoadState.CACHE_MISS)
    try:
        result = generate_lightmap_uvs(snapshot, packer)
    except AtlasError as e:
        emit_warning(
            PACKING_FAILED,
            f"{mesh_path}: lightmap UV generation failed ({e}); continuing without lightmap UVs",
            policy=policy,
        )
        states.extend([LoadState.SKIPPED, LoadState.DONE])
        return outcome

    states.append(LoadState.GENERATED)
    outcome.snapshot = result.snapshot
    outcome.width = result.width
    outcome.height = result.height
    outcome.has_lightmap_uvs = True

    if settings.write_cache:
        try:
            write_cache_file(
                outcome.cache_path, result.snapshot, geometry_hash, result.width, result.height
            )
        except CacheWriteError as e:
            emit_warning(CACHE_WRITE_FAILED, str(e), policy=policy)
        else:
            outcome.cache_written = True
            logger.info("Saved lightmap cache: %s", outcome.cache_path)

    states.append(LoadState.DONE)
    return outcome
