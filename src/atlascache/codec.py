"""Binary lightmap cache file encoding and decoding.

Layout, little-endian, no padding::

    magic:u32 version:u32 geometry_hash:u64
    vertex_count:u32 index_count:u32 submesh_count:u32
    atlas_width:u32 atlas_height:u32
    vertex_count x 96-byte vertex records (VERTEX_DTYPE)
    index_count x u32 indices
    submesh_count x (name_length:u32, name:utf-8[name_length],
                     material_index:u32, index_count:u32, base_vertex:u32,
                     base_index:u32, vertex_count:u32,
                     max_extents:3xf32, min_extents:3xf32)
"""

from __future__ import annotations

import os
import struct
import tempfile
from dataclasses import dataclass
from pathlib import Path

import numpy as np

from atlascache.errors import (
    CacheError,
    CacheWriteError,
    GeometryError,
    InvalidFormatError,
    StaleCacheError,
    TruncatedCacheError,
    VersionMismatchError,
)
from atlascache.geometry import VERTEX_DTYPE, VERTEX_STRIDE, GeometrySnapshot, SubMesh
from atlascache.hashing import format_hash

CACHE_MAGIC = 0x4C4D4150  # "LMAP"
CACHE_VERSION = 1

_HEADER = struct.Struct("<IIQIIIII")
_U32 = struct.Struct("<I")
_SUBMESH_TAIL = struct.Struct("<IIIII3f3f")

HEADER_SIZE = _HEADER.size  # 40


@dataclass(frozen=True)
class CacheHeader:
    magic: int
    version: int
    geometry_hash: int
    vertex_count: int
    index_count: int
    submesh_count: int
    atlas_width: int
    atlas_height: int

    def as_dict(self) -> dict:
        return {
            "magic": f"0x{self.magic:08X}",
            "version": self.version,
            "geometry_hash": format_hash(self.geometry_hash),
            "vertex_count": self.vertex_count,
            "index_count": self.index_count,
            "submesh_count": self.submesh_count,
            "atlas_width": self.atlas_width,
            "atlas_height": self.atlas_height,
        }


@dataclass
class CacheRecord:
    """A decoded cache file: post-atlas geometry keyed by the pre-atlas hash."""

    snapshot: GeometrySnapshot
    geometry_hash: int
    width: int
    height: int


class _Reader:
    def __init__(self, data: bytes) -> None:
        self._data = memoryview(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def take(self, size: int, what: str) -> memoryview:
        if size > self.remaining:
            raise TruncatedCacheError(
                f"Lightmap cache truncated in {what}: need {size} bytes at offset "
                f"{self.offset}, {self.remaining} left"
            )
        chunk = self._data[self.offset : self.offset + size]
        self.offset += size
        return chunk

    def unpack(self, fmt: struct.Struct, what: str) -> tuple:
        return fmt.unpack(self.take(fmt.size, what))


def encode_cache(
    snapshot: GeometrySnapshot, geometry_hash: int, width: int, height: int
) -> bytes:
    """Serialize consolidated geometry into the cache file layout.

    Raises:
        CacheWriteError: If a count or field does not fit its on-disk width.
    """
    out = bytearray()
    try:
        out += _HEADER.pack(
            CACHE_MAGIC,
            CACHE_VERSION,
            geometry_hash,
            snapshot.vertex_count,
            snapshot.index_count,
            len(snapshot.submeshes),
            width,
            height,
        )
        out += snapshot.vertices.astype(VERTEX_DTYPE, copy=False).tobytes()
        out += snapshot.indices.astype("<u4", copy=False).tobytes()

        for sm in snapshot.submeshes:
            name = sm.name.encode("utf-8")
            out += _U32.pack(len(name))
            out += name
            out += _SUBMESH_TAIL.pack(
                sm.material_index,
                sm.index_count,
                sm.base_vertex,
                sm.base_index,
                sm.vertex_count,
                *sm.max_extents,
                *sm.min_extents,
            )
    except struct.error as e:
        raise CacheWriteError(f"Cannot encode lightmap cache: {e}") from e

    return bytes(out)


def read_cache_header(data: bytes) -> CacheHeader:
    """Parse the fixed-size header without validating it."""
    reader = _Reader(data)
    return CacheHeader(*reader.unpack(_HEADER, "header"))


def decode_cache(data: bytes, expected_hash: int | None) -> CacheRecord:
    """Decode a cache file produced by ``encode_cache``.

    Validation order: header length, magic, version, geometry hash, body.
    ``expected_hash=None`` skips the hash comparison.

    Raises:
        TruncatedCacheError: If the data ends before any field is complete.
        InvalidFormatError: On a wrong magic, trailing bytes, undecodable
            names, or geometry whose submesh ranges do not add up.
        VersionMismatchError: If the format version is not CACHE_VERSION.
        StaleCacheError: If the stored hash differs from ``expected_hash``.
    """
    reader = _Reader(data)
    header = CacheHeader(*reader.unpack(_HEADER, "header"))

    if header.magic != CACHE_MAGIC:
        raise InvalidFormatError(f"Lightmap cache invalid magic 0x{header.magic:08X}")
    if header.version != CACHE_VERSION:
        raise VersionMismatchError(
            f"Lightmap cache version {header.version}, expected {CACHE_VERSION}"
        )
    if expected_hash is not None and header.geometry_hash != expected_hash:
        raise StaleCacheError(
            f"Lightmap cache hash {format_hash(header.geometry_hash)} does not match "
            f"geometry hash {format_hash(expected_hash)}"
        )

    vertices = np.frombuffer(
        reader.take(header.vertex_count * VERTEX_STRIDE, "vertex array"), dtype=VERTEX_DTYPE
    ).copy()
    indices = np.frombuffer(
        reader.take(header.index_count * 4, "index array"), dtype="<u4"
    ).astype(np.uint32)

    submeshes: list[SubMesh] = []
    for i in range(header.submesh_count):
        (name_len,) = reader.unpack(_U32, f"submesh {i} name length")
        raw_name = bytes(reader.take(name_len, f"submesh {i} name"))
        try:
            name = raw_name.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidFormatError(f"Lightmap cache submesh {i} name is not UTF-8") from e

        fields = reader.unpack(_SUBMESH_TAIL, f"submesh {i} record")
        material_index, index_count, base_vertex, base_index, vertex_count = fields[:5]
        submeshes.append(
            SubMesh(
                name=name,
                material_index=material_index,
                base_index=base_index,
                index_count=index_count,
                base_vertex=base_vertex,
                vertex_count=vertex_count,
                max_extents=fields[5:8],
                min_extents=fields[8:11],
            )
        )

    if reader.remaining:
        raise InvalidFormatError(f"Lightmap cache has {reader.remaining} trailing bytes")

    snapshot = GeometrySnapshot(vertices=vertices, indices=indices, submeshes=submeshes)
    try:
        snapshot.check_consistency()
    except GeometryError as e:
        raise InvalidFormatError(f"Lightmap cache geometry is inconsistent: {e}") from e

    return CacheRecord(
        snapshot=snapshot,
        geometry_hash=header.geometry_hash,
        width=header.atlas_width,
        height=header.atlas_height,
    )


def write_cache_file(
    path: Path,
    snapshot: GeometrySnapshot,
    geometry_hash: int,
    width: int,
    height: int,
) -> None:
    """Write a cache file atomically.

    The record goes to a temporary file next to ``path`` which then replaces
    ``path``, so readers see either the old file or the complete new one.

    Raises:
        CacheWriteError: On encoding or any filesystem error.
    """
    path = Path(path)
    data = encode_cache(snapshot, geometry_hash, width, height)

    try:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    except OSError as e:
        raise CacheWriteError(f"Failed to create lightmap cache {path}: {e}") from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise CacheWriteError(f"Lightmap cache write error {path}: {e}") from e


def read_cache_file(path: Path, expected_hash: int | None) -> CacheRecord:
    """Read and decode a cache file.

    Raises:
        FileNotFoundError: If there is no cache file.
        CacheError: On other read errors or any decode failure.
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        raise
    except OSError as e:
        raise CacheError(f"Cannot read lightmap cache {path}: {e}") from e
    return decode_cache(data, expected_hash)
