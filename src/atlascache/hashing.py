"""Stable 64-bit geometry fingerprint used as the lightmap cache key."""

from __future__ import annotations

from atlascache.geometry import GeometrySnapshot

FNV_OFFSET_BASIS = 14695981039346656037
FNV_PRIME = 1099511628211
_MASK64 = 0xFFFFFFFFFFFFFFFF


def _fnv1a_bytes(h: int, data: bytes) -> int:
    prime = FNV_PRIME
    mask = _MASK64
    for byte in data:
        h = ((h ^ byte) * prime) & mask
    return h


def _fnv1a_word(h: int, value: int) -> int:
    return ((h ^ (value & 0xFFFFFFFF)) * FNV_PRIME) & _MASK64


def compute_geometry_hash(snapshot: GeometrySnapshot) -> int:
    """FNV-1a over position bytes, then index bytes, then submesh ranges.

    Only ``position`` (all four float32 components, little-endian) takes part;
    normals, tangents and UVs do not. Each submesh contributes its
    ``index_count`` and ``base_index`` folded in as whole 32-bit words.

    FNV-1a is inherently sequential, so this runs one interpreter step per
    byte: 16 per vertex plus 4 per index. Expect roughly a second per million
    vertices, paid on every load including cache hits.
    """
    h = FNV_OFFSET_BASIS
    h = _fnv1a_bytes(h, snapshot.vertices["position"].astype("<f4").tobytes())
    h = _fnv1a_bytes(h, snapshot.indices.astype("<u4").tobytes())
    for sm in snapshot.submeshes:
        h = _fnv1a_word(h, sm.index_count)
        h = _fnv1a_word(h, sm.base_index)
    return h


def format_hash(value: int) -> str:
    """Render a 64-bit hash as 16 lowercase hex digits."""
    return f"{value & _MASK64:016x}"
