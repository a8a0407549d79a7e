"""Rebuild engine vertex/index buffers from atlas packer output."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

import numpy as np

from atlascache.errors import (
    EmptyGeometryError,
    PackingFailedError,
    UnexpectedPackerOutputError,
)
from atlascache.geometry import GeometrySnapshot, SubMesh
from atlascache.packer import AtlasPacker, PackedMesh, PackerResult, PackingUnit

logger = logging.getLogger(__name__)


@dataclass
class LightmapResult:
    """Consolidated geometry plus the atlas size its lightmap UVs refer to."""

    snapshot: GeometrySnapshot
    width: int
    height: int


def _check_packed_mesh(snapshot: GeometrySnapshot, packed: PackedMesh) -> None:
    if packed.vertex_count == 0 or len(packed.indices) == 0:
        raise PackingFailedError(
            f"Packer produced {packed.vertex_count} vertices and {len(packed.indices)} indices "
            "for non-empty input"
        )
    if len(packed.atlas_positions) != packed.vertex_count:
        raise UnexpectedPackerOutputError(
            f"Packer returned {len(packed.atlas_positions)} atlas positions "
            f"for {packed.vertex_count} vertices"
        )
    if len(packed.indices) != snapshot.index_count:
        raise UnexpectedPackerOutputError(
            f"Packer returned {len(packed.indices)} indices, input had {snapshot.index_count}; "
            "triangle order must be preserved"
        )
    if packed.xrefs.min() < 0 or packed.xrefs.max() >= snapshot.vertex_count:
        raise UnexpectedPackerOutputError(
            f"Packer vertex back-reference out of range [0, {snapshot.vertex_count})"
        )
    if packed.indices.min() < 0 or packed.indices.max() >= packed.vertex_count:
        raise UnexpectedPackerOutputError(
            f"Packer index out of range [0, {packed.vertex_count})"
        )


def consolidate(snapshot: GeometrySnapshot, result: PackerResult) -> GeometrySnapshot:
    """Merge packer output back into a single vertex/index buffer.

    Each output vertex is a copy of the input vertex it references, with its
    lightmap UV set to the atlas position divided by the atlas size. One input
    vertex may appear several times when the packer split it along a seam.

    Submeshes keep their index counts and order; ``base_index`` becomes the
    running offset, ``base_vertex`` becomes 0 and ``vertex_count`` becomes the
    total vertex count since every submesh now shares one buffer.

    The input snapshot is not modified.

    Raises:
        EmptyGeometryError: If the input has no vertices or no indices.
        PackingFailedError: If the atlas or the packed mesh is empty.
        UnexpectedPackerOutputError: If the packer output breaks its contract.
    """
    if snapshot.is_empty:
        raise EmptyGeometryError("Cannot generate lightmap UVs: mesh has no geometry")
    if result.width <= 0 or result.height <= 0:
        raise PackingFailedError(
            f"Packer produced a {result.width}x{result.height} atlas"
        )
    if result.mesh_count != 1:
        raise UnexpectedPackerOutputError(
            f"Packer returned {result.mesh_count} meshes, expected exactly 1"
        )

    packed = result.meshes[0]
    _check_packed_mesh(snapshot, packed)

    vertices = snapshot.vertices[packed.xrefs]
    lightmap = np.zeros((packed.vertex_count, 4), dtype=np.float32)
    lightmap[:, 0] = packed.atlas_positions[:, 0] / np.float32(result.width)
    lightmap[:, 1] = packed.atlas_positions[:, 1] / np.float32(result.height)
    vertices["lightmap_tex_coord"] = lightmap

    total_vertices = len(vertices)
    submeshes: list[SubMesh] = []
    current_index = 0
    for sm in snapshot.submeshes:
        submeshes.append(
            replace(
                sm,
                base_index=current_index,
                base_vertex=0,
                vertex_count=total_vertices,
            )
        )
        current_index += sm.index_count

    return GeometrySnapshot(
        vertices=vertices,
        indices=packed.indices.astype(np.uint32),
        submeshes=submeshes,
    )


def generate_lightmap_uvs(snapshot: GeometrySnapshot, packer: AtlasPacker) -> LightmapResult:
    """Pack the whole mesh as a single unit and consolidate the result."""
    if snapshot.is_empty:
        raise EmptyGeometryError("Cannot generate lightmap UVs: mesh has no geometry")

    result = packer.pack(PackingUnit.from_snapshot(snapshot))
    consolidated = consolidate(snapshot, result)

    seam_splits = consolidated.vertex_count - snapshot.vertex_count
    logger.info(
        "Generated lightmap UVs: %dx%d atlas, %d vertices (+%d seam splits), %d indices",
        result.width,
        result.height,
        consolidated.vertex_count,
        seam_splits,
        consolidated.index_count,
    )
    return LightmapResult(snapshot=consolidated, width=result.width, height=result.height)
