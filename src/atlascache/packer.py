"""Boundary with the external UV atlas packer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import numpy as np

from atlascache.config import PackerSettings
from atlascache.errors import PackingFailedError
from atlascache.geometry import GeometrySnapshot

logger = logging.getLogger(__name__)


@dataclass
class PackingUnit:
    """One mesh submitted to the packer: attribute views plus triangle indices."""

    positions: np.ndarray  # (N, 3) float32
    normals: np.ndarray  # (N, 3) float32
    uvs: np.ndarray  # (N, 2) float32
    indices: np.ndarray  # (M,) uint32

    @property
    def vertex_count(self) -> int:
        return len(self.positions)

    @classmethod
    def from_snapshot(cls, snapshot: GeometrySnapshot) -> PackingUnit:
        """Copy the packer-relevant attributes out of a snapshot."""
        v = snapshot.vertices
        # The packer sees one buffer, so submesh-relative indices become absolute.
        indices = snapshot.indices.astype(np.int64)
        for sm in snapshot.submeshes:
            if sm.base_vertex:
                indices[sm.base_index : sm.base_index + sm.index_count] += sm.base_vertex
        return cls(
            positions=np.ascontiguousarray(v["position"][:, :3], dtype=np.float32),
            normals=np.ascontiguousarray(v["normal"][:, :3], dtype=np.float32),
            uvs=np.ascontiguousarray(v["tex_coord"][:, :2], dtype=np.float32),
            indices=np.ascontiguousarray(indices, dtype=np.uint32),
        )


@dataclass
class PackedMesh:
    """Packer output for one mesh, copied into arrays we own.

    ``xrefs[i]`` is the input vertex that output vertex ``i`` was made from;
    ``atlas_positions[i]`` is its location in atlas pixel space.
    """

    xrefs: np.ndarray  # (K,) int64
    atlas_positions: np.ndarray  # (K, 2) float32
    indices: np.ndarray  # (M,) int64

    def __post_init__(self) -> None:
        self.xrefs = np.array(self.xrefs, dtype=np.int64).reshape(-1)
        self.atlas_positions = np.array(self.atlas_positions, dtype=np.float32).reshape(-1, 2)
        self.indices = np.array(self.indices, dtype=np.int64).reshape(-1)

    @property
    def vertex_count(self) -> int:
        return len(self.xrefs)


@dataclass
class PackerResult:
    width: int
    height: int
    meshes: list[PackedMesh] = field(default_factory=list)

    @property
    def mesh_count(self) -> int:
        return len(self.meshes)


class AtlasPacker(Protocol):
    def pack(self, unit: PackingUnit) -> PackerResult: ...


class XatlasPacker:
    """AtlasPacker backed by the ``xatlas`` Python bindings."""

    def __init__(self, settings: PackerSettings | None = None) -> None:
        self.settings = settings or PackerSettings()

    def pack(self, unit: PackingUnit) -> PackerResult:
        import xatlas

        atlas = xatlas.Atlas()
        try:
            atlas.add_mesh(
                unit.positions,
                unit.indices.reshape(-1, 3),
                unit.normals,
                unit.uvs,
            )
        except (RuntimeError, ValueError) as e:
            raise PackingFailedError(f"xatlas rejected the mesh: {e}") from e

        pack_options = xatlas.PackOptions()
        pack_options.padding = self.settings.padding
        pack_options.resolution = self.settings.resolution
        pack_options.texels_per_unit = self.settings.texels_per_unit
        pack_options.bilinear = self.settings.bilinear

        logger.debug("Running xatlas on %d vertices, %d indices", unit.vertex_count, len(unit.indices))
        try:
            atlas.generate(xatlas.ChartOptions(), pack_options)
        except RuntimeError as e:
            raise PackingFailedError(f"xatlas failed to generate an atlas: {e}") from e

        width, height = int(atlas.width), int(atlas.height)
        meshes: list[PackedMesh] = []
        for i in range(atlas.mesh_count):
            vmapping, indices, uvs = atlas[i]
            # The bindings hand back UVs already divided by the atlas size.
            pixels = np.array(uvs, dtype=np.float64).reshape(-1, 2) * (width, height)
            meshes.append(
                PackedMesh(
                    xrefs=np.array(vmapping),
                    atlas_positions=pixels,
                    indices=np.array(indices).reshape(-1),
                )
            )
        return PackerResult(width=width, height=height, meshes=meshes)
