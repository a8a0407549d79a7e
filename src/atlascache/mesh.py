"""Mesh objects and the end-to-end mesh load pipeline."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from atlascache.config import LightmapSettings
from atlascache.errors import EmptyGeometryError
from atlascache.geometry import VERTEX_DTYPE, VERTEX_STRIDE, GeometrySnapshot, SubMesh, Vec3
from atlascache.importer import GltfImporter, MeshImporter
from atlascache.orchestrator import LightmapOutcome, apply_lightmap_cache
from atlascache.packer import AtlasPacker, XatlasPacker
from atlascache.warning_policy import SECONDARY_UV_REPLACED, emit_warning

_mesh_ids = itertools.count()


@dataclass(frozen=True)
class VertexLayout:
    """Describes the interleaved vertex buffer for the GPU-resource side."""

    attributes: tuple[str, ...]
    format: str
    stride_bytes: int


VERTEX_LAYOUT = VertexLayout(
    attributes=tuple(VERTEX_DTYPE.names),
    format=" ".join("4f" for _ in VERTEX_DTYPE.names),
    stride_bytes=VERTEX_STRIDE,
)


class Mesh:
    """Final geometry of one loaded mesh plus its material list.

    Materials are opaque to this package; submeshes refer to them by index.
    """

    def __init__(
        self,
        snapshot: GeometrySnapshot,
        materials: list[Any] | None = None,
        *,
        name: str = "",
        lightmap_width: int = 0,
        lightmap_height: int = 0,
        has_lightmap_uvs: bool = False,
        lightmap_outcome: LightmapOutcome | None = None,
    ) -> None:
        self.id = next(_mesh_ids)
        self.name = name
        self.snapshot = snapshot
        self.materials: list[Any] = list(materials or [])
        self.lightmap_width = lightmap_width
        self.lightmap_height = lightmap_height
        self.has_lightmap_uvs = has_lightmap_uvs
        self.lightmap_outcome = lightmap_outcome
        self.min_extents, self.max_extents = snapshot.extents()

    def __repr__(self) -> str:
        return (
            f"Mesh(id={self.id}, name={self.name!r}, vertices={len(self.vertices)}, "
            f"indices={len(self.indices)}, submeshes={len(self.submeshes)})"
        )

    @property
    def vertices(self) -> np.ndarray:
        return self.snapshot.vertices

    @property
    def indices(self) -> np.ndarray:
        return self.snapshot.indices

    @property
    def submeshes(self) -> list[SubMesh]:
        return self.snapshot.submeshes

    @classmethod
    def from_arrays(
        cls,
        name: str,
        vertices: np.ndarray,
        indices: np.ndarray,
        submeshes: list[SubMesh],
        materials: list[Any] | None = None,
        max_extents: Vec3 | None = None,
        min_extents: Vec3 | None = None,
    ) -> Mesh:
        """Build a mesh from in-memory data, bypassing import and lightmaps."""
        mesh = cls(
            GeometrySnapshot(vertices=vertices, indices=indices, submeshes=list(submeshes)),
            materials,
            name=name,
        )
        if max_extents is not None:
            mesh.max_extents = tuple(max_extents)
        if min_extents is not None:
            mesh.min_extents = tuple(min_extents)
        return mesh

    def set_submesh_material(self, submesh: str | int, material: Any) -> bool:
        """Append ``material`` and point one submesh at it.

        ``submesh`` is either a submesh name (first match wins) or an index.
        Returns False when no such submesh exists.
        """
        if isinstance(submesh, str):
            target = next((sm for sm in self.submeshes if sm.name == submesh), None)
        elif 0 <= submesh < len(self.submeshes):
            target = self.submeshes[submesh]
        else:
            target = None

        if target is None:
            return False
        target.material_index = len(self.materials)
        self.materials.append(material)
        return True

    def set_global_material(self, material: Any) -> None:
        """Append ``material`` and point every submesh at it."""
        for sm in self.submeshes:
            sm.material_index = len(self.materials)
        self.materials.append(material)

    def vertex_buffer(self) -> bytes:
        """Interleaved vertex data laid out as VERTEX_LAYOUT."""
        return self.vertices.tobytes()

    def index_buffer(self) -> bytes:
        """Little-endian uint32 indices."""
        return self.indices.astype("<u4").tobytes()


def load_mesh(
    path: str | Path,
    *,
    settings: LightmapSettings | None = None,
    importer: MeshImporter | None = None,
    packer: AtlasPacker | None = None,
) -> Mesh:
    """Import a mesh file and, when requested, attach lightmap UVs.

    Lightmap problems never fail the load; the mesh then comes back without
    lightmap UVs. Import errors and empty geometry do fail it.

    Raises:
        MeshImportError: If the importer cannot read the file.
        EmptyGeometryError: If the file contains no triangles.
    """
    settings = settings or LightmapSettings()
    path = Path(path).absolute()
    importer = importer or GltfImporter()

    imported = importer.import_file(path)
    snapshot = imported.snapshot
    if snapshot.is_empty:
        raise EmptyGeometryError(f"{path}: no triangle geometry found")

    if not settings.generate_lightmap_uv:
        return Mesh(snapshot, imported.materials, name=path.stem)

    if imported.has_secondary_uv:
        emit_warning(
            SECONDARY_UV_REPLACED,
            f"{path}: existing second UV set will be replaced by generated lightmap UVs",
            policy=settings.warning_policy(),
        )

    outcome = apply_lightmap_cache(
        snapshot,
        path,
        packer or XatlasPacker(settings.packer),
        settings,
    )
    return Mesh(
        outcome.snapshot,
        imported.materials,
        name=path.stem,
        lightmap_width=outcome.width,
        lightmap_height=outcome.height,
        has_lightmap_uvs=outcome.has_lightmap_uvs,
        lightmap_outcome=outcome,
    )
