"""Vertex layout, submesh descriptors, and geometry snapshots."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

import numpy as np

from atlascache.errors import GeometryError

# Every attribute is a little-endian float4 so the stride is uniform.
# position.w carries the material index as a float.
VERTEX_DTYPE = np.dtype(
    [
        ("position", "<f4", (4,)),
        ("normal", "<f4", (4,)),
        ("tangent", "<f4", (4,)),
        ("bitangent", "<f4", (4,)),
        ("tex_coord", "<f4", (4,)),
        ("lightmap_tex_coord", "<f4", (4,)),
    ]
)
VERTEX_STRIDE = VERTEX_DTYPE.itemsize  # 96

Vec3 = tuple[float, float, float]


def _f32_triple(values) -> Vec3:
    x, y, z = (float(np.float32(v)) for v in values)
    return (x, y, z)


@dataclass
class SubMesh:
    """A contiguous index range of the shared index buffer drawn with one material."""

    name: str = ""
    material_index: int = 0
    base_index: int = 0
    index_count: int = 0
    base_vertex: int = 0
    vertex_count: int = 0
    min_extents: Vec3 = (0.0, 0.0, 0.0)
    max_extents: Vec3 = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        # Extents are persisted as float32; keep them float32-exact in memory too.
        self.min_extents = _f32_triple(self.min_extents)
        self.max_extents = _f32_triple(self.max_extents)


def make_vertices(
    positions,
    normals=None,
    tangents=None,
    bitangents=None,
    tex_coords=None,
    material_ids=None,
) -> np.ndarray:
    """Build a VERTEX_DTYPE array from plain per-attribute arrays.

    Args:
        positions: (N, 3) positions.
        normals, tangents, bitangents: optional (N, 3) arrays.
        tex_coords: optional (N, 2) primary UVs.
        material_ids: optional (N,) material index per vertex, stored in position.w.

    Returns:
        (N,) structured array with lightmap UVs zeroed.
    """
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    n = len(positions)
    vertices = np.zeros(n, dtype=VERTEX_DTYPE)
    vertices["position"][:, :3] = positions

    for name, data in (("normal", normals), ("tangent", tangents), ("bitangent", bitangents)):
        if data is not None:
            vertices[name][:, :3] = np.asarray(data, dtype=np.float64).reshape(n, 3)
    if tex_coords is not None:
        vertices["tex_coord"][:, :2] = np.asarray(tex_coords, dtype=np.float64).reshape(n, 2)
    if material_ids is not None:
        vertices["position"][:, 3] = np.asarray(material_ids, dtype=np.float64).reshape(n)

    return vertices


@dataclass(eq=False)
class GeometrySnapshot:
    """Ordered vertices, indices, and submeshes of one mesh."""

    vertices: np.ndarray
    indices: np.ndarray
    submeshes: list[SubMesh] = field(default_factory=list)

    def __post_init__(self) -> None:
        vertices = np.asarray(self.vertices)
        if vertices.dtype != VERTEX_DTYPE:
            raise GeometryError(f"Vertices must use VERTEX_DTYPE, got {vertices.dtype}")
        self.vertices = np.ascontiguousarray(vertices.reshape(-1))
        self.indices = np.ascontiguousarray(np.asarray(self.indices, dtype=np.uint32).reshape(-1))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def index_count(self) -> int:
        return len(self.indices)

    @property
    def is_empty(self) -> bool:
        return self.vertex_count == 0 or self.index_count == 0

    def copy(self) -> GeometrySnapshot:
        return GeometrySnapshot(
            vertices=self.vertices.copy(),
            indices=self.indices.copy(),
            submeshes=[replace(sm) for sm in self.submeshes],
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GeometrySnapshot):
            return NotImplemented
        # Byte comparison so NaN payloads and signed zeros compare exactly.
        return (
            self.vertices.tobytes() == other.vertices.tobytes()
            and self.indices.tobytes() == other.indices.tobytes()
            and self.submeshes == other.submeshes
        )

    def check_consistency(self) -> None:
        """Check submesh ranges and index bounds.

        Raises:
            GeometryError: If ranges are not contiguous in order, do not cover
                the index buffer exactly, or an index points past the vertices.
        """
        running = 0
        n_verts = self.vertex_count
        for i, sm in enumerate(self.submeshes):
            if sm.base_index != running:
                raise GeometryError(
                    f"Submesh {i} ({sm.name!r}) starts at index {sm.base_index}, expected {running}"
                )
            running += sm.index_count
            if running > self.index_count:
                raise GeometryError(
                    f"Submesh {i} ({sm.name!r}) extends past the index buffer "
                    f"({running} > {self.index_count})"
                )
            if sm.index_count:
                window = self.indices[sm.base_index : sm.base_index + sm.index_count]
                highest = int(window.max()) + sm.base_vertex
                if highest >= n_verts:
                    raise GeometryError(
                        f"Submesh {i} ({sm.name!r}) references vertex {highest} "
                        f"but only {n_verts} vertices exist"
                    )
        if running != self.index_count:
            raise GeometryError(
                f"Submesh index counts sum to {running}, index buffer holds {self.index_count}"
            )

    def extents(self) -> tuple[Vec3, Vec3]:
        """Return the (min, max) bounding box of the whole mesh."""
        if self.submeshes:
            mins = np.array([sm.min_extents for sm in self.submeshes], dtype=np.float32)
            maxs = np.array([sm.max_extents for sm in self.submeshes], dtype=np.float32)
            return _f32_triple(mins.min(axis=0)), _f32_triple(maxs.max(axis=0))
        if self.vertex_count == 0:
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        pos = self.vertices["position"][:, :3]
        return _f32_triple(pos.min(axis=0)), _f32_triple(pos.max(axis=0))


def submesh_extents(snapshot: GeometrySnapshot, submesh: SubMesh) -> tuple[Vec3, Vec3]:
    """Compute the AABB of the vertices referenced by a submesh's index range."""
    if submesh.index_count == 0:
        return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
    window = snapshot.indices[submesh.base_index : submesh.base_index + submesh.index_count]
    referenced = window.astype(np.int64) + submesh.base_vertex
    pos = snapshot.vertices["position"][referenced, :3]
    return _f32_triple(pos.min(axis=0)), _f32_triple(pos.max(axis=0))


def compute_submesh_extents(snapshot: GeometrySnapshot) -> None:
    """Recompute every submesh's extents in place from its referenced vertices."""
    for sm in snapshot.submeshes:
        sm.min_extents, sm.max_extents = submesh_extents(snapshot, sm)
