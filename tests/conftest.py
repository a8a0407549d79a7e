"""Shared test fixtures for atlascache tests."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pygltflib
import pytest

from atlascache.geometry import GeometrySnapshot, SubMesh, make_vertices
from atlascache.packer import PackedMesh, PackerResult, PackingUnit


class FakePacker:
    """Deterministic stand-in for the xatlas packer.

    Keeps every input vertex, optionally duplicating ``split_vertex`` (the
    last triangle corner using it is rewired to the duplicate, as a seam
    split would). Atlas positions are distinct per output vertex.
    """

    def __init__(self, width=64, height=32, *, split_vertex=None, mesh_count=1):
        self.width = width
        self.height = height
        self.split_vertex = split_vertex
        self.mesh_count = mesh_count
        self.calls = 0
        self.units: list[PackingUnit] = []

    def pack(self, unit: PackingUnit) -> PackerResult:
        self.calls += 1
        self.units.append(unit)
        n = unit.vertex_count
        xrefs = np.arange(n, dtype=np.int64)
        indices = unit.indices.astype(np.int64)
        if self.split_vertex is not None:
            xrefs = np.append(xrefs, self.split_vertex)
            last = np.flatnonzero(indices == self.split_vertex)[-1]
            indices[last] = n
        k = len(xrefs)
        atlas = np.stack([np.arange(k) * 2.0 + 1.0, np.arange(k) + 0.5], axis=1)
        meshes = [PackedMesh(xrefs, atlas, indices) for _ in range(self.mesh_count)]
        return PackerResult(width=self.width, height=self.height, meshes=meshes)


class FailingPacker:
    def __init__(self, exc: Exception):
        self.exc = exc
        self.calls = 0

    def pack(self, unit: PackingUnit) -> PackerResult:
        self.calls += 1
        raise self.exc


def _snapshot(positions, indices, submeshes, tex_coords=None) -> GeometrySnapshot:
    positions = np.asarray(positions, dtype=np.float64)
    normals = np.tile([0.0, 0.0, 1.0], (len(positions), 1))
    if tex_coords is None:
        tex_coords = positions[:, :2]
    return GeometrySnapshot(
        vertices=make_vertices(positions, normals=normals, tex_coords=tex_coords),
        indices=np.asarray(indices, dtype=np.uint32),
        submeshes=submeshes,
    )


@pytest.fixture
def triangle_snapshot() -> GeometrySnapshot:
    return _snapshot(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
        [0, 1, 2],
        [
            SubMesh(
                name="tri",
                index_count=3,
                vertex_count=3,
                min_extents=(0.0, 0.0, 0.0),
                max_extents=(1.0, 1.0, 0.0),
            )
        ],
    )


@pytest.fixture
def quad_snapshot() -> GeometrySnapshot:
    return _snapshot(
        [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]],
        [0, 1, 2, 0, 2, 3],
        [
            SubMesh(
                name="quad",
                index_count=6,
                vertex_count=4,
                min_extents=(0.0, 0.0, 0.0),
                max_extents=(1.0, 1.0, 0.0),
            )
        ],
    )


@pytest.fixture
def two_submesh_snapshot() -> GeometrySnapshot:
    return _snapshot(
        [
            [0.0, 0.0, 0.0],
            [1.0, 0.0, 0.0],
            [0.0, 1.0, 0.0],
            [2.0, 0.0, 0.0],
            [3.0, 0.0, 0.0],
            [2.0, 1.0, 0.5],
        ],
        [0, 1, 2, 3, 4, 5],
        [
            SubMesh(
                name="left",
                material_index=0,
                base_index=0,
                index_count=3,
                vertex_count=6,
                min_extents=(0.0, 0.0, 0.0),
                max_extents=(1.0, 1.0, 0.0),
            ),
            SubMesh(
                name="right",
                material_index=1,
                base_index=3,
                index_count=3,
                vertex_count=6,
                min_extents=(2.0, 0.0, 0.0),
                max_extents=(3.0, 1.0, 0.5),
            ),
        ],
    )


@pytest.fixture
def empty_snapshot() -> GeometrySnapshot:
    return GeometrySnapshot(
        vertices=make_vertices(np.zeros((0, 3))),
        indices=np.zeros(0, dtype=np.uint32),
        submeshes=[],
    )


@pytest.fixture
def fake_packer():
    """Factory for FakePacker instances."""
    return FakePacker


@pytest.fixture
def failing_packer():
    """Factory for packers that raise the given exception."""
    return FailingPacker


def _append(gltf, blob: bytearray, data: np.ndarray, component_type, accessor_type, target=None):
    offset = len(blob)
    raw = data.tobytes()
    blob.extend(raw)
    gltf.bufferViews.append(
        pygltflib.BufferView(buffer=0, byteOffset=offset, byteLength=len(raw), target=target)
    )
    kwargs = {
        "bufferView": len(gltf.bufferViews) - 1,
        "componentType": component_type,
        "count": len(data),
        "type": accessor_type,
    }
    if accessor_type == pygltflib.VEC3 and component_type == pygltflib.FLOAT:
        kwargs["min"] = data.min(axis=0).tolist()
        kwargs["max"] = data.max(axis=0).tolist()
    gltf.accessors.append(pygltflib.Accessor(**kwargs))
    return len(gltf.accessors) - 1


def write_glb(
    path: Path,
    primitives: list[dict],
    *,
    mesh_name: str = "mesh",
    material_names: list[str] | None = None,
) -> Path:
    """Write a one-mesh GLB.

    Each primitive dict takes ``positions`` and optionally ``indices``,
    ``normals``, ``uv0``, ``uv1``, ``tangents``, ``material`` and ``mode``.
    """
    gltf = pygltflib.GLTF2(
        scene=0,
        scenes=[pygltflib.Scene(nodes=[0])],
        nodes=[pygltflib.Node(mesh=0)],
        meshes=[],
        accessors=[],
        bufferViews=[],
        buffers=[],
        materials=[pygltflib.Material(name=n) for n in (material_names or [])],
    )
    blob = bytearray()
    gltf_prims = []
    for prim in primitives:
        positions = np.asarray(prim["positions"], dtype=np.float32)
        attrs = pygltflib.Attributes(
            POSITION=_append(
                gltf, blob, positions, pygltflib.FLOAT, pygltflib.VEC3, pygltflib.ARRAY_BUFFER
            )
        )
        for key, attr, acc_type in (
            ("normals", "NORMAL", pygltflib.VEC3),
            ("tangents", "TANGENT", pygltflib.VEC4),
            ("uv0", "TEXCOORD_0", pygltflib.VEC2),
            ("uv1", "TEXCOORD_1", pygltflib.VEC2),
        ):
            if prim.get(key) is not None:
                setattr(
                    attrs,
                    attr,
                    _append(
                        gltf,
                        blob,
                        np.asarray(prim[key], dtype=np.float32),
                        pygltflib.FLOAT,
                        acc_type,
                        pygltflib.ARRAY_BUFFER,
                    ),
                )
        indices = None
        if prim.get("indices") is not None:
            indices = _append(
                gltf,
                blob,
                np.asarray(prim["indices"], dtype=np.uint32),
                pygltflib.UNSIGNED_INT,
                pygltflib.SCALAR,
                pygltflib.ELEMENT_ARRAY_BUFFER,
            )
        gltf_prims.append(
            pygltflib.Primitive(
                attributes=attrs,
                indices=indices,
                material=prim.get("material"),
                mode=prim.get("mode", pygltflib.TRIANGLES),
            )
        )
    gltf.meshes.append(pygltflib.Mesh(name=mesh_name, primitives=gltf_prims))
    gltf.buffers = [pygltflib.Buffer(byteLength=len(blob))]
    gltf.set_binary_blob(bytes(blob))
    path.write_bytes(b"".join(gltf.save_to_bytes()))
    return path


QUAD_POSITIONS = [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]]
QUAD_INDICES = [0, 1, 2, 0, 2, 3]


@pytest.fixture
def glb_writer():
    """The ``write_glb`` helper."""
    return write_glb


@pytest.fixture
def quad_glb(tmp_path) -> Path:
    """A single-primitive quad with normals and primary UVs."""
    return write_glb(
        tmp_path / "quad.glb",
        [
            {
                "positions": QUAD_POSITIONS,
                "indices": QUAD_INDICES,
                "normals": [[0.0, 0.0, 1.0]] * 4,
                "uv0": [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]],
                "material": 0,
            }
        ],
        mesh_name="quad",
        material_names=["stone"],
    )


@pytest.fixture
def two_primitive_glb(tmp_path) -> Path:
    """Two primitives, two materials; second primitive has no normals."""
    return write_glb(
        tmp_path / "pair.glb",
        [
            {
                "positions": [[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0]],
                "indices": [0, 1, 2],
                "normals": [[0.0, 0.0, 1.0]] * 3,
                "material": 0,
            },
            {
                "positions": [[2.0, 0.0, 0.0], [3.0, 0.0, 0.0], [3.0, 1.0, 0.0], [2.0, 1.0, 0.0]],
                "indices": [0, 1, 2, 0, 2, 3],
                "material": 1,
            },
        ],
        mesh_name="pair",
        material_names=["wood", ""],
    )
