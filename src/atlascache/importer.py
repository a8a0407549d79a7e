"""Source mesh import: glTF/GLB to a pre-atlas geometry snapshot via pygltflib."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import numpy as np
import pygltflib

from atlascache.errors import MeshImportError
from atlascache.geometry import GeometrySnapshot, SubMesh, compute_submesh_extents, make_vertices

logger = logging.getLogger(__name__)

_COMPONENT_DTYPES: dict[int, str] = {
    pygltflib.BYTE: "<i1",
    pygltflib.UNSIGNED_BYTE: "<u1",
    pygltflib.SHORT: "<i2",
    pygltflib.UNSIGNED_SHORT: "<u2",
    pygltflib.UNSIGNED_INT: "<u4",
    pygltflib.FLOAT: "<f4",
}

_TYPE_COMPONENTS: dict[str, int] = {
    pygltflib.SCALAR: 1,
    pygltflib.VEC2: 2,
    pygltflib.VEC3: 3,
    pygltflib.VEC4: 4,
}

_TRIANGLES = 4


@dataclass
class ImportedMesh:
    """Importer output: triangulated geometry plus opaque material names."""

    snapshot: GeometrySnapshot
    materials: list[str] = field(default_factory=list)
    has_secondary_uv: bool = False


class MeshImporter(Protocol):
    def import_file(self, path: Path) -> ImportedMesh: ...


def _read_accessor(gltf: pygltflib.GLTF2, blob: bytes, index: int) -> np.ndarray:
    """Return accessor data as an owned (count, components) array."""
    accessor = gltf.accessors[index]
    if accessor.bufferView is None:
        raise MeshImportError(f"Accessor {index} has no bufferView (sparse accessors unsupported)")

    view = gltf.bufferViews[accessor.bufferView]
    if view.buffer != 0:
        raise MeshImportError(f"Accessor {index} reads buffer {view.buffer}; only buffer 0 is supported")
    dtype = np.dtype(_COMPONENT_DTYPES[accessor.componentType])
    n_comp = _TYPE_COMPONENTS[accessor.type]
    stride = view.byteStride or dtype.itemsize * n_comp
    offset = (view.byteOffset or 0) + (accessor.byteOffset or 0)

    data = np.ndarray(
        shape=(accessor.count, n_comp),
        dtype=dtype,
        buffer=blob,
        offset=offset,
        strides=(stride, dtype.itemsize),
    ).copy()

    if accessor.normalized and dtype.kind in "iu":
        return data.astype(np.float64) / np.iinfo(dtype).max
    return data


def smooth_normals(positions: np.ndarray, triangles: np.ndarray) -> np.ndarray:
    """Area-weighted vertex normals for meshes that ship without NORMAL."""
    normals = np.zeros_like(positions, dtype=np.float64)
    if len(triangles) == 0:
        return normals
    p0 = positions[triangles[:, 0]]
    p1 = positions[triangles[:, 1]]
    p2 = positions[triangles[:, 2]]
    face_normals = np.cross(p1 - p0, p2 - p0)
    for corner in range(3):
        np.add.at(normals, triangles[:, corner], face_normals)
    lengths = np.linalg.norm(normals, axis=1, keepdims=True)
    return np.divide(normals, lengths, out=np.zeros_like(normals), where=lengths > 0)


def _tangent_frame(normals: np.ndarray, tangents4: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Split glTF (xyz, w) tangents into a right-handed tangent/bitangent pair."""
    t = tangents4[:, :3].astype(np.float64)
    b = np.cross(normals, t) * tangents4[:, 3:4]
    # Right-handed frame: flip the tangent when (n x t) . b is negative.
    flip = np.einsum("ij,ij->i", np.cross(normals, t), b) < 0.0
    t[flip] *= -1.0
    return t, b


class GltfImporter:
    """Import every triangle primitive of a .gltf/.glb file as one submesh.

    Vertex buffers of all primitives are concatenated and indices rebased to
    the shared buffer, so every submesh has ``base_vertex == 0``. Node
    transforms are not applied. Any TEXCOORD_1 set is reported but ignored.
    """

    def import_file(self, path: Path) -> ImportedMesh:
        path = Path(path)
        try:
            gltf = pygltflib.GLTF2().load(str(path))
        except Exception as e:
            raise MeshImportError(f"Cannot load glTF file {path}: {e}") from e
        if gltf is None:
            raise MeshImportError(f"Cannot load glTF file {path}")

        try:
            gltf.convert_buffers(pygltflib.BufferFormat.BINARYBLOB)
            blob = gltf.binary_blob() or b""
            return self._build(gltf, blob, path)
        except MeshImportError:
            raise
        except (IndexError, KeyError, ValueError, TypeError) as e:
            raise MeshImportError(f"Malformed glTF data in {path}: {e}") from e

    def _build(self, gltf: pygltflib.GLTF2, blob: bytes, path: Path) -> ImportedMesh:
        vertex_parts: list[np.ndarray] = []
        index_parts: list[np.ndarray] = []
        submeshes: list[SubMesh] = []
        materials: list[str] = []
        material_slots: dict[int | None, int] = {}
        has_secondary_uv = False
        vertex_offset = 0
        index_offset = 0

        for mesh_idx, gltf_mesh in enumerate(gltf.meshes):
            for prim_idx, prim in enumerate(gltf_mesh.primitives):
                mode = _TRIANGLES if prim.mode is None else prim.mode
                if mode != _TRIANGLES:
                    raise MeshImportError(
                        f"{path}: mesh {mesh_idx} primitive {prim_idx} uses mode {mode}; "
                        "only triangle lists are supported"
                    )
                attrs = prim.attributes
                if attrs.POSITION is None:
                    raise MeshImportError(
                        f"{path}: mesh {mesh_idx} primitive {prim_idx} has no POSITION"
                    )

                positions = _read_accessor(gltf, blob, attrs.POSITION).astype(np.float64)
                n_verts = len(positions)
                if prim.indices is not None:
                    local = _read_accessor(gltf, blob, prim.indices).reshape(-1).astype(np.int64)
                else:
                    local = np.arange(n_verts, dtype=np.int64)
                if len(local) % 3:
                    raise MeshImportError(
                        f"{path}: mesh {mesh_idx} primitive {prim_idx} index count "
                        f"{len(local)} is not a multiple of 3"
                    )
                if len(local) and (local.min() < 0 or local.max() >= n_verts):
                    raise MeshImportError(
                        f"{path}: mesh {mesh_idx} primitive {prim_idx} index out of range"
                    )

                if attrs.NORMAL is not None:
                    normals = _read_accessor(gltf, blob, attrs.NORMAL).astype(np.float64)
                else:
                    normals = smooth_normals(positions, local.reshape(-1, 3))

                tangents = bitangents = None
                if attrs.TANGENT is not None:
                    tangents, bitangents = _tangent_frame(
                        normals, _read_accessor(gltf, blob, attrs.TANGENT).astype(np.float64)
                    )

                uvs = None
                if attrs.TEXCOORD_0 is not None:
                    uvs = _read_accessor(gltf, blob, attrs.TEXCOORD_0)
                if getattr(attrs, "TEXCOORD_1", None) is not None:
                    has_secondary_uv = True

                slot = material_slots.get(prim.material)
                if slot is None:
                    slot = len(materials)
                    material_slots[prim.material] = slot
                    materials.append(self._material_name(gltf, prim.material))

                vertex_parts.append(
                    make_vertices(
                        positions,
                        normals=normals,
                        tangents=tangents,
                        bitangents=bitangents,
                        tex_coords=uvs,
                        material_ids=np.full(n_verts, slot),
                    )
                )
                index_parts.append(local + vertex_offset)
                submeshes.append(
                    SubMesh(
                        name=gltf_mesh.name or "",
                        material_index=slot,
                        base_index=index_offset,
                        index_count=len(local),
                        base_vertex=0,
                        vertex_count=n_verts,
                    )
                )
                vertex_offset += n_verts
                index_offset += len(local)

        if vertex_parts:
            vertices = np.concatenate(vertex_parts)
            indices = np.concatenate(index_parts)
        else:
            vertices = make_vertices(np.zeros((0, 3)))
            indices = np.zeros(0, dtype=np.uint32)

        snapshot = GeometrySnapshot(vertices=vertices, indices=indices, submeshes=submeshes)
        compute_submesh_extents(snapshot)

        logger.info(
            "Imported %s: %d submeshes, %d vertices, %d indices",
            path,
            len(submeshes),
            len(vertices),
            len(indices),
        )
        return ImportedMesh(
            snapshot=snapshot,
            materials=materials,
            has_secondary_uv=has_secondary_uv,
        )

    @staticmethod
    def _material_name(gltf: pygltflib.GLTF2, index: int | None) -> str:
        if index is None:
            return "default"
        return gltf.materials[index].name or f"material_{index}"
