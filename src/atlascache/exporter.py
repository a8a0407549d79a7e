"""GLB export of final mesh geometry via pygltflib."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pygltflib

from atlascache.errors import ExportError
from atlascache.mesh import Mesh


def export_glb(mesh: Mesh, output_path: Path) -> None:
    """Write a mesh as GLB, one glTF primitive per submesh.

    All primitives share the POSITION/NORMAL/TEXCOORD_0 accessors; lightmap
    UVs are written as TEXCOORD_1 when the mesh has them.
    """
    try:
        gltf = _build_gltf(mesh)
        Path(output_path).write_bytes(b"".join(gltf.save_to_bytes()))
    except Exception as e:
        if isinstance(e, ExportError):
            raise
        raise ExportError(f"Failed to export GLB: {e}") from e


def _write_buffer_view_and_accessor(
    gltf: pygltflib.GLTF2,
    blob_data: bytearray,
    data_array: np.ndarray,
    component_type: int,
    accessor_type: str,
    target: int | None = None,
    *,
    include_min_max: bool = False,
) -> int:
    """Write a buffer view and accessor, returning the accessor index."""
    offset = len(blob_data)
    data_bytes = data_array.tobytes()
    blob_data.extend(data_bytes)

    bv_idx = len(gltf.bufferViews)
    bv = pygltflib.BufferView(
        buffer=0,
        byteOffset=offset,
        byteLength=len(data_bytes),
    )
    if target is not None:
        bv.target = target
    gltf.bufferViews.append(bv)

    acc_kwargs: dict = {
        "bufferView": bv_idx,
        "byteOffset": 0,
        "componentType": component_type,
        "count": len(data_array),
        "type": accessor_type,
    }
    if include_min_max:
        acc_kwargs["min"] = data_array.min(axis=0).tolist()
        acc_kwargs["max"] = data_array.max(axis=0).tolist()

    acc_idx = len(gltf.accessors)
    gltf.accessors.append(pygltflib.Accessor(**acc_kwargs))
    return acc_idx


def _build_gltf(mesh: Mesh) -> pygltflib.GLTF2:
    if len(mesh.vertices) == 0:
        raise ExportError("Cannot export a mesh without vertices")

    gltf = pygltflib.GLTF2(
        scene=0,
        scenes=[pygltflib.Scene(nodes=[0])],
        nodes=[pygltflib.Node(name=mesh.name or None, mesh=0)],
        meshes=[],
        accessors=[],
        bufferViews=[],
        buffers=[],
        materials=[pygltflib.Material(name=str(m)) for m in mesh.materials],
    )
    blob_data = bytearray()
    v = mesh.vertices

    attributes = pygltflib.Attributes(
        POSITION=_write_buffer_view_and_accessor(
            gltf,
            blob_data,
            np.ascontiguousarray(v["position"][:, :3], dtype=np.float32),
            pygltflib.FLOAT,
            pygltflib.VEC3,
            pygltflib.ARRAY_BUFFER,
            include_min_max=True,
        ),
        NORMAL=_write_buffer_view_and_accessor(
            gltf,
            blob_data,
            np.ascontiguousarray(v["normal"][:, :3], dtype=np.float32),
            pygltflib.FLOAT,
            pygltflib.VEC3,
            pygltflib.ARRAY_BUFFER,
        ),
        TEXCOORD_0=_write_buffer_view_and_accessor(
            gltf,
            blob_data,
            np.ascontiguousarray(v["tex_coord"][:, :2], dtype=np.float32),
            pygltflib.FLOAT,
            pygltflib.VEC2,
            pygltflib.ARRAY_BUFFER,
        ),
    )
    if mesh.has_lightmap_uvs:
        attributes.TEXCOORD_1 = _write_buffer_view_and_accessor(
            gltf,
            blob_data,
            np.ascontiguousarray(v["lightmap_tex_coord"][:, :2], dtype=np.float32),
            pygltflib.FLOAT,
            pygltflib.VEC2,
            pygltflib.ARRAY_BUFFER,
        )

    primitives = []
    for sm in mesh.submeshes:
        if sm.index_count == 0:
            continue
        window = mesh.indices[sm.base_index : sm.base_index + sm.index_count]
        idx_acc = _write_buffer_view_and_accessor(
            gltf,
            blob_data,
            (window.astype(np.int64) + sm.base_vertex).astype(np.uint32),
            pygltflib.UNSIGNED_INT,
            pygltflib.SCALAR,
            pygltflib.ELEMENT_ARRAY_BUFFER,
        )
        material = sm.material_index if sm.material_index < len(gltf.materials) else None
        primitives.append(
            pygltflib.Primitive(attributes=attributes, indices=idx_acc, material=material)
        )

    gltf.meshes.append(pygltflib.Mesh(name=mesh.name or None, primitives=primitives))
    gltf.buffers = [pygltflib.Buffer(byteLength=len(blob_data))]
    gltf.set_binary_blob(bytes(blob_data))
    return gltf
