"""Tests for vertex layout and geometry snapshots."""

from __future__ import annotations

import numpy as np
import pytest

from atlascache.errors import GeometryError
from atlascache.geometry import (
    VERTEX_DTYPE,
    VERTEX_STRIDE,
    GeometrySnapshot,
    SubMesh,
    compute_submesh_extents,
    make_vertices,
    submesh_extents,
)


class TestVertexLayout:
    def test_stride(self):
        assert VERTEX_STRIDE == 96

    def test_field_order(self):
        assert VERTEX_DTYPE.names == (
            "position",
            "normal",
            "tangent",
            "bitangent",
            "tex_coord",
            "lightmap_tex_coord",
        )

    def test_make_vertices_material_in_position_w(self):
        v = make_vertices([[1.0, 2.0, 3.0]], material_ids=[5])
        assert v["position"][0].tolist() == [1.0, 2.0, 3.0, 5.0]
        assert v["lightmap_tex_coord"][0].tolist() == [0.0, 0.0, 0.0, 0.0]

    def test_make_vertices_tex_coords(self):
        v = make_vertices([[0.0, 0.0, 0.0]], tex_coords=[[0.25, 0.75]])
        assert v["tex_coord"][0].tolist() == [0.25, 0.75, 0.0, 0.0]


class TestSubMesh:
    def test_extents_rounded_to_float32(self):
        sm = SubMesh(min_extents=(0.1, 0.2, 0.3), max_extents=(1, 2, 3))
        assert sm.min_extents[0] == float(np.float32(0.1))
        assert sm.max_extents == (1.0, 2.0, 3.0)


class TestGeometrySnapshot:
    def test_wrong_dtype_rejected(self):
        with pytest.raises(GeometryError, match="VERTEX_DTYPE"):
            GeometrySnapshot(vertices=np.zeros((3, 3)), indices=[0, 1, 2])

    def test_indices_coerced_to_uint32(self, triangle_snapshot):
        assert triangle_snapshot.indices.dtype == np.uint32

    def test_counts(self, two_submesh_snapshot):
        assert two_submesh_snapshot.vertex_count == 6
        assert two_submesh_snapshot.index_count == 6
        assert not two_submesh_snapshot.is_empty

    def test_empty(self, empty_snapshot):
        assert empty_snapshot.is_empty

    def test_copy_is_independent(self, triangle_snapshot):
        clone = triangle_snapshot.copy()
        assert clone == triangle_snapshot
        clone.vertices["position"][0, 0] = 9.0
        clone.submeshes[0].name = "changed"
        assert triangle_snapshot.vertices["position"][0, 0] == 0.0
        assert triangle_snapshot.submeshes[0].name == "tri"
        assert clone != triangle_snapshot

    def test_consistent(self, two_submesh_snapshot):
        two_submesh_snapshot.check_consistency()

    def test_gap_between_submeshes(self, two_submesh_snapshot):
        two_submesh_snapshot.submeshes[1].base_index = 4
        with pytest.raises(GeometryError, match="starts at index 4"):
            two_submesh_snapshot.check_consistency()

    def test_counts_do_not_cover_buffer(self, two_submesh_snapshot):
        del two_submesh_snapshot.submeshes[1]
        with pytest.raises(GeometryError, match="sum to 3"):
            two_submesh_snapshot.check_consistency()

    def test_index_past_vertices(self, triangle_snapshot):
        triangle_snapshot.indices[2] = 7
        with pytest.raises(GeometryError, match="references vertex 7"):
            triangle_snapshot.check_consistency()

    def test_extents_union(self, two_submesh_snapshot):
        lo, hi = two_submesh_snapshot.extents()
        assert lo == (0.0, 0.0, 0.0)
        assert hi == (3.0, 1.0, 0.5)

    def test_submesh_extents_from_indices(self, two_submesh_snapshot):
        right = two_submesh_snapshot.submeshes[1]
        assert submesh_extents(two_submesh_snapshot, right) == (
            right.min_extents,
            right.max_extents,
        )

    def test_compute_submesh_extents_in_place(self, two_submesh_snapshot):
        for sm in two_submesh_snapshot.submeshes:
            sm.min_extents = sm.max_extents = (9.0, 9.0, 9.0)
        compute_submesh_extents(two_submesh_snapshot)
        left, right = two_submesh_snapshot.submeshes
        assert (left.min_extents, left.max_extents) == ((0.0, 0.0, 0.0), (1.0, 1.0, 0.0))
        assert (right.min_extents, right.max_extents) == ((2.0, 0.0, 0.0), (3.0, 1.0, 0.5))
