# SPDX-FileCopyrightText: Copyright (c) 2025 The PointMesh Developers
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import warp as wp

from ..core.types import Vec3, as_points, nparray


class PointCloud:
    """
    An ordered set of 3D sample points with optional per-point unit normals.

    The order of the points is a stable index space: neighbor queries, the
    hash grid and the normal estimator all refer to points by their position
    in this sequence. Duplicate points are kept as-is.

    Example:

        .. code-block:: python

            import numpy as np
            import pointmesh

            cloud = pointmesh.PointCloud(np.random.rand(100, 3))
            print(cloud.num_points, cloud.has_normals)
    """

    def __init__(
        self,
        points: Sequence[Vec3] | nparray,
        normals: Sequence[Vec3] | nparray | None = None,
    ):
        """
        Args:
            points: Sample positions, shape (N, 3).
            normals: Optional per-point normals, shape (N, 3).
        """
        self._points = as_points(points, "points", np.float64)
        self._normals = None
        if normals is not None:
            self.normals = normals

    @property
    def points(self) -> nparray:
        return self._points

    @property
    def normals(self) -> nparray | None:
        return self._normals

    @normals.setter
    def normals(self, value: Sequence[Vec3] | nparray | None):
        if value is None:
            self._normals = None
            return
        normals = as_points(value, "normals", np.float64)
        if len(normals) != len(self._points):
            raise ValueError(f"Expected {len(self._points)} normals, got {len(normals)}")
        self._normals = normals

    @property
    def num_points(self) -> int:
        return len(self._points)

    @property
    def has_normals(self) -> bool:
        return self._normals is not None

    def __len__(self) -> int:
        return len(self._points)

    def get_point(self, index: int) -> nparray:
        return self._points[index]

    def get_normal(self, index: int) -> nparray | None:
        """Return the normal of point ``index``, or ``None`` if the cloud has no normals."""
        if self._normals is None:
            return None
        return self._normals[index]

    def bounding_box(self) -> tuple[nparray, nparray]:
        """Return the ``(min, max)`` corners of the axis-aligned bounding box.

        Raises:
            ValueError: If the point cloud is empty.
        """
        if len(self._points) == 0:
            raise ValueError("Cannot compute the bounding box of an empty point cloud")
        return self._points.min(axis=0), self._points.max(axis=0)

    def copy(self) -> PointCloud:
        return PointCloud(self._points.copy(), self._normals.copy() if self._normals is not None else None)

    def __repr__(self) -> str:
        return f"PointCloud(num_points={self.num_points}, has_normals={self.has_normals})"


class Mesh:
    """
    A triangle mesh made of vertex positions, triangle indices and optional
    per-vertex normals.

    Vertices are stored as a ``(V, 3)`` float32 array and the triangle indices
    as a flattened int32 array with three entries per face, the same layout
    :class:`warp.Mesh` consumes.
    """

    def __init__(
        self,
        vertices: Sequence[Vec3] | nparray | None = None,
        indices: Sequence[int] | nparray | None = None,
        normals: Sequence[Vec3] | nparray | None = None,
    ):
        """
        Construct a Mesh, empty by default.

        Args:
            vertices: List or array of mesh vertices, shape (V, 3).
            indices: Flattened list or array of triangle indices (3 per triangle).
            normals: Optional per-vertex normals, shape (V, 3).
        """
        self._vertices = np.zeros((0, 3), dtype=np.float32)
        self._indices = np.zeros(0, dtype=np.int32)
        self._normals = None
        if vertices is not None:
            self.vertices = vertices
        if indices is not None:
            self.indices = indices
        if normals is not None:
            self.normals = normals

    @property
    def vertices(self) -> nparray:
        return self._vertices

    @vertices.setter
    def vertices(self, value):
        self._vertices = np.array(value, dtype=np.float32).reshape(-1, 3)

    @property
    def indices(self) -> nparray:
        return self._indices

    @indices.setter
    def indices(self, value):
        indices = np.array(value, dtype=np.int32).flatten()
        if len(indices) % 3 != 0:
            raise ValueError(f"Triangle indices must come in triples, got {len(indices)} entries")
        self._indices = indices

    @property
    def faces(self) -> nparray:
        """Triangle indices viewed as a ``(F, 3)`` array."""
        return self._indices.reshape(-1, 3)

    @property
    def normals(self) -> nparray | None:
        return self._normals

    @normals.setter
    def normals(self, value):
        if value is None:
            self._normals = None
            return
        normals = np.array(value, dtype=np.float32).reshape(-1, 3)
        if len(normals) != len(self._vertices):
            raise ValueError(f"Expected {len(self._vertices)} normals, got {len(normals)}")
        self._normals = normals

    @property
    def num_vertices(self) -> int:
        return len(self._vertices)

    @property
    def num_faces(self) -> int:
        return len(self._indices) // 3

    def append_vertices(self, vertices: Sequence[Vec3] | nparray) -> int:
        """Append vertex positions and return the index of the first appended vertex.

        Existing normals are dropped since they no longer cover every vertex.
        """
        start = len(self._vertices)
        new_vertices = np.array(vertices, dtype=np.float32).reshape(-1, 3)
        self._vertices = np.concatenate([self._vertices, new_vertices], axis=0)
        self._normals = None
        return start

    def append_faces(self, faces: Sequence[Sequence[int]] | nparray):
        """Append triangles given as vertex index triples.

        Raises:
            ValueError: If a face references a vertex that does not exist.
        """
        new_indices = np.array(faces, dtype=np.int32).flatten()
        if len(new_indices) % 3 != 0:
            raise ValueError(f"Triangle indices must come in triples, got {len(new_indices)} entries")
        if len(new_indices) and (new_indices.min() < 0 or new_indices.max() >= len(self._vertices)):
            raise ValueError("Face indices out of range of the vertex list")
        self._indices = np.concatenate([self._indices, new_indices])

    def compute_vertex_normals(self, device: wp.DeviceLike = None) -> nparray:
        """(Re)compute per-vertex normals from the face topology and store them.

        Each vertex normal is the normalized sum of the unit normals of its
        incident faces; vertices without a usable incident face get ``(0, 0, 1)``.
        """
        from ..utils.mesh import compute_vertex_normals  # noqa: PLC0415

        self._normals = compute_vertex_normals(self._vertices, self._indices, device=device)
        return self._normals

    def compute_face_normals(self) -> nparray:
        """Return the unit normal of every face, shape (F, 3).

        Degenerate faces get ``(0, 0, 1)``.
        """
        tris = self._vertices[self.faces]
        n = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
        lengths = np.linalg.norm(n, axis=1)
        degenerate = lengths < 1.0e-10
        n[degenerate] = (0.0, 0.0, 1.0)
        lengths[degenerate] = 1.0
        return (n / lengths[:, None]).astype(np.float32)

    def bounding_box(self) -> tuple[nparray, nparray]:
        """Return the ``(min, max)`` corners of the axis-aligned bounding box.

        Raises:
            ValueError: If the mesh has no vertices.
        """
        if len(self._vertices) == 0:
            raise ValueError("Cannot compute the bounding box of an empty mesh")
        return self._vertices.min(axis=0), self._vertices.max(axis=0)

    def copy(self) -> Mesh:
        return Mesh(
            self._vertices.copy(),
            self._indices.copy(),
            self._normals.copy() if self._normals is not None else None,
        )

    def __repr__(self) -> str:
        return f"Mesh(num_vertices={self.num_vertices}, num_faces={self.num_faces})"
