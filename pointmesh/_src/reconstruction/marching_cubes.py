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

"""Isosurface extraction over the voxels of a :class:`HashGrid`.

The implicit surface is the zero level of a signed distance estimate built
from the point set. At a query position the field value is the distance to
the nearest sample point. Its sign comes from the nearest point's normal
when normals are available, and otherwise from comparing that distance with
the mean distance to the ``kd`` nearest points.

Every non-empty voxel is classified by the signs at its 8 corners and
triangulated with the classic lookup tables in :mod:`.mc_tables`. A corner
counts as inside when its value is not positive, so sample points that sit
exactly on a lattice corner still produce surface. Vertices are shared
between the faces a voxel emits for the same edge. Faces are wound so that
their normals point from negative toward positive field values, i.e. along
outward input normals.
"""

from __future__ import annotations

import numpy as np
import warp as wp

from ..core.errors import AlgorithmError
from ..core.types import Vec3, VoxelCoord, nparray
from ..geometry.hash_grid import HashGrid
from ..geometry.mc_tables import CORNER_OFFSETS, EDGE_TABLE, EDGE_VERTICES, TRI_TABLE
from ..geometry.search_tree import SearchIndex
from ..geometry.types import Mesh
from ..utils import logger as msg

INTERPOLATION_EPS = 1.0e-10
"""Tolerance for treating a corner value as zero, or two corner values as equal."""

_CORNER_BITS = 1 << np.arange(8, dtype=np.int64)


def interpolate_edge(p1: nparray, p2: nparray, d1: float, d2: float) -> nparray:
    """Return the zero crossing of the field along the edge ``p1 -> p2``.

    ``d1`` and ``d2`` are the field values at the endpoints.
    """
    if abs(d1) < INTERPOLATION_EPS:
        return p1
    if abs(d2) < INTERPOLATION_EPS:
        return p2
    if abs(d1 - d2) < INTERPOLATION_EPS:
        return p1
    t = d1 / (d1 - d2)
    return p1 + t * (p2 - p1)


class MarchingCubes:
    """Marching Cubes surface extraction driven by a point-based distance field.

    Args:
        grid: Voxelization of the point set; its non-empty voxels are triangulated.
        index: Search index over the same points, used for field evaluation.
        normals: Optional per-point normals, shape (N, 3), orienting the field sign.
        kd: Number of neighbors used for each field evaluation.
        device: Warp device used for the vertex normal computation.
    """

    def __init__(
        self,
        grid: HashGrid,
        index: SearchIndex,
        normals: nparray | None = None,
        kd: int = 5,
        device: wp.DeviceLike = None,
    ):
        self.grid = grid
        self.index = index
        self.normals = None if normals is None else np.asarray(normals, dtype=np.float64).reshape(-1, 3)
        if self.normals is not None and len(self.normals) != index.num_points:
            raise ValueError(f"Expected {index.num_points} normals, got {len(self.normals)}")
        self.kd = int(kd)
        self.device = device

        self.distance_cache: dict[VoxelCoord, float] = {}
        """Field value per voxel coordinate, valid for the current extraction pass."""
        self.vertex_map: dict[tuple[VoxelCoord, int], int] = {}
        """Output vertex index per ``(voxel, edge id)``."""

    def reset(self):
        """Drop the field cache, the vertex map and the per-cell state of the grid."""
        self.distance_cache.clear()
        self.vertex_map.clear()
        self.grid.reset()

    def evaluate(self, positions: nparray) -> nparray:
        """Evaluate the signed field at a batch of world positions, bypassing the cache."""
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        if self.kd <= 0 or len(positions) == 0:
            return np.ones(len(positions), dtype=np.float64)

        dists, idx = self.index.query(positions, self.kd)
        if dists.shape[1] == 0:
            return np.ones(len(positions), dtype=np.float64)
        nearest_dist = dists[:, 0]
        mean_dist = dists.mean(axis=1)

        if self.normals is not None:
            nearest = self.index.points[idx[:, 0]]
            facing = np.einsum("ij,ij->i", positions - nearest, self.normals[idx[:, 0]])
            sign = np.where(facing >= 0.0, 1.0, -1.0)
        else:
            sign = np.where(nearest_dist > mean_dist, 1.0, -1.0)
        return sign * nearest_dist

    def distance(self, p: Vec3) -> float:
        """Signed field value at ``p``, cached per voxel coordinate."""
        coord = self.grid.point_to_cell(p)
        cached = self.distance_cache.get(coord)
        if cached is not None:
            return cached
        value = float(self.evaluate(p)[0])
        self._store(coord, value)
        return value

    def _store(self, coord: VoxelCoord, value: float):
        self.distance_cache[coord] = value
        cell = self.grid.get_cell(coord)
        if cell is not None:
            cell.distance = value

    def _corner_values(self, corners: nparray) -> nparray:
        """Field values at the lattice corners ``corners`` of shape (C, 8, 3).

        Shared corners are evaluated once, in a single batched neighbor query.
        """
        flat = corners.reshape(-1, 3)
        unique, inverse = np.unique(flat, axis=0, return_inverse=True)
        inverse = inverse.reshape(-1)

        keys = [(int(c[0]), int(c[1]), int(c[2])) for c in unique]
        missing = [i for i, key in enumerate(keys) if key not in self.distance_cache]
        if missing:
            positions = self.grid.origin + unique[missing].astype(np.float64) * self.grid.voxel_size
            for i, value in zip(missing, self.evaluate(positions), strict=True):
                self._store(keys[i], float(value))

        values = np.array([self.distance_cache[key] for key in keys], dtype=np.float64)
        return values[inverse].reshape(corners.shape[:2])

    def _vertex(self, coord: VoxelCoord, edge: int, position: nparray, vertices: list[nparray]) -> int:
        key = (coord, edge)
        index = self.vertex_map.get(key)
        if index is None:
            index = len(vertices)
            vertices.append(position)
            self.vertex_map[key] = index
        return index

    def extract(self) -> Mesh:
        """Triangulate the zero level of the field over every non-empty voxel.

        Each call starts from empty caches, so repeated calls on an unchanged
        grid return identical meshes.

        Raises:
            AlgorithmError: If no voxel is crossed by the surface.
        """
        self.reset()
        coords = list(self.grid.cell_coords())
        if not coords:
            raise AlgorithmError("No surface found - check voxel size and point distribution")

        corners = np.asarray(coords, dtype=np.int64)[:, None, :] + CORNER_OFFSETS[None, :, :]
        values = self._corner_values(corners)
        cube_indices = ((values <= 0.0) * _CORNER_BITS).sum(axis=1)

        origin = self.grid.origin
        voxel_size = self.grid.voxel_size
        vertices: list[nparray] = []
        faces: list[tuple[int, int, int]] = []

        for i, coord in enumerate(coords):
            self.grid.get_cell(coord).processed = True

            cube_index = int(cube_indices[i])
            if cube_index == 0 or cube_index == 255:
                continue
            edge_mask = int(EDGE_TABLE[cube_index])
            if edge_mask == 0:
                continue

            positions = origin + corners[i].astype(np.float64) * voxel_size
            corner_values = values[i]
            crossings = {}
            for edge in range(12):
                if edge_mask & (1 << edge):
                    a, b = EDGE_VERTICES[edge]
                    crossings[edge] = interpolate_edge(positions[a], positions[b], corner_values[a], corner_values[b])

            triangles = TRI_TABLE[cube_index]
            for t in range(0, 15, 3):
                if triangles[t] < 0:
                    break
                # table triangles face the inside; swap two edges so faces point toward positive values
                e0, e1, e2 = (int(edge) for edge in triangles[t : t + 3])
                faces.append(
                    (
                        self._vertex(coord, e0, crossings[e0], vertices),
                        self._vertex(coord, e2, crossings[e2], vertices),
                        self._vertex(coord, e1, crossings[e1], vertices),
                    )
                )

        if not vertices:
            raise AlgorithmError("No surface found - check voxel size and point distribution")

        mesh = Mesh()
        mesh.append_vertices(np.asarray(vertices))
        mesh.append_faces(np.asarray(faces, dtype=np.int32))
        mesh.compute_vertex_normals(device=self.device)
        msg.debug(
            f"Marching cubes: {len(coords)} voxels, {len(self.distance_cache)} corner evaluations, "
            f"{mesh.num_vertices} vertices, {mesh.num_faces} faces"
        )
        return mesh
