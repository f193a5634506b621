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

import warnings
from dataclasses import dataclass

import numpy as np
import warp as wp

from ..core.types import nparray
from ..geometry.types import Mesh

NORMAL_EPS = wp.constant(1.0e-10)


@wp.kernel
def accumulate_face_normals(
    points: wp.array(dtype=wp.vec3),
    indices: wp.array(dtype=wp.int32),
    # output
    normals: wp.array(dtype=wp.vec3),
):
    """Add the unit normal of every face to its three vertices. Degenerate faces add nothing."""
    face = wp.tid()
    i0 = indices[face * 3]
    i1 = indices[face * 3 + 1]
    i2 = indices[face * 3 + 2]
    v0 = points[i0]
    n = wp.cross(points[i1] - v0, points[i2] - v0)
    length = wp.length(n)
    if length > NORMAL_EPS:
        n = n / length
        wp.atomic_add(normals, i0, n)
        wp.atomic_add(normals, i1, n)
        wp.atomic_add(normals, i2, n)


@wp.kernel
def finalize_vertex_normals(normals: wp.array(dtype=wp.vec3)):
    """Normalize per-vertex normals in-place, falling back to +Z for vertices without a face."""
    tid = wp.tid()
    n = normals[tid]
    length = wp.length(n)
    if length > NORMAL_EPS:
        normals[tid] = n / length
    else:
        normals[tid] = wp.vec3(0.0, 0.0, 1.0)


def compute_vertex_normals(
    points: wp.array | nparray,
    indices: wp.array | nparray,
    *,
    device: wp.DeviceLike = None,
) -> wp.array | nparray:
    """Compute per-vertex normals as the normalized sum of incident unit face normals.

    Face normals follow the winding ``(v1 - v0) x (v2 - v0)``. Supports Warp
    and NumPy inputs; NumPy inputs run on the CPU unless ``device`` is given
    and return NumPy output.

    Args:
        points: Vertex positions (wp.vec3 array or (V, 3) NumPy array).
        indices: Triangle indices, flattened or (F, 3).
        device: Warp device to run on.

    Returns:
        Per-vertex normals matching the input array type.
    """
    if isinstance(points, wp.array):
        device_obj = points.device if device is None else wp.get_device(device)
        points_wp = points
    else:
        device_obj = wp.get_device("cpu") if device is None else wp.get_device(device)
        points_np = np.asarray(points, dtype=np.float32).reshape(-1, 3)
        points_wp = wp.array(points_np, dtype=wp.vec3, device=device_obj)

    if isinstance(indices, wp.array):
        indices_wp = indices if indices.dtype == wp.int32 else indices.view(dtype=wp.int32)
    else:
        indices_np = np.asarray(indices, dtype=np.int32)
        if indices_np.ndim not in (1, 2):
            raise ValueError("indices must be flat or (N, 3) for NumPy inputs.")
        indices_wp = wp.array(indices_np.reshape(-1), dtype=wp.int32, device=device_obj)

    normals_wp = wp.zeros(len(points_wp), dtype=wp.vec3, device=device_obj)
    if len(points_wp) > 0:
        if len(indices_wp) >= 3:
            wp.launch(
                accumulate_face_normals,
                dim=len(indices_wp) // 3,
                inputs=[points_wp, indices_wp],
                outputs=[normals_wp],
                device=device_obj,
            )
        wp.launch(finalize_vertex_normals, dim=len(normals_wp), inputs=[normals_wp], device=device_obj)

    if isinstance(points, wp.array):
        return normals_wp
    return normals_wp.numpy()


@dataclass
class MeshStats:
    """Summary statistics of a triangle mesh."""

    num_vertices: int = 0
    num_faces: int = 0
    min_edge_length: float = 0.0
    """Shortest triangle edge."""
    max_edge_length: float = 0.0
    """Longest triangle edge."""
    avg_edge_length: float = 0.0
    """Mean length over all face edges; edges shared by two faces count twice."""
    surface_area: float = 0.0
    """Sum of the triangle areas."""


def compute_mesh_stats(mesh: Mesh) -> MeshStats:
    """Compute vertex and face counts, edge length range and surface area of ``mesh``."""
    stats = MeshStats(num_vertices=mesh.num_vertices, num_faces=mesh.num_faces)
    if mesh.num_faces == 0:
        return stats

    tris = mesh.vertices.astype(np.float64)[mesh.faces]
    edges = np.concatenate(
        [tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 1], tris[:, 0] - tris[:, 2]],
        axis=0,
    )
    lengths = np.linalg.norm(edges, axis=1)
    areas = 0.5 * np.linalg.norm(np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0]), axis=1)

    stats.min_edge_length = float(lengths.min())
    stats.max_edge_length = float(lengths.max())
    stats.avg_edge_length = float(lengths.mean())
    stats.surface_area = float(areas.sum())
    return stats


def simplify_mesh(mesh: Mesh, target_ratio: float) -> Mesh:
    """Decimate ``mesh`` to ``target_ratio`` of its faces.

    Decimation is not implemented; the mesh is returned unchanged.
    """
    if not 0.0 < target_ratio <= 1.0:
        raise ValueError(f"target_ratio must be in (0, 1], got {target_ratio}")
    warnings.warn("simplify_mesh is not implemented; returning the mesh unchanged", stacklevel=2)
    return mesh


def fill_holes(mesh: Mesh, max_hole_size: int) -> Mesh:
    """Close boundary loops of at most ``max_hole_size`` edges.

    Hole filling is not implemented; the mesh is returned unchanged.
    """
    if max_hole_size < 0:
        raise ValueError(f"max_hole_size must be non-negative, got {max_hole_size}")
    warnings.warn("fill_holes is not implemented; returning the mesh unchanged", stacklevel=2)
    return mesh
