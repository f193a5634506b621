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

"""Per-point surface normal estimation by local principal component analysis.

For every point the ``k + 1`` nearest neighbors (the point itself included)
are fetched in one batched k-d tree query. A Warp kernel then runs one
thread per point: it builds the neighborhood covariance, extracts the two
dominant eigenvectors with power iteration and deflation, and writes their
normalized cross product. Threads only read the shared neighbor table and
each one writes its own output slot.

The sign of an estimated normal is arbitrary; no consistent orientation is
propagated across the point set.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
import warp as wp

from ..core.errors import InvalidParameters, NotEnoughPoints
from ..core.types import Vec3, as_points, nparray
from ..geometry.search_tree import SearchIndex
from ..geometry.types import PointCloud
from ..utils import logger as msg

POWER_ITERATIONS = wp.constant(20)
"""Number of power iteration steps per eigenvector."""

EIGEN_EPS = wp.constant(1.0e-10)
"""Length below which an iterate or a cross product is treated as zero."""


@wp.func
def power_iteration(m: wp.mat33, seed: wp.vec3) -> wp.vec3:
    """Estimate the dominant eigenvector of the symmetric matrix ``m`` starting from ``seed``.

    An iterate shorter than EIGEN_EPS is rejected and the previous estimate is kept.
    """
    v = seed
    for _i in range(POWER_ITERATIONS):
        w = m @ v
        length = wp.length(w)
        if length > EIGEN_EPS:
            v = w / length
    return v


@wp.func
def plane_normal(cov: wp.mat33) -> wp.vec3:
    """Normal of the plane spanned by the two dominant eigenvectors of ``cov``."""
    v1 = power_iteration(cov, wp.vec3(1.0, 0.0, 0.0))

    # deflate with the Rayleigh quotient estimate of the first eigenvalue
    lambda1 = wp.dot(v1, cov @ v1)
    deflated = cov - lambda1 * wp.outer(v1, v1)

    seed = wp.vec3(1.0, 0.0, 0.0)
    if wp.abs(v1[0]) >= 0.9:
        seed = wp.vec3(0.0, 1.0, 0.0)
    v2 = power_iteration(deflated, seed)

    n = wp.cross(v1, v2)
    length = wp.length(n)
    if length < EIGEN_EPS:
        return wp.vec3(0.0, 0.0, 1.0)
    return n / length


@wp.kernel
def estimate_normals_kernel(
    points: wp.array(dtype=wp.vec3),
    neighbors: wp.array2d(dtype=wp.int32),
    # output
    normals: wp.array(dtype=wp.vec3),
):
    tid = wp.tid()
    count = neighbors.shape[1]

    centroid = wp.vec3(0.0)
    for j in range(count):
        centroid = centroid + points[neighbors[tid, j]]
    centroid = centroid / wp.float32(count)

    cov = wp.mat33(0.0)
    for j in range(count):
        d = points[neighbors[tid, j]] - centroid
        cov = cov + wp.outer(d, d)
    cov = cov / wp.float32(count)

    normals[tid] = plane_normal(cov)


def estimate_normals(
    points: PointCloud | Sequence[Vec3] | nparray,
    k: int,
    *,
    index: SearchIndex | None = None,
    num_threads: int = 0,
    device: wp.DeviceLike = None,
) -> nparray:
    """Estimate one unit normal per point from its ``k`` nearest neighbors.

    Args:
        points: The point set, as a :class:`PointCloud` or an (N, 3) array.
        k: Neighborhood size, excluding the point itself.
        index: Prebuilt search index over the same points. Built here if omitted.
        num_threads: Parallelism of the neighbor query, ``0`` uses all cores.
        device: Warp device the per-point kernel runs on.

    Returns:
        Array of shape (N, 3) with the normals, in input order.

    Raises:
        NotEnoughPoints: If there are fewer than ``k`` points.
        InvalidParameters: If ``k`` is negative. With ``k = 0`` every
            neighborhood is the point alone and every normal is ``(0, 0, 1)``.
    """
    if isinstance(points, PointCloud):
        points = points.points
    points = as_points(points, "points", np.float64)
    num_points = len(points)

    if k < 0:
        raise InvalidParameters(f"normal neighborhood size must be non-negative, got {k}")
    if num_points < k:
        raise NotEnoughPoints(num_points)

    if index is None:
        index = SearchIndex(points, num_threads=num_threads)
    _, neighbors = index.query(points, k + 1)

    # single precision covariance is only accurate close to the origin
    center = 0.5 * (points.min(axis=0) + points.max(axis=0))
    local = (points - center).astype(np.float32)

    device = wp.get_device(device)
    points_wp = wp.array(local, dtype=wp.vec3, device=device)
    neighbors_wp = wp.array(neighbors.astype(np.int32), dtype=wp.int32, device=device)
    normals_wp = wp.empty(num_points, dtype=wp.vec3, device=device)

    wp.launch(
        estimate_normals_kernel,
        dim=num_points,
        inputs=[points_wp, neighbors_wp],
        outputs=[normals_wp],
        device=device,
    )
    msg.debug(f"Estimated {num_points} normals from {neighbors.shape[1]} neighbors each on {device}")
    return normals_wp.numpy()
