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

"""Static nearest-neighbor index over a point set.

The index is a thin layer over :class:`scipy.spatial.cKDTree`. It normalizes
the result shapes (always arrays, never scalars), clamps ``k`` to the number
of indexed points and forwards the package's thread count to the tree's
``workers`` argument.

Under exact distance ties the order of the returned neighbors follows the
tree traversal and is not guaranteed to be stable.
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from scipy.spatial import cKDTree

from ..core.errors import NotEnoughPoints
from ..core.types import Vec3, as_points, nparray


def _workers(num_threads: int) -> int:
    """Translate a thread count (``0`` = automatic) to the ``workers`` argument of cKDTree."""
    return -1 if num_threads <= 0 else int(num_threads)


class SearchIndex:
    """k-d tree over an immutable point set.

    Args:
        points: Indexed positions, shape (N, 3) with N >= 1.
        num_threads: Parallelism of batched queries; ``0`` uses all cores.

    Raises:
        NotEnoughPoints: If ``points`` is empty.
    """

    def __init__(self, points: Sequence[Vec3] | nparray, num_threads: int = 0):
        self._points = as_points(points, "points", np.float64)
        if len(self._points) == 0:
            raise NotEnoughPoints(0)
        self._tree = cKDTree(self._points)
        self.workers = _workers(num_threads)

    @property
    def num_points(self) -> int:
        return len(self._points)

    @property
    def points(self) -> nparray:
        return self._points

    def get_point(self, index: int) -> nparray:
        return self._points[index]

    def query(self, queries: Sequence[Vec3] | nparray, k: int) -> tuple[nparray, nparray]:
        """Batched k-nearest query.

        Args:
            queries: Query positions, shape (M, 3).
            k: Number of neighbors per query; clamped to the number of points.

        Returns:
            ``(distances, indices)``, each of shape (M, min(k, N)), sorted by
            ascending distance along the last axis.
        """
        queries = as_points(queries, "queries", np.float64)
        k = min(int(k), self.num_points)
        if k <= 0 or len(queries) == 0:
            shape = (len(queries), max(k, 0))
            return np.zeros(shape, dtype=np.float64), np.zeros(shape, dtype=np.int64)
        # a list of orders keeps the trailing axis even for k == 1
        distances, indices = self._tree.query(queries, k=list(range(1, k + 1)), workers=self.workers)
        return np.asarray(distances, dtype=np.float64), np.asarray(indices, dtype=np.int64)

    def k_nearest_indices(self, query: Vec3, k: int) -> nparray:
        """Return the indices of the ``min(k, N)`` points closest to ``query``, nearest first."""
        _, indices = self.query(np.asarray(query, dtype=np.float64).reshape(1, 3), k)
        return indices[0]

    def k_nearest(self, query: Vec3, k: int) -> nparray:
        """Return the ``min(k, N)`` points closest to ``query``, nearest first, shape (K, 3)."""
        return self._points[self.k_nearest_indices(query, k)]

    def radius_indices(self, query: Vec3, r: float) -> nparray:
        """Return the indices of all points within distance ``r`` of ``query`` (boundary included)."""
        if r < 0.0:
            return np.zeros(0, dtype=np.int64)
        indices = self._tree.query_ball_point(np.asarray(query, dtype=np.float64).reshape(3), r)
        return np.asarray(indices, dtype=np.int64)

    def radius(self, query: Vec3, r: float) -> nparray:
        """Return all points within distance ``r`` of ``query``, in no particular order."""
        return self._points[self.radius_indices(query, r)]
