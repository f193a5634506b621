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

"""End-to-end surface reconstruction from a point cloud."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import warp as wp

from ..core.errors import InvalidParameters, NotEnoughPoints
from ..core.types import Vec3, nparray
from ..geometry.hash_grid import HashGrid
from ..geometry.search_tree import SearchIndex
from ..geometry.types import Mesh, PointCloud
from ..utils import logger as msg
from .marching_cubes import MarchingCubes
from .normals import estimate_normals

MIN_POINTS = 10
"""Smallest point set :func:`reconstruct` accepts."""


@dataclass
class ReconstructionOptions:
    """
    Parameters of :func:`reconstruct`.
    """

    voxel_size: float = 10.0
    """Edge length of the grid voxels. Sets the spatial resolution of the output
    mesh and the number of field evaluations; it should be comparable to the
    spacing of the input points."""
    kn: int = 10
    """Number of neighbors used to estimate a point normal."""
    ki: int = 10
    """Number of neighbors for normal interpolation. Reserved, currently unused."""
    kd: int = 5
    """Number of neighbors used for each signed distance evaluation."""
    fill_holes: int = 0
    """Maximum size of holes to close after extraction. Post-processing hint, not applied by :func:`reconstruct`."""
    small_region_threshold: int = 10
    """Minimum face count of connected regions to keep. Post-processing hint, not applied by :func:`reconstruct`."""
    num_threads: int = 0
    """Number of threads for neighbor queries; ``0`` uses all available cores."""

    def validate(self):
        """Check the option values.

        Raises:
            InvalidParameters: If a value is out of range.
        """
        if not self.voxel_size > 0.0:
            raise InvalidParameters(f"voxel_size must be positive, got {self.voxel_size}")
        for name in ("kn", "ki", "kd", "fill_holes", "small_region_threshold", "num_threads"):
            if getattr(self, name) < 0:
                raise InvalidParameters(f"{name} must be non-negative, got {getattr(self, name)}")


def reconstruct(
    points: PointCloud | Sequence[Vec3] | nparray,
    options: ReconstructionOptions | None = None,
    *,
    normals: Sequence[Vec3] | nparray | None = None,
    device: wp.DeviceLike = None,
    verbose: bool = False,
) -> Mesh:
    """Reconstruct a triangle mesh from a point cloud.

    Normals are estimated with ``options.kn`` neighbors when the input has
    none; the caller's point cloud is left unmodified. The points are then
    voxelized with ``options.voxel_size`` and the surface is extracted with
    Marching Cubes using ``options.kd`` neighbors per field evaluation.

    Args:
        points: Input samples, a :class:`PointCloud` or an (N, 3) array.
        options: Reconstruction parameters, defaults to :class:`ReconstructionOptions`.
        normals: Per-point normals for array input. Ignored for a :class:`PointCloud`.
        device: Warp device used by the parallel stages.
        verbose: Print the time spent in each stage.

    Returns:
        The reconstructed mesh, with per-vertex normals.

    Raises:
        NotEnoughPoints: If fewer than 10 points are given.
        InvalidParameters: If ``options`` fail validation.
        AlgorithmError: If no surface could be extracted.
    """
    if isinstance(points, PointCloud):
        cloud = points.copy()
    else:
        cloud = PointCloud(points, normals)

    if cloud.num_points < MIN_POINTS:
        raise NotEnoughPoints(cloud.num_points)

    if options is None:
        options = ReconstructionOptions()
    options.validate()

    msg.info(f"Starting reconstruction with {cloud.num_points} points")
    msg.info(f"Voxel size: {options.voxel_size}")
    msg.debug(
        f"Not applied here: ki={options.ki}, fill_holes={options.fill_holes}, "
        f"small_region_threshold={options.small_region_threshold}"
    )

    with wp.ScopedTimer("reconstruct", active=verbose):
        with wp.ScopedTimer("search_index", active=verbose):
            index = SearchIndex(cloud.points, num_threads=options.num_threads)

        if not cloud.has_normals:
            msg.info("Estimating normals...")
            with wp.ScopedTimer("estimate_normals", active=verbose):
                cloud.normals = estimate_normals(cloud, options.kn, index=index, device=device)

        msg.info("Creating hash grid...")
        with wp.ScopedTimer("hash_grid", active=verbose):
            grid = HashGrid(cloud.points, options.voxel_size, device=device)
        msg.info(f"Grid cells: {grid.num_cells}")

        msg.info("Running marching cubes...")
        with wp.ScopedTimer("marching_cubes", active=verbose):
            mesh = MarchingCubes(grid, index, cloud.normals, kd=options.kd, device=device).extract()

    msg.info(f"Reconstruction complete: {mesh.num_vertices} vertices, {mesh.num_faces} faces")
    return mesh
