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

"""Sparse uniform voxel grid over a point set.

The grid covers the bounding box of the points, padded by one voxel on every
side. Only voxels that contain at least one point are stored; each stored
:class:`GridCell` keeps the indices of its points, a cached scalar field
value and a flag telling whether surface extraction has visited it.

Construction assigns points to voxels in parallel. Every point's voxel
coordinate is packed into a 63-bit Morton key and inserted into a
:class:`~pointmesh._src.geometry.hashtable.HashTable` by one Warp thread per
point. Points that share a voxel receive the same table slot, so the cells
are then assembled on the host by grouping points per slot.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

import numpy as np
import warp as wp

from ..core.errors import InvalidParameters, NotEnoughPoints
from ..core.types import Vec3, VoxelCoord, as_points, nparray
from ..utils import logger as msg
from .hashtable import HashTable
from .mc_tables import CORNER_OFFSETS

VOXEL_COORD_OFFSET = wp.constant(wp.int32(1 << 20))  # 1,048,576
VOXEL_COORD_MASK = wp.constant(wp.uint64(0x1FFFFF))  # 21 bits = 2,097,151

MAX_VOXEL_COORD = (1 << 20) - 1
"""Largest voxel coordinate along one axis that the Morton key can represent."""


@wp.func
def _split_by_3(x: wp.uint64) -> wp.uint64:
    """Spread 21-bit integer into 63 bits with 2 zeros between each bit (for Morton encoding)."""
    x = x & wp.uint64(0x1FFFFF)
    x = (x | (x << wp.uint64(32))) & wp.uint64(0x1F00000000FFFF)
    x = (x | (x << wp.uint64(16))) & wp.uint64(0x1F0000FF0000FF)
    x = (x | (x << wp.uint64(8))) & wp.uint64(0x100F00F00F00F00F)
    x = (x | (x << wp.uint64(4))) & wp.uint64(0x10C30C30C30C30C3)
    x = (x | (x << wp.uint64(2))) & wp.uint64(0x1249249249249249)
    return x


@wp.func
def voxel_key(c: wp.vec3i) -> wp.uint64:
    """Encode a voxel coordinate as a 63-bit Morton key.

    Each component is shifted by VOXEL_COORD_OFFSET so that negative
    coordinates map to the unsigned 21-bit range before interleaving.
    """
    ux = wp.uint64(c[0] + VOXEL_COORD_OFFSET) & VOXEL_COORD_MASK
    uy = wp.uint64(c[1] + VOXEL_COORD_OFFSET) & VOXEL_COORD_MASK
    uz = wp.uint64(c[2] + VOXEL_COORD_OFFSET) & VOXEL_COORD_MASK
    return _split_by_3(ux) | (_split_by_3(uy) << wp.uint64(1)) | (_split_by_3(uz) << wp.uint64(2))


@wp.kernel
def compute_voxel_keys(
    coords: wp.array(dtype=wp.vec3i),
    # output
    keys: wp.array(dtype=wp.uint64),
):
    tid = wp.tid()
    keys[tid] = voxel_key(coords[tid])


@dataclass
class GridCell:
    """Contents of one non-empty voxel."""

    point_indices: list[int] = field(default_factory=list)
    """Indices of the points that fall inside the voxel."""
    distance: float | None = None
    """Cached field value at the voxel's minimum corner, ``None`` until evaluated."""
    processed: bool = False
    """Whether surface extraction has visited the voxel."""


class HashGrid:
    """Uniform voxel grid storing the points of a point set per voxel.

    Example:

        .. code-block:: python

            grid = HashGrid(points, voxel_size=0.1)
            for coord in grid.cell_coords():
                cell = grid.get_cell(coord)
                print(coord, cell.point_indices)

    Args:
        points: Point positions, shape (N, 3), N >= 1.
        voxel_size: Edge length of a voxel, must be positive.
        device: Warp device used for the parallel voxel assignment.

    Raises:
        InvalidParameters: If ``voxel_size`` is not positive, or the points
            span more voxels than a voxel key can encode.
        NotEnoughPoints: If ``points`` is empty.
    """

    def __init__(self, points: Sequence[Vec3] | nparray, voxel_size: float, device: wp.DeviceLike = None):
        if not voxel_size > 0.0 or not math.isfinite(voxel_size):
            raise InvalidParameters(f"voxel size must be positive and finite, got {voxel_size}")
        self._points = as_points(points, "points", np.float64)
        if len(self._points) == 0:
            raise NotEnoughPoints(0)

        self.voxel_size = float(voxel_size)
        self.device = wp.get_device(device)

        lo = self._points.min(axis=0) - self.voxel_size
        hi = self._points.max(axis=0) + self.voxel_size
        self.origin = lo
        self.bounding_box = (lo, hi)
        self.dims = tuple(int(math.ceil(e / self.voxel_size)) + 1 for e in (hi - lo))

        self._cells: dict[VoxelCoord, GridCell] = {}
        self._build()

    def _build(self):
        coords = self.points_to_cells(self._points)
        if np.abs(coords).max() > MAX_VOXEL_COORD:
            raise InvalidParameters(
                f"voxel size {self.voxel_size} is too small for a point cloud spanning {self.dims} voxels"
            )

        coords_wp = wp.array(coords.astype(np.int32), dtype=wp.vec3i, device=self.device)
        keys = wp.empty(len(coords), dtype=wp.uint64, device=self.device)
        wp.launch(compute_voxel_keys, dim=len(coords), inputs=[coords_wp], outputs=[keys], device=self.device)

        table = HashTable(2 * len(coords), device=self.device)
        slots = table.insert(keys).numpy()
        if np.any(slots < 0):
            raise RuntimeError("Voxel hash table overflow")

        # group points per slot; a stable sort keeps point indices ascending inside each group
        order = np.argsort(slots, kind="stable")
        boundaries = np.flatnonzero(np.diff(slots[order])) + 1
        groups = np.split(order, boundaries)
        # cells are stored in the order their voxel is first hit when walking the points
        groups.sort(key=lambda g: g[0])
        for group in groups:
            key = tuple(int(v) for v in coords[group[0]])
            self._cells[key] = GridCell(point_indices=group.tolist())

        msg.debug(
            f"HashGrid: {len(self._points)} points in {len(self._cells)} cells "
            f"(dims={self.dims}, table entries={table.num_active})"
        )

    @property
    def points(self) -> nparray:
        return self._points

    @property
    def num_cells(self) -> int:
        return len(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __contains__(self, coord: VoxelCoord) -> bool:
        return tuple(coord) in self._cells

    def point_to_cell(self, p: Vec3) -> VoxelCoord:
        """Return the coordinate of the voxel containing world position ``p``."""
        c = np.floor((np.asarray(p, dtype=np.float64).reshape(3) - self.origin) / self.voxel_size)
        return int(c[0]), int(c[1]), int(c[2])

    def points_to_cells(self, points: nparray) -> nparray:
        """Vectorized :meth:`point_to_cell`, returns an (N, 3) int64 array."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        return np.floor((points - self.origin) / self.voxel_size).astype(np.int64)

    def cell_corner(self, coord: VoxelCoord) -> nparray:
        """World position of the minimum corner of voxel ``coord``."""
        return self.origin + np.asarray(coord, dtype=np.float64) * self.voxel_size

    def cell_center(self, coord: VoxelCoord) -> nparray:
        """World position of the center of voxel ``coord``."""
        return self.origin + (np.asarray(coord, dtype=np.float64) + 0.5) * self.voxel_size

    def corner_coords(self, coord: VoxelCoord) -> nparray:
        """Lattice coordinates of the 8 corners of voxel ``coord``, shape (8, 3), in Marching Cubes order."""
        return np.asarray(coord, dtype=np.int64).reshape(1, 3) + CORNER_OFFSETS

    def cell_corners(self, coord: VoxelCoord) -> nparray:
        """World positions of the 8 corners of voxel ``coord``, shape (8, 3), in Marching Cubes order."""
        return self.origin + self.corner_coords(coord).astype(np.float64) * self.voxel_size

    def get_cell(self, coord: VoxelCoord) -> GridCell | None:
        """Return the cell at ``coord`` or ``None``. Never creates a cell."""
        return self._cells.get(tuple(coord))

    def set_cell(self, coord: VoxelCoord, cell: GridCell):
        self._cells[tuple(int(v) for v in coord)] = cell

    def insert(self, index: int) -> VoxelCoord:
        """Add point ``index`` of the indexed point set to its voxel and return the voxel coordinate."""
        if not 0 <= index < len(self._points):
            raise IndexError(f"Point index {index} out of range for {len(self._points)} points")
        coord = self.point_to_cell(self._points[index])
        cell = self._cells.get(coord)
        if cell is None:
            cell = GridCell()
            self._cells[coord] = cell
        cell.point_indices.append(int(index))
        return coord

    def cell_coords(self) -> Iterator[VoxelCoord]:
        """Iterate over the coordinates of all non-empty voxels."""
        return iter(list(self._cells.keys()))

    def cells(self) -> Iterator[tuple[VoxelCoord, GridCell]]:
        return iter(list(self._cells.items()))

    def reset(self):
        """Invalidate every cached field value and clear the processed flags."""
        for cell in self._cells.values():
            cell.distance = None
            cell.processed = False
