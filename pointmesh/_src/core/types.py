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

from typing import Any

import numpy as np
import numpy.typing as npt
import warp as wp

nparray = npt.NDArray[Any]
"""Generic NumPy array alias used in signatures."""

Vec3 = list[float] | tuple[float, float, float] | wp.vec3 | nparray
"""Anything that can be interpreted as a 3D vector."""

VoxelCoord = tuple[int, int, int]
"""Integer triple identifying a voxel of a :class:`~pointmesh.HashGrid`."""


def as_points(values: Any, name: str = "points", dtype: type = np.float64) -> nparray:
    """Convert ``values`` to a contiguous ``(N, 3)`` array.

    Raises:
        ValueError: If ``values`` cannot be viewed as a list of 3D vectors.
    """
    arr = np.asarray(values, dtype=dtype)
    if arr.size == 0:
        return np.zeros((0, 3), dtype=dtype)
    if arr.ndim == 1 and arr.shape[0] == 3:
        arr = arr.reshape(1, 3)
    if arr.ndim != 2 or arr.shape[1] != 3:
        raise ValueError(f"{name} must have shape (N, 3), got {arr.shape}")
    return np.ascontiguousarray(arr)
