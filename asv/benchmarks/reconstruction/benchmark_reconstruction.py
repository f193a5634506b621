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

"""ASV benchmarks for the reconstruction stages.

Measures:
1. Hash grid construction (parallel voxel assignment)
2. Normal estimation (batched neighbor query + per-point PCA kernel)
3. Marching Cubes extraction
"""

import numpy as np
import warp as wp

wp.config.quiet = True

from pointmesh import HashGrid, MarchingCubes, SearchIndex, estimate_normals

DEVICES = ["cpu"] + (["cuda:0"] if wp.get_cuda_device_count() > 0 else [])


def fibonacci_sphere(n: int) -> np.ndarray:
    i = np.arange(n, dtype=np.float64) + 0.5
    phi = np.arccos(1.0 - 2.0 * i / n)
    theta = np.pi * (1.0 + 5.0**0.5) * i
    return np.stack([np.cos(theta) * np.sin(phi), np.sin(theta) * np.sin(phi), np.cos(phi)], axis=1)


class HashGridBuild:
    """Benchmark voxel grid construction."""

    repeat = 3
    number = 1
    params = [[10_000, 100_000, 1_000_000], DEVICES]
    param_names = ["num_points", "device"]

    def setup(self, num_points, device):
        self.points = np.random.default_rng(0).uniform(-1.0, 1.0, size=(num_points, 3))
        # warm up kernel compilation
        HashGrid(self.points[:100], 0.05, device=device)
        wp.synchronize()

    def time_build(self, num_points, device):
        HashGrid(self.points, 0.05, device=device)
        wp.synchronize()


class NormalEstimation:
    """Benchmark per-point normal estimation."""

    repeat = 3
    number = 1
    params = [[10_000, 100_000], [10, 30]]
    param_names = ["num_points", "k"]

    def setup(self, num_points, k):
        self.points = fibonacci_sphere(num_points)
        self.index = SearchIndex(self.points)
        estimate_normals(self.points[:100], k, device="cpu")

    def time_estimate(self, num_points, k):
        estimate_normals(self.points, k, index=self.index, device="cpu")


class MarchingCubesExtract:
    """Benchmark surface extraction over a sphere."""

    repeat = 3
    number = 1
    params = [[0.1, 0.05, 0.025]]
    param_names = ["voxel_size"]

    def setup(self, voxel_size):
        points = fibonacci_sphere(20_000)
        grid = HashGrid(points, voxel_size, device="cpu")
        self.extractor = MarchingCubes(grid, SearchIndex(points), points.copy(), kd=5, device="cpu")

    def time_extract(self, voxel_size):
        self.extractor.extract()
