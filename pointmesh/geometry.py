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

from ._src.geometry import GridCell, HashGrid, HashTable, Mesh, PointCloud, SearchIndex
from ._src.geometry.mc_tables import CORNER_OFFSETS, EDGE_TABLE, EDGE_VERTICES, TRI_TABLE
from ._src.reconstruction.marching_cubes import interpolate_edge

__all__ = [
    "CORNER_OFFSETS",
    "EDGE_TABLE",
    "EDGE_VERTICES",
    "TRI_TABLE",
    "GridCell",
    "HashGrid",
    "HashTable",
    "Mesh",
    "PointCloud",
    "SearchIndex",
    "interpolate_edge",
]
