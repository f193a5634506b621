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

# ==================================================================================
# core
# ==================================================================================
from ._src.core import (
    AlgorithmError,
    InvalidParameters,
    NotEnoughPoints,
    ReconstructionError,
)
from ._version import __version__

__all__ = [
    "AlgorithmError",
    "InvalidParameters",
    "NotEnoughPoints",
    "ReconstructionError",
    "__version__",
]

# ==================================================================================
# geometry
# ==================================================================================
from ._src.geometry import (
    HashGrid,
    Mesh,
    PointCloud,
    SearchIndex,
)

__all__ += [
    "HashGrid",
    "Mesh",
    "PointCloud",
    "SearchIndex",
]

# ==================================================================================
# reconstruction
# ==================================================================================
from ._src.reconstruction import (  # noqa: E402
    MarchingCubes,
    ReconstructionOptions,
    estimate_normals,
    reconstruct,
)

__all__ += [
    "MarchingCubes",
    "ReconstructionOptions",
    "estimate_normals",
    "reconstruct",
]

# ==================================================================================
# submodule APIs
# ==================================================================================
from . import geometry, utils  # noqa: E402

__all__ += [
    "geometry",
    "utils",
]
