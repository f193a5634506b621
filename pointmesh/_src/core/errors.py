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

"""Error types raised by the reconstruction pipeline.

All of them derive from :class:`ReconstructionError` so callers can catch any
pipeline failure with a single ``except`` clause. None of them are retried
internally; per-point and per-voxel degeneracies are handled with fallback
values instead of being raised.
"""


class ReconstructionError(Exception):
    """Base class for all surface reconstruction failures."""


class NotEnoughPoints(ReconstructionError):
    """The input point set is smaller than a required minimum.

    Attributes:
        count: Number of points that were supplied.
    """

    def __init__(self, count: int):
        self.count = int(count)
        super().__init__(f"Not enough points for reconstruction: {self.count}")


class InvalidParameters(ReconstructionError, ValueError):
    """A configuration value is malformed, e.g. a non-positive voxel size."""

    def __init__(self, description: str):
        self.description = description
        super().__init__(f"Invalid parameters: {description}")


class AlgorithmError(ReconstructionError, RuntimeError):
    """The reconstruction ran to completion but produced no geometry."""

    def __init__(self, description: str):
        self.description = description
        super().__init__(f"Algorithm error: {description}")
