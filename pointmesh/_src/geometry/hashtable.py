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

"""GPU hash table mapping 64-bit voxel keys to table slots.

Many threads can insert concurrently: a slot is claimed with an atomic
compare-and-swap on the key array, so points that fall into the same voxel
resolve to the same slot without locks. The table stores no values; callers
index their own storage with the returned slot.

The capacity is a power of two so that the probe sequence can wrap with a
bitwise AND.
"""

from __future__ import annotations

import numpy as np
import warp as wp

# Sentinel value for empty slots
_HASHTABLE_EMPTY_KEY_VALUE = 0xFFFFFFFFFFFFFFFF
HASHTABLE_EMPTY_KEY = wp.constant(wp.uint64(_HASHTABLE_EMPTY_KEY_VALUE))


def _next_power_of_two(n: int) -> int:
    """Round up to the next power of two."""
    if n <= 0:
        return 1
    return 1 << (int(n) - 1).bit_length()


@wp.func
def _hashtable_hash(key: wp.uint64, capacity_mask: int) -> int:
    """Mix the key bits (MurmurHash3 finalizer step) and wrap to the table."""
    h = key
    h = h ^ (h >> wp.uint64(33))
    h = h * wp.uint64(0xFF51AFD7ED558CCD)
    h = h ^ (h >> wp.uint64(33))
    return int(h) & capacity_mask


@wp.func
def hashtable_find_or_insert(
    key: wp.uint64,
    keys: wp.array(dtype=wp.uint64),
    active_slots: wp.array(dtype=wp.int32),
) -> int:
    """Return the slot holding ``key``, claiming an empty slot if it is new.

    Each probe is a single compare-and-swap: it either claims the empty slot
    or reports the key already stored there.

    Args:
        key: The voxel key to look up.
        keys: Slot keys, length a power of two.
        active_slots: Claimed slots in claim order, length ``capacity + 1``;
            the last entry counts them.

    Returns:
        Slot index (>= 0), or -1 if the table is full.
    """
    mask = keys.shape[0] - 1
    slot = _hashtable_hash(key, mask)
    probes = int(0)

    while probes <= mask:
        stored = wp.atomic_cas(keys, slot, HASHTABLE_EMPTY_KEY, key)
        if stored == HASHTABLE_EMPTY_KEY:
            claimed = wp.atomic_add(active_slots, mask + 1, 1)
            if claimed <= mask:
                active_slots[claimed] = slot
            return slot
        if stored == key:
            return slot
        slot = (slot + 1) & mask
        probes = probes + 1

    return -1


@wp.kernel
def _hashtable_insert_kernel(
    keys_in: wp.array(dtype=wp.uint64),
    keys: wp.array(dtype=wp.uint64),
    active_slots: wp.array(dtype=wp.int32),
    # output
    slots: wp.array(dtype=wp.int32),
):
    tid = wp.tid()
    slots[tid] = hashtable_find_or_insert(keys_in[tid], keys, active_slots)


class HashTable:
    """Open-addressing hash table with linear probing, for concurrent inserts.

    Attributes:
        capacity: Maximum number of unique keys (power of two).
        keys: Warp array storing the keys.
        active_slots: Claimed slot indices in claim order, plus their count
            at index ``capacity``.
        device: The device where the table is allocated.
    """

    def __init__(self, capacity: int, device: wp.DeviceLike = None):
        """Initialize an empty hash table.

        Args:
            capacity: Maximum number of unique keys. Rounded up to power of two.
            device: Warp device (e.g., "cuda:0", "cpu").
        """
        self.capacity = _next_power_of_two(capacity)
        self.device = device

        self.keys = wp.zeros(self.capacity, dtype=wp.uint64, device=device)
        self.active_slots = wp.zeros(self.capacity + 1, dtype=wp.int32, device=device)

        self.clear()

    def clear(self):
        """Clear all entries in the hash table."""
        self.keys.fill_(_HASHTABLE_EMPTY_KEY_VALUE)
        self.active_slots.zero_()

    @property
    def num_active(self) -> int:
        """Number of distinct keys stored. Synchronizes with the device."""
        return min(int(self.active_slots.numpy()[self.capacity]), self.capacity)

    def insert(self, keys: wp.array | np.ndarray) -> wp.array:
        """Insert a batch of keys in parallel and return the slot of each one.

        Equal keys receive equal slots. A slot of -1 means the table ran full.
        """
        if not isinstance(keys, wp.array):
            keys = wp.array(np.asarray(keys, dtype=np.uint64), dtype=wp.uint64, device=self.device)
        slots = wp.empty(len(keys), dtype=wp.int32, device=self.device)
        if len(keys) == 0:
            return slots
        wp.launch(
            _hashtable_insert_kernel,
            dim=len(keys),
            inputs=[keys, self.keys, self.active_slots],
            outputs=[slots],
            device=self.device,
        )
        return slots

