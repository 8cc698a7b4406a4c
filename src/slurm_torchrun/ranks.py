# SPDX-FileCopyrightText: NVIDIA CORPORATION & AFFILIATES
# Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
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

import dataclasses

from .layout import LayoutView


@dataclasses.dataclass(frozen=True)
class RankSet:
    r'''
    Rank identifiers of one task, as exported to the worker environment.

    Args:
        global_rank: unique position of the task in ``[0, world_size)``
        world_size: total number of tasks in the step
        local_rank: position of the task among the tasks of its node
        group_rank: index of the task's node in the step's node ordering
        local_world_size: number of tasks on the task's node
    '''

    global_rank: int
    world_size: int
    local_rank: int
    group_rank: int
    local_world_size: int

    @property
    def num_nodes(self) -> int:
        r'''
        Number of nodes, ``world_size // local_world_size``. Only meaningful
        for homogeneous layouts (same number of tasks on every node).
        '''
        return self.world_size // self.local_world_size


def derive_rank_set(layout: LayoutView, node_index: int, local_index: int) -> RankSet:
    r'''
    Computes the :py:class:`RankSet` of the task at ``(node_index,
    local_index)`` in ``layout``.

    Raises:
        IndexError: ``node_index`` or ``local_index`` is out of range
    '''
    if not 0 <= node_index < layout.node_count:
        raise IndexError(f"node index {node_index} out of range [0, {layout.node_count})")
    local_world_size = layout.tasks_on(node_index)
    if not 0 <= local_index < local_world_size:
        raise IndexError(
            f"local index {local_index} out of range [0, {local_world_size}) "
            f"on node {layout.hostname(node_index)}"
        )
    return RankSet(
        global_rank=layout.global_rank(node_index, local_index),
        world_size=layout.world_size,
        local_rank=local_index,
        group_rank=node_index,
        local_world_size=local_world_size,
    )
