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
from typing import Iterator, Sequence, Tuple

import hostlist

from .exception import LayoutInvariantViolation


@dataclasses.dataclass(frozen=True)
class Node:
    r'''
    One node of a step layout.

    Args:
        hostname: node name as known to the cluster control plane
        task_ids: global task ids of the tasks running on this node, ordered
            by local index
    '''

    hostname: str
    task_ids: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, 'task_ids', tuple(self.task_ids))

    @property
    def task_count(self) -> int:
        return len(self.task_ids)


@dataclasses.dataclass(frozen=True)
class LayoutView:
    r'''
    Read-only view of a job step layout: the ordered nodes of the step and the
    global task id assigned to every (node index, local index) pair.

    The view is produced by the job layout subsystem; nothing here mutates it.
    '''

    nodes: Tuple[Node, ...]

    def __post_init__(self):
        object.__setattr__(self, 'nodes', tuple(self.nodes))

    @classmethod
    def from_node_list(cls, node_list: str, task_ids: Sequence[Sequence[int]]) -> 'LayoutView':
        r'''
        Builds a view from a compressed Slurm hostlist expression, e.g.
        ``"gpu[01-03,07]"``, and the per-node global task ids, as found in a
        step layout.

        Raises:
            ValueError: the hostlist is malformed or names a different number
                of nodes than ``task_ids``
        '''
        try:
            hostnames = hostlist.expand_hostlist(node_list, allow_duplicates=True)
        except hostlist.BadHostlist as e:
            raise ValueError(f"Invalid hostlist {node_list!r}: {e}") from e
        if len(hostnames) != len(task_ids):
            raise ValueError(
                f"Hostlist {node_list!r} names {len(hostnames)} nodes, "
                f"but task ids were given for {len(task_ids)} nodes"
            )
        return cls(tuple(Node(host, tuple(tids)) for host, tids in zip(hostnames, task_ids)))

    @classmethod
    def block(cls, hostnames: Sequence[str], tasks_per_node: int) -> 'LayoutView':
        r'''
        Builds the block distribution: consecutive global ranks fill one node
        before moving to the next.
        '''
        return cls(
            tuple(
                Node(host, tuple(range(idx * tasks_per_node, (idx + 1) * tasks_per_node)))
                for idx, host in enumerate(hostnames)
            )
        )

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def world_size(self) -> int:
        return sum(node.task_count for node in self.nodes)

    def hostname(self, node_index: int) -> str:
        return self.nodes[node_index].hostname

    def tasks_on(self, node_index: int) -> int:
        return self.nodes[node_index].task_count

    def global_rank(self, node_index: int, local_index: int) -> int:
        return self.nodes[node_index].task_ids[local_index]

    def positions(self) -> Iterator[Tuple[int, int]]:
        r'''
        Yields every (node index, local index) pair in layout order.
        '''
        for node_index, node in enumerate(self.nodes):
            for local_index in range(node.task_count):
                yield node_index, local_index

    def validate(self) -> None:
        r'''
        Checks that global task ids are a permutation of ``[0, world_size)``.

        Raises:
            LayoutInvariantViolation: when a task id is missing or duplicated
        '''
        seen = sorted(tid for node in self.nodes for tid in node.task_ids)
        if seen != list(range(self.world_size)):
            raise LayoutInvariantViolation(
                f"Global task ids {seen} are not a permutation of [0, {self.world_size})"
            )
