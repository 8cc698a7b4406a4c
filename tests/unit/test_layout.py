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

import pytest

from slurm_torchrun import LayoutInvariantViolation, LayoutView, Node


@pytest.mark.parametrize(
    "expr, expected",
    [
        ("node1", ["node1"]),
        ("node1,node2", ["node1", "node2"]),
        ("gpu[01-03,07],login1", ["gpu01", "gpu02", "gpu03", "gpu07", "login1"]),
        ("n[8-11]", ["n8", "n9", "n10", "n11"]),
        ("rack[1-2]-n[0-1]", ["rack1-n0", "rack1-n1", "rack2-n0", "rack2-n1"]),
        ("a[1],b", ["a1", "b"]),
    ],
)
def test_from_node_list_expands_hostlist(expr, expected):
    layout = LayoutView.from_node_list(expr, [[i] for i in range(len(expected))])
    assert [node.hostname for node in layout.nodes] == expected


@pytest.mark.parametrize("expr", ["n[1-", "n1]", "n[3-1]", "n[a-b]"])
def test_from_node_list_malformed_hostlist(expr):
    with pytest.raises(ValueError, match="Invalid hostlist"):
        LayoutView.from_node_list(expr, [[0]])


def test_from_node_list():
    layout = LayoutView.from_node_list("gpu[1-2]", [[1, 0], [3, 2]])
    assert layout.node_count == 2
    assert layout.world_size == 4
    assert layout.hostname(1) == "gpu2"
    assert layout.global_rank(0, 1) == 0
    assert layout.tasks_on(0) == 2
    layout.validate()


def test_from_node_list_size_mismatch():
    with pytest.raises(ValueError, match="names 3 nodes"):
        LayoutView.from_node_list("n[1-3]", [[0], [1]])


def test_block_layout():
    layout = LayoutView.block(["a", "b", "c"], 2)
    assert [node.task_ids for node in layout.nodes] == [(0, 1), (2, 3), (4, 5)]
    assert list(layout.positions()) == [(0, 0), (0, 1), (1, 0), (1, 1), (2, 0), (2, 1)]


def test_layout_is_immutable():
    layout = LayoutView([Node("a", [0, 1])])
    assert isinstance(layout.nodes, tuple)
    assert isinstance(layout.nodes[0].task_ids, tuple)
    with pytest.raises(AttributeError):
        layout.nodes = ()


@pytest.mark.parametrize(
    "task_ids",
    [
        [[1, 2], [3, 4]],  # no rank 0
        [[0, 1], [1, 2]],  # duplicate
        [[0, 1], [2, 5]],  # gap
    ],
)
def test_validate_rejects_non_permutation(task_ids):
    layout = LayoutView([Node(f"n{i}", tids) for i, tids in enumerate(task_ids)])
    with pytest.raises(LayoutInvariantViolation):
        layout.validate()
