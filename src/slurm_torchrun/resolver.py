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
from typing import Optional, Tuple

from .discovery import (
    ControlPlaneResolver,
    DnsControlPlaneResolver,
    SelfAddressDiscovery,
    make_discovery,
)
from .exception import LayoutInvariantViolation, RendezvousUnreachable
from .layout import LayoutView
from .log import logger

# PyTorch Elastic's documented default rendezvous port
DEFAULT_RENDEZVOUS_PORT = 29400


@dataclasses.dataclass(frozen=True)
class RendezvousEndpoint:
    r'''
    The (address, port) pair every worker of a step initializes through.
    '''

    address: str
    port: int

    def __post_init__(self):
        if not 0 <= self.port <= 0xFFFF:
            raise ValueError(f"Port {self.port} is not a valid TCP port")


def find_rank_zero(layout: LayoutView) -> Tuple[int, int]:
    r'''
    Returns the (node index, local index) of the task holding global rank 0.

    Raises:
        LayoutInvariantViolation: no task holds global rank 0
    '''
    for node_index, local_index in layout.positions():
        if layout.global_rank(node_index, local_index) == 0:
            return node_index, local_index
    raise LayoutInvariantViolation("No node has task id 0")


class RendezvousResolver:
    r'''
    Computes the :py:class:`RendezvousEndpoint` of a job step.

    The node holding global rank 0 is looked up in the layout, its control
    daemon is contacted once by ``discovery`` and the resulting address and
    port are published. A port of 0 is replaced with ``default_port``.

    Nothing is cached: every call resolves afresh, and concurrent calls are
    independent of each other.

    Args:
        control_plane: hostname to control daemon address resolution
        discovery: strategy learning the advertised (address, port)
        default_port: rendezvous port used when discovery yields port 0
    '''

    def __init__(
        self,
        control_plane: ControlPlaneResolver,
        discovery: SelfAddressDiscovery,
        default_port: int = DEFAULT_RENDEZVOUS_PORT,
    ):
        self.control_plane = control_plane
        self.discovery = discovery
        self.default_port = default_port

    @classmethod
    def from_config(cls, config) -> 'RendezvousResolver':
        return cls(
            control_plane=DnsControlPlaneResolver(config.control_port),
            discovery=make_discovery(config.discovery, config.connect_timeout),
            default_port=config.default_port,
        )

    def resolve(self, layout: LayoutView) -> RendezvousEndpoint:
        r'''
        Raises:
            LayoutInvariantViolation: no task holds global rank 0
            RendezvousUnreachable: the rank-0 node could not be resolved or
                reached
        '''
        node_index, _ = find_rank_zero(layout)
        hostname = layout.hostname(node_index)

        try:
            target = self.control_plane.resolve(hostname)
        except (OSError, UnicodeError) as e:
            raise RendezvousUnreachable(
                f"Could not resolve task id 0's node {hostname}: {e}", hostname
            ) from e

        try:
            address, port = self.discovery.discover(target)
        except (OSError, UnicodeError) as e:
            raise RendezvousUnreachable(
                f"Could not connect to task id 0's node {hostname} "
                f"at {target.address}:{target.port}: {e}",
                hostname,
            ) from e

        port = self._effective_port(port, hostname)
        logger.debug(f"Rendezvous endpoint for node {hostname}: {address}:{port}")
        return RendezvousEndpoint(address, port)

    def _effective_port(self, port: Optional[int], hostname: str) -> int:
        if port:
            return port
        logger.warning(
            f"Discovery through {hostname} yielded port 0, "
            f"falling back to default rendezvous port {self.default_port}"
        )
        return self.default_port
