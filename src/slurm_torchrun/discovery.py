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

import abc
import contextlib
import dataclasses
import socket
from typing import Optional, Tuple

from .log import logger


@dataclasses.dataclass(frozen=True)
class ControlEndpoint:
    r'''
    Network address of a node's control daemon.
    '''

    address: str
    port: int


class ControlPlaneResolver(abc.ABC):
    r'''
    Maps a node hostname to the network address of its control daemon.
    '''

    @abc.abstractmethod
    def resolve(self, hostname: str) -> ControlEndpoint:
        r'''
        Raises:
            OSError: the hostname cannot be resolved
            UnicodeError: the hostname cannot be IDNA encoded
        '''
        raise NotImplementedError


class DnsControlPlaneResolver(ControlPlaneResolver):
    r'''
    Resolves hostnames with :py:func:`socket.getaddrinfo` and pairs the first
    stream address with the configured control daemon port.
    '''

    def __init__(self, control_port: int):
        self.control_port = control_port

    def resolve(self, hostname: str) -> ControlEndpoint:
        infos = socket.getaddrinfo(hostname, self.control_port, type=socket.SOCK_STREAM)
        if not infos:
            raise socket.gaierror(f"No address found for {hostname}")
        address = infos[0][4][0]
        logger.debug(f"Resolved {hostname} to {address}:{self.control_port}")
        return ControlEndpoint(address, self.control_port)


class SelfAddressDiscovery(abc.ABC):
    r'''
    Learns an (address, port) pair that every node of the step can use to
    reach the rendezvous, given the control endpoint of the node holding
    global rank 0.

    Implementations open a transient TCP connection and introspect it. A
    proper address advertisement handshake can replace them without touching
    callers.
    '''

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    @contextlib.contextmanager
    def _connection(self, target: ControlEndpoint):
        # no payload is exchanged; the connection only exists to be introspected
        sock = socket.create_connection((target.address, target.port), timeout=self.timeout)
        try:
            yield sock
        finally:
            sock.close()

    @abc.abstractmethod
    def discover(self, target: ControlEndpoint) -> Tuple[str, int]:
        r'''
        Raises:
            OSError: the connection was refused or timed out
        '''
        raise NotImplementedError


class LocalAddressDiscovery(SelfAddressDiscovery):
    r'''
    Returns the locally bound source address and ephemeral port the
    connection egressed from.
    '''

    def discover(self, target: ControlEndpoint) -> Tuple[str, int]:
        with self._connection(target) as sock:
            address, port = sock.getsockname()[:2]
        return address, port


class PeerAddressDiscovery(SelfAddressDiscovery):
    r'''
    Returns the remote end of the connection as seen by this node, i.e. the
    address of the control daemon on the rank-0 node.
    '''

    def discover(self, target: ControlEndpoint) -> Tuple[str, int]:
        with self._connection(target) as sock:
            address, port = sock.getpeername()[:2]
        return address, port


def make_discovery(mode: str, timeout: Optional[float] = None) -> SelfAddressDiscovery:
    if mode == 'local':
        return LocalAddressDiscovery(timeout)
    elif mode == 'peer':
        return PeerAddressDiscovery(timeout)
    raise ValueError(f"Unknown discovery mode: {mode!r}")
