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

import socket
import threading

from slurm_torchrun.discovery import ControlEndpoint, ControlPlaneResolver, SelfAddressDiscovery


class StaticControlPlane(ControlPlaneResolver):
    """Resolves known hostnames to fixed endpoints, unknown ones fail like DNS."""

    def __init__(self, endpoints):
        self.endpoints = dict(endpoints)
        self.calls = []
        self._lock = threading.Lock()

    def resolve(self, hostname):
        with self._lock:
            self.calls.append(hostname)
        if hostname not in self.endpoints:
            raise socket.gaierror(f"Unknown host {hostname}")
        return self.endpoints[hostname]


class FixedDiscovery(SelfAddressDiscovery):
    """Returns a fixed (address, port) without opening a connection."""

    def __init__(self, address, port):
        super().__init__()
        self.address = address
        self.port = port
        self.targets = []
        self._lock = threading.Lock()

    def discover(self, target):
        with self._lock:
            self.targets.append(target)
        return self.address, self.port


class ControlDaemon:
    """Loopback TCP listener standing in for a node's control daemon."""

    def __init__(self):
        self.server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server.bind(('127.0.0.1', 0))
        self.server.listen(128)
        self.server.settimeout(0.1)
        self.port = self.server.getsockname()[1]
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._accept_loop, daemon=True)
        self._thread.start()

    @property
    def endpoint(self):
        return ControlEndpoint('127.0.0.1', self.port)

    def _accept_loop(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.server.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            conn.close()

    def close(self):
        self._stop.set()
        self._thread.join(timeout=5)
        self.server.close()
