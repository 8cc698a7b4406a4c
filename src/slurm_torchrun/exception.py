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


class TorchrunPluginError(Exception):
    r'''
    Base :py:exc:`Exception` for errors raised while preparing a job step for
    ``torchrun``-style environment initialization.
    '''

    pass


class LayoutInvariantViolation(TorchrunPluginError):
    r'''
    The step layout does not satisfy its contract, e.g. no task was assigned
    global rank 0. Raised by the rendezvous resolver and by
    :py:meth:`LayoutView.validate`. Never retried.
    '''

    pass


class RendezvousUnreachable(TorchrunPluginError):
    r'''
    The hostname of the node holding global rank 0 could not be resolved, or
    its control endpoint refused / timed out the discovery connection.
    '''

    def __init__(self, message: str, hostname: str = None):
        super().__init__(message)
        self.hostname = hostname


class EntropyUnavailable(TorchrunPluginError):
    r'''
    The cryptographically strong random source needed to generate the shared
    secret is not usable on this node.
    '''

    pass


class ConfigError(TorchrunPluginError, ValueError):
    r'''
    Invalid plugin configuration, or a worker environment that lacks the
    variables written at launch.
    '''

    pass
