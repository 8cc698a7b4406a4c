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

from .config import TorchrunPluginConfig  # noqa: F401
from .discovery import ControlEndpoint  # noqa: F401
from .discovery import ControlPlaneResolver  # noqa: F401
from .discovery import DnsControlPlaneResolver  # noqa: F401
from .discovery import LocalAddressDiscovery  # noqa: F401
from .discovery import PeerAddressDiscovery  # noqa: F401
from .discovery import SelfAddressDiscovery  # noqa: F401
from .environment import EnvironmentInjector  # noqa: F401
from .exception import ConfigError  # noqa: F401
from .exception import EntropyUnavailable  # noqa: F401
from .exception import LayoutInvariantViolation  # noqa: F401
from .exception import RendezvousUnreachable  # noqa: F401
from .exception import TorchrunPluginError  # noqa: F401
from .layout import LayoutView  # noqa: F401
from .layout import Node  # noqa: F401
from .plugin import PrelaunchResult  # noqa: F401
from .plugin import PrelaunchStatus  # noqa: F401
from .plugin import TorchrunPlugin  # noqa: F401
from .ranks import RankSet  # noqa: F401
from .ranks import derive_rank_set  # noqa: F401
from .resolver import DEFAULT_RENDEZVOUS_PORT  # noqa: F401
from .resolver import RendezvousEndpoint  # noqa: F401
from .resolver import RendezvousResolver  # noqa: F401
from .resolver import find_rank_zero  # noqa: F401
from .secret import SharedSecretService  # noqa: F401
from .secret import get_shared_secret_service  # noqa: F401
