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

from typing import Dict, MutableMapping, Optional

from .log import logger
from .ranks import RankSet
from .resolver import RendezvousEndpoint

RANK_ENV = "RANK"
WORLD_SIZE_ENV = "WORLD_SIZE"
LOCAL_RANK_ENV = "LOCAL_RANK"
GROUP_RANK_ENV = "GROUP_RANK"
LOCAL_WORLD_SIZE_ENV = "LOCAL_WORLD_SIZE"
MASTER_ADDR_ENV = "MASTER_ADDR"
MASTER_PORT_ENV = "MASTER_PORT"
SHARED_SECRET_ENV = "PMI_SHARED_SECRET"

RENDEZVOUS_ENV_VARS = (MASTER_ADDR_ENV, MASTER_PORT_ENV)


class EnvironmentInjector:
    r'''
    Writes rank, rendezvous and shared secret variables into a task
    environment.

    A ``MASTER_ADDR`` or ``MASTER_PORT`` already present in the environment is
    an explicit user choice: when either one is set neither is written.
    Rank and shared secret variables are always overwritten.

    Only variables defined by PyTorch Distributed and Elastic are exported;
    ``ROLE_RANK``, ``ROLE_WORLD_SIZE`` and the ``TORCHELASTIC_*`` restart
    variables have no meaning for an inelastic, homogeneous step and are left
    alone. The number of nodes is ``WORLD_SIZE / LOCAL_WORLD_SIZE``.
    '''

    def __init__(self, shared_secret_env: str = SHARED_SECRET_ENV):
        self.shared_secret_env = shared_secret_env

    @staticmethod
    def has_rendezvous_override(env: MutableMapping[str, str]) -> bool:
        return any(name in env for name in RENDEZVOUS_ENV_VARS)

    @staticmethod
    def rank_overlay(rank_set: RankSet) -> Dict[str, str]:
        return {
            RANK_ENV: str(rank_set.global_rank),
            WORLD_SIZE_ENV: str(rank_set.world_size),
            LOCAL_RANK_ENV: str(rank_set.local_rank),
            GROUP_RANK_ENV: str(rank_set.group_rank),
            LOCAL_WORLD_SIZE_ENV: str(rank_set.local_world_size),
        }

    @staticmethod
    def rendezvous_overlay(endpoint: RendezvousEndpoint) -> Dict[str, str]:
        return {
            MASTER_ADDR_ENV: endpoint.address,
            MASTER_PORT_ENV: str(endpoint.port),
        }

    def secret_overlay(self, secret: int) -> Dict[str, str]:
        return {self.shared_secret_env: str(secret)}

    def build_overlay(
        self,
        env: MutableMapping[str, str],
        rank_set: Optional[RankSet] = None,
        endpoint: Optional[RendezvousEndpoint] = None,
        secret: Optional[int] = None,
    ) -> Dict[str, str]:
        r'''
        Computes the variables to write into ``env`` without modifying it.
        Parts whose source is ``None`` are left out.
        '''
        overlay = {}
        if endpoint is not None and not self.has_rendezvous_override(env):
            overlay.update(self.rendezvous_overlay(endpoint))
        if rank_set is not None:
            overlay.update(self.rank_overlay(rank_set))
        if secret is not None:
            overlay.update(self.secret_overlay(secret))
        return overlay

    @staticmethod
    def apply(env: MutableMapping[str, str], overlay: Dict[str, str]) -> None:
        env.update(overlay)

    def inject(
        self,
        env: MutableMapping[str, str],
        rank_set: Optional[RankSet] = None,
        endpoint: Optional[RendezvousEndpoint] = None,
        secret: Optional[int] = None,
    ) -> Dict[str, str]:
        overlay = self.build_overlay(env, rank_set, endpoint, secret)
        self.apply(env, overlay)
        return overlay

    def inject_rendezvous(
        self, env: MutableMapping[str, str], endpoint: RendezvousEndpoint
    ) -> bool:
        r'''
        Returns ``True`` when the endpoint was written, ``False`` when a user
        override suppressed it.
        '''
        if self.has_rendezvous_override(env):
            logger.debug(
                f"{MASTER_ADDR_ENV}/{MASTER_PORT_ENV} set by user, keeping "
                f"{env.get(MASTER_ADDR_ENV)}:{env.get(MASTER_PORT_ENV)}"
            )
            return False
        self.apply(env, self.rendezvous_overlay(endpoint))
        return True

    def inject_ranks(self, env: MutableMapping[str, str], rank_set: RankSet) -> None:
        self.apply(env, self.rank_overlay(rank_set))

    def inject_shared_secret(self, env: MutableMapping[str, str], secret: int) -> None:
        self.apply(env, self.secret_overlay(secret))
