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

"""
Worker-side helpers reading the variables written by the launch plugin.

Usage in a training script started by the scheduler:

    from slurm_torchrun.worker import init_process_group
    rank_set = init_process_group(backend="nccl")
"""

import datetime
import os
from typing import Mapping, Optional

import torch
import torch.distributed as dist

from .environment import (
    GROUP_RANK_ENV,
    LOCAL_RANK_ENV,
    LOCAL_WORLD_SIZE_ENV,
    MASTER_ADDR_ENV,
    MASTER_PORT_ENV,
    RANK_ENV,
    WORLD_SIZE_ENV,
)
from .exception import ConfigError
from .log import logger
from .ranks import RankSet
from .resolver import RendezvousEndpoint


def _read_int(env: Mapping[str, str], name: str) -> int:
    raw = env.get(name)
    if raw is None:
        raise ConfigError(f"{name} is not set in the worker environment")
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name}={raw!r} is not an integer") from e


def rank_set_from_env(env: Optional[Mapping[str, str]] = None) -> RankSet:
    env = os.environ if env is None else env
    return RankSet(
        global_rank=_read_int(env, RANK_ENV),
        world_size=_read_int(env, WORLD_SIZE_ENV),
        local_rank=_read_int(env, LOCAL_RANK_ENV),
        group_rank=_read_int(env, GROUP_RANK_ENV),
        local_world_size=_read_int(env, LOCAL_WORLD_SIZE_ENV),
    )


def rendezvous_from_env(env: Optional[Mapping[str, str]] = None) -> RendezvousEndpoint:
    env = os.environ if env is None else env
    address = env.get(MASTER_ADDR_ENV)
    if not address:
        raise ConfigError(f"{MASTER_ADDR_ENV} is not set in the worker environment")
    try:
        return RendezvousEndpoint(address, _read_int(env, MASTER_PORT_ENV))
    except ValueError as e:
        raise ConfigError(str(e)) from e


def default_backend() -> str:
    return 'nccl' if torch.cuda.is_available() else 'gloo'


def init_process_group(
    backend: Optional[str] = None,
    timeout: Optional[datetime.timedelta] = None,
    env: Optional[Mapping[str, str]] = None,
) -> RankSet:
    r'''
    Initializes the default ``torch.distributed`` process group from the
    launch environment, with ``init_method="env://"``.

    ``env`` is only used for validation; ``torch.distributed`` reads the
    process environment.

    Raises:
        ConfigError: a required variable is missing or malformed
    '''
    rank_set = rank_set_from_env(env)
    endpoint = rendezvous_from_env(env)
    backend = backend or default_backend()

    if dist.is_initialized():
        logger.warning("torch.distributed is already initialized, skipping")
        return rank_set

    kwargs = {}
    if timeout is not None:
        kwargs['timeout'] = timeout
    logger.debug(
        f"init_process_group backend={backend} rank={rank_set.global_rank} "
        f"world_size={rank_set.world_size} rendezvous={endpoint.address}:{endpoint.port}"
    )
    dist.init_process_group(
        backend=backend,
        init_method="env://",
        rank=rank_set.global_rank,
        world_size=rank_set.world_size,
        **kwargs,
    )
    return rank_set
