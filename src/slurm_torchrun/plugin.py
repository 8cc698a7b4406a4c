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

import concurrent.futures
import dataclasses
import enum
from typing import Any, Callable, Dict, List, Mapping, MutableMapping, Optional

from .config import TorchrunPluginConfig
from .environment import EnvironmentInjector
from .exception import TorchrunPluginError
from .layout import LayoutView
from .log import logger, set_log_level
from .ranks import RankSet, derive_rank_set
from .resolver import RendezvousEndpoint, RendezvousResolver
from .secret import SharedSecretService, get_shared_secret_service


MAX_SPAWN_WORKERS = 32


class PrelaunchStatus(enum.Enum):
    INJECTED = enum.auto()
    USER_OVERRIDE = enum.auto()
    FAILED = enum.auto()


@dataclasses.dataclass(frozen=True)
class PrelaunchResult:
    r'''
    Outcome of :py:meth:`TorchrunPlugin.client_prelaunch`.

    ``INJECTED`` carries the endpoint written to the environment,
    ``USER_OVERRIDE`` means the user supplied ``MASTER_ADDR``/``MASTER_PORT``
    and nothing had to be resolved, ``FAILED`` carries the error. Tasks of
    the step must not be spawned unless :py:attr:`ok` is ``True``.
    '''

    status: PrelaunchStatus
    endpoint: Optional[RendezvousEndpoint] = None
    error: Optional[TorchrunPluginError] = None

    @property
    def ok(self) -> bool:
        return self.status is not PrelaunchStatus.FAILED

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error


class TorchrunPlugin:
    r'''
    Prepares task environments so that workers can initialize
    ``torch.distributed`` with ``init_method="env://"``.

    Hooks are called by the step launcher in this order: once per step,
    :py:meth:`client_prelaunch`; once per node, :py:meth:`slurmstepd_prefork`;
    once per task, :py:meth:`slurmstepd_task`; at step end,
    :py:meth:`client_fini`.

    Args:
        config: plugin configuration, defaults to :py:class:`TorchrunPluginConfig`
        resolver: rendezvous resolver, built from ``config`` when omitted
        secret_service: shared secret source, the process-wide one when omitted
        injector: environment writer, built from ``config`` when omitted
    '''

    plugin_name = "mpi torchrun plugin"
    plugin_type = "mpi/torchrun"

    def __init__(
        self,
        config: Optional[TorchrunPluginConfig] = None,
        resolver: Optional[RendezvousResolver] = None,
        secret_service: Optional[SharedSecretService] = None,
        injector: Optional[EnvironmentInjector] = None,
    ):
        self.config = config if config is not None else TorchrunPluginConfig()
        self.resolver = (
            resolver if resolver is not None else RendezvousResolver.from_config(self.config)
        )
        self.secret_service = (
            secret_service if secret_service is not None else get_shared_secret_service()
        )
        self.injector = (
            injector
            if injector is not None
            else EnvironmentInjector(shared_secret_env=self.config.shared_secret_env)
        )
        set_log_level(self.config.log_level)

    def client_prelaunch(
        self, layout: LayoutView, env: MutableMapping[str, str]
    ) -> PrelaunchResult:
        r'''
        Writes the shared secret and, unless overridden by the user, the
        rendezvous endpoint into the node environment ``env``.
        '''
        try:
            if self.config.inject_shared_secret:
                self.injector.inject_shared_secret(env, self.secret_service.get())

            if self.injector.has_rendezvous_override(env):
                return PrelaunchResult(PrelaunchStatus.USER_OVERRIDE)

            endpoint = self.resolver.resolve(layout)
            self.injector.inject_rendezvous(env, endpoint)
        except TorchrunPluginError as e:
            logger.error(f"client_prelaunch: {e}")
            return PrelaunchResult(PrelaunchStatus.FAILED, error=e)

        logger.info(f"Rendezvous at {endpoint.address}:{endpoint.port}")
        return PrelaunchResult(PrelaunchStatus.INJECTED, endpoint=endpoint)

    def slurmstepd_prefork(self, layout: LayoutView, env: MutableMapping[str, str]) -> None:
        pass

    def slurmstepd_task(
        self,
        layout: LayoutView,
        node_index: int,
        local_index: int,
        env: MutableMapping[str, str],
    ) -> RankSet:
        rank_set = derive_rank_set(layout, node_index, local_index)
        self.injector.inject_ranks(env, rank_set)
        return rank_set

    def client_fini(self, result: PrelaunchResult) -> None:
        pass

    def launch_step(
        self,
        layout: LayoutView,
        env: Mapping[str, str],
        spawn: Callable[[RankSet, Dict[str, str]], Any],
        max_workers: Optional[int] = None,
    ) -> List[Any]:
        r'''
        Launches every task of ``layout`` through ``spawn``.

        Prelaunch runs once for the step on a copy of ``env``; every node
        starts from the resulting environment, so all tasks see the same
        rendezvous endpoint and secret. If prelaunch fails its error is raised
        and no task is spawned. Tasks are spawned concurrently, each with its
        own copy of the node environment, on at most ``MAX_SPAWN_WORKERS``
        threads unless ``max_workers`` says otherwise. Returns the ``spawn``
        results ordered by global rank.

        Raises:
            TorchrunPluginError: prelaunch failed
        '''
        step_env = dict(env)
        result = self.client_prelaunch(layout, step_env)
        try:
            result.raise_for_status()

            node_envs = [dict(step_env) for _ in range(layout.node_count)]
            for node_env in node_envs:
                self.slurmstepd_prefork(layout, node_env)

            def _spawn_task(node_index, local_index):
                task_env = dict(node_envs[node_index])
                rank_set = self.slurmstepd_task(layout, node_index, local_index, task_env)
                return rank_set.global_rank, spawn(rank_set, task_env)

            max_workers = max_workers or min(max(layout.world_size, 1), MAX_SPAWN_WORKERS)
            with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
                futures = [
                    executor.submit(_spawn_task, node_index, local_index)
                    for node_index, local_index in layout.positions()
                ]
                spawned = [future.result() for future in futures]
        finally:
            self.client_fini(result)

        return [outcome for _, outcome in sorted(spawned, key=lambda item: item[0])]
