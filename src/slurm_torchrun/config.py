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
import logging
from dataclasses import dataclass, fields
from typing import Mapping, Optional

import yaml

from .exception import ConfigError
from .log import get_log_level

ENV_PREFIX = "SLURM_TORCHRUN_"

DISCOVERY_MODES = ("local", "peer")


@dataclass
class TorchrunPluginConfig:
    """
    Configuration of the torchrun launch plugin

    * `control_port` [int] port of the per-node control daemon (slurmd) used as the
      discovery target on the node holding global rank 0.
    * `connect_timeout` [float|None] timeout (in seconds) of the single discovery
      connection. `None` leaves the OS default in place.
    * `default_port` [int] rendezvous port used when discovery yields port 0.
    * `discovery` [str] how the rendezvous address is read off the discovery connection:
      `peer` uses the remote end, i.e. the address of the rank-0 node, and gives every
      caller the same answer; `local` uses the locally bound (address, ephemeral port)
      of the connection, which differs between calls.
    * `shared_secret_env` [str] name of the variable carrying the shared secret.
    * `inject_shared_secret` [bool] write the shared secret into the task environment.
    * `log_level` log level of the plugin components, DEBUG when `SLURM_TORCHRUN_DEBUG` is set

    Values can come from keyword args, a YAML file with a `torchrun` section, or
    `SLURM_TORCHRUN_<FIELD>` environment variables.
    """

    control_port: int = 6818
    connect_timeout: Optional[float] = 10.0
    default_port: int = 29400
    discovery: str = "peer"
    shared_secret_env: str = "PMI_SHARED_SECRET"
    inject_shared_secret: bool = True
    log_level: int = dataclasses.field(default_factory=get_log_level)

    @staticmethod
    def from_kwargs(ignore_not_recognized: bool = True, **kwargs) -> 'TorchrunPluginConfig':
        """
        Create a TorchrunPluginConfig object from keyword arguments.

        Args:
            ignore_not_recognized (bool, optional): Whether to ignore unrecognized arguments. Defaults to True.
            **kwargs: Keyword arguments representing the fields of the TorchrunPluginConfig object.

        Raises:
            ConfigError: If there are unrecognized arguments and ignore_not_recognized is False.
        """
        fields_set = {f.name for f in fields(TorchrunPluginConfig) if f.init}
        matching_args = {k: v for k, v in kwargs.items() if k in fields_set}
        extra_args = {k: v for k, v in kwargs.items() if k not in fields_set}
        if extra_args and not ignore_not_recognized:
            raise ConfigError(f"Not recognized args: {extra_args}")
        return TorchrunPluginConfig(**matching_args)

    @staticmethod
    def from_yaml_file(cfg_path: str, ignore_not_recognized: bool = True) -> 'TorchrunPluginConfig':
        """
        Load the plugin configuration from a YAML file.

        YAML file should contain `torchrun` section.
        `torchrun` section can be at the top level or nested in any other section.

        Raises:
            ConfigError: If the 'torchrun' section is not found in the config file.
        """
        with open(cfg_path, 'r') as file:
            yaml_data = yaml.safe_load(file)
        section = TorchrunPluginConfig._find_torchrun_section(yaml_data)
        if section:
            return TorchrunPluginConfig.from_kwargs(
                **section, ignore_not_recognized=ignore_not_recognized
            )
        raise ConfigError(f"'torchrun' section not found in config file {cfg_path}")

    @staticmethod
    def from_env(env: Mapping[str, str]) -> 'TorchrunPluginConfig':
        """
        Build the config from `SLURM_TORCHRUN_<FIELD>` variables found in `env`.
        Fields without a variable keep their defaults.
        """
        kwargs = {}
        for field in fields(TorchrunPluginConfig):
            raw = env.get(ENV_PREFIX + field.name.upper())
            if raw is None:
                continue
            kwargs[field.name] = TorchrunPluginConfig._parse_env_value(field.name, raw)
        return TorchrunPluginConfig(**kwargs)

    @staticmethod
    def _parse_env_value(name: str, raw: str):
        raw = raw.strip()
        try:
            if name in ('control_port', 'default_port'):
                return int(raw)
            if name == 'connect_timeout':
                return None if raw.lower() in ['none', 'null', ''] else float(raw)
            if name == 'inject_shared_secret':
                return raw.lower() in ('1', 'true', 'yes', 'on')
        except ValueError as e:
            raise ConfigError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e
        return raw

    def to_yaml_file(self, cfg_path: str) -> None:
        """
        Save the configuration object as a YAML file with a `torchrun` section.
        """
        self._fix_log_level_type()
        with open(cfg_path, 'w') as file:
            yaml.dump({'torchrun': dataclasses.asdict(self)}, file)

    @staticmethod
    def _find_torchrun_section(yaml_data):
        if isinstance(yaml_data, dict):
            if "torchrun" in yaml_data:
                return yaml_data["torchrun"]
            for value in yaml_data.values():
                sub_config = TorchrunPluginConfig._find_torchrun_section(value)
                if sub_config:
                    return sub_config
        elif isinstance(yaml_data, list):
            for item in yaml_data:
                sub_config = TorchrunPluginConfig._find_torchrun_section(item)
                if sub_config:
                    return sub_config
        return None

    def _fix_log_level_type(self):
        if isinstance(self.log_level, bool):
            raise ConfigError(f"Invalid value for log_level: {self.log_level}")
        if isinstance(self.log_level, int):
            if not (logging.DEBUG <= self.log_level <= logging.CRITICAL):
                raise ConfigError(
                    f"Invalid log level value ({self.log_level}). Should be in [{logging.DEBUG} (DEBUG), {logging.CRITICAL} (CRITICAL)]"
                )
        elif isinstance(self.log_level, str):
            log_level_str = self.log_level.upper()
            if log_level_str in ['DEBUG', 'DBG']:
                self.log_level = logging.DEBUG
            elif log_level_str == 'INFO':
                self.log_level = logging.INFO
            elif log_level_str in ['WARNING', 'WARN']:
                self.log_level = logging.WARNING
            elif log_level_str == 'ERROR':
                self.log_level = logging.ERROR
            elif log_level_str == 'CRITICAL':
                self.log_level = logging.CRITICAL
            else:
                raise ConfigError(f"Invalid log level string: {self.log_level}")
        else:
            raise ConfigError(f"Invalid value for log_level: {self.log_level}")

    def _validate_ports(self):
        for name in ('control_port', 'default_port'):
            port = getattr(self, name)
            if isinstance(port, bool) or not isinstance(port, int) or not (0 < port <= 0xFFFF):
                raise ConfigError(f"{name} should be an integer in [1, 65535], got {port!r}")

    def __post_init__(self):
        self._fix_log_level_type()
        self._validate_ports()
        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ConfigError(f"connect_timeout should be positive, got {self.connect_timeout}")
        if self.discovery not in DISCOVERY_MODES:
            raise ConfigError(
                f"discovery should be one of {DISCOVERY_MODES}, got {self.discovery!r}"
            )
        if not self.shared_secret_env:
            raise ConfigError("shared_secret_env cannot be empty")
