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
Logging for the launch plugin.

The plugin runs inside the scheduler's launch path, so its messages go to one
`slurm_torchrun` logger that does not propagate into the host process's root
logger. Every record carries the hostname and pid of the launching process.

Knobs, read when the logger is set up:
    SLURM_TORCHRUN_DEBUG         truthy value switches to DEBUG
    SLURM_TORCHRUN_LOGFILE       write to this file instead of stderr
    SLURM_TORCHRUN_NULL_HANDLER  truthy value installs a NullHandler only

Modules log through the shared instance:

    from .log import logger
"""

import logging
import os
import socket

LOGGER_NAME = "slurm_torchrun"

_TRUTHY = ("1", "true", "yes", "on")


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in _TRUTHY


def get_log_level() -> int:
    """DEBUG when SLURM_TORCHRUN_DEBUG is truthy, INFO otherwise."""
    return logging.DEBUG if _env_flag("SLURM_TORCHRUN_DEBUG") else logging.INFO


def setup_logger(logfile=None, force_reset=False) -> logging.Logger:
    """
    Installs the handler of the `slurm_torchrun` logger and returns it. A logger
    that already has handlers is returned as is, unless `force_reset` is set: then
    its handlers are closed and rebuilt from the environment.

    Args:
        logfile: file to log to; SLURM_TORCHRUN_LOGFILE when omitted, stderr when neither is set
        force_reset: close the installed handlers and configure again
    """
    logger = logging.getLogger(LOGGER_NAME)

    if force_reset:
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()

    if logger.handlers:
        return logger

    logger.propagate = False

    if _env_flag("SLURM_TORCHRUN_NULL_HANDLER"):
        logger.addHandler(logging.NullHandler())
        return logger

    log_level = get_log_level()
    logger.setLevel(log_level)

    logfile = logfile or os.environ.get("SLURM_TORCHRUN_LOGFILE")
    handler = logging.FileHandler(filename=logfile) if logfile else logging.StreamHandler()
    handler.setLevel(log_level)
    handler.setFormatter(
        logging.Formatter(
            fmt=(
                f"%(asctime)s [%(levelname)s] [{socket.gethostname()}:%(process)5s] "
                "%(filename)s:%(lineno)d %(message)s"
            )
        )
    )
    logger.addHandler(handler)

    return logger


def set_log_level(level: int) -> None:
    """Apply `level` to the package logger and all of its handlers."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


logger = setup_logger()
