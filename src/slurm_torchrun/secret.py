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

import os
import threading
from typing import Callable, Optional

from .exception import EntropyUnavailable
from .log import logger

SECRET_BYTES = 8


class SharedSecretService:
    r'''
    Node-wide 64-bit shared secret handed to every task launched by this
    process, used as an out-of-band authentication token.

    Lifecycle: the value is drawn from a cryptographically strong source on
    the first :py:meth:`get`, then returned unchanged by every later call
    until :py:meth:`reset` or process teardown. Concurrent first callers are
    serialized by a lock, so exactly one draw takes effect.

    Args:
        random_source: callable returning ``n`` random bytes, defaults to
            :py:func:`os.urandom`
    '''

    def __init__(self, random_source: Callable[[int], bytes] = os.urandom):
        self._random_source = random_source
        self._secret: Optional[int] = None
        self._lock = threading.Lock()

    def get(self) -> int:
        r'''
        Returns the non-zero shared secret, generating it on first use.

        Raises:
            EntropyUnavailable: the random source is not usable
        '''
        with self._lock:
            if self._secret is None:
                self._secret = self._draw()
            return self._secret

    def _draw(self) -> int:
        value = 0
        while value == 0:
            try:
                raw = self._random_source(SECRET_BYTES)
            except (NotImplementedError, OSError) as e:
                logger.error(f"Random source failed: {e}")
                raise EntropyUnavailable(f"Random source failed: {e}") from e
            if len(raw) != SECRET_BYTES:
                raise EntropyUnavailable(
                    f"Random source returned {len(raw)} bytes, expected {SECRET_BYTES}"
                )
            value = int.from_bytes(raw, byteorder='little')
        return value

    @property
    def initialized(self) -> bool:
        return self._secret is not None

    def reset(self) -> None:
        r'''
        Forgets the current secret; the next :py:meth:`get` draws a new one.
        '''
        with self._lock:
            self._secret = None


_default_service: Optional[SharedSecretService] = None
_default_service_lock = threading.Lock()


def get_shared_secret_service() -> SharedSecretService:
    r'''
    Returns the process-wide :py:class:`SharedSecretService`.
    '''
    global _default_service
    with _default_service_lock:
        if _default_service is None:
            _default_service = SharedSecretService()
        return _default_service
