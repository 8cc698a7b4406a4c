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
import itertools
import threading
import unittest

import slurm_torchrun.secret as secret_module
from slurm_torchrun import EntropyUnavailable, SharedSecretService, get_shared_secret_service


class TestSharedSecretService(unittest.TestCase):
    def test_same_value_on_every_call(self):
        service = SharedSecretService()
        first = service.get()
        self.assertNotEqual(first, 0)
        self.assertTrue(0 < first < 2**64)
        for _ in range(10):
            self.assertEqual(service.get(), first)

    def test_isolated_instances(self):
        a = SharedSecretService(lambda n: (1).to_bytes(n, 'little'))
        b = SharedSecretService(lambda n: (2).to_bytes(n, 'little'))
        self.assertEqual(a.get(), 1)
        self.assertEqual(b.get(), 2)

    def test_zero_is_redrawn(self):
        draws = iter([bytes(8), bytes(8), (7).to_bytes(8, 'little')])
        service = SharedSecretService(lambda n: next(draws))
        self.assertEqual(service.get(), 7)
        self.assertEqual(service.get(), 7)

    def test_unavailable_random_source(self):
        def broken(n):
            raise NotImplementedError("no getrandom")

        service = SharedSecretService(broken)
        with self.assertRaises(EntropyUnavailable):
            service.get()
        self.assertFalse(service.initialized)

    def test_os_error_from_random_source(self):
        def broken(n):
            raise OSError(38, "Function not implemented")

        with self.assertRaises(EntropyUnavailable):
            SharedSecretService(broken).get()

    def test_short_read(self):
        with self.assertRaises(EntropyUnavailable):
            SharedSecretService(lambda n: b'\x01').get()

    def test_reset(self):
        counter = itertools.count(1)
        service = SharedSecretService(lambda n: next(counter).to_bytes(n, 'little'))
        self.assertEqual(service.get(), 1)
        service.reset()
        self.assertFalse(service.initialized)
        self.assertEqual(service.get(), 2)

    def test_concurrent_first_calls_draw_once(self):
        draws = []
        lock = threading.Lock()
        barrier = threading.Barrier(50)

        def source(n):
            with lock:
                draws.append(n)
                return len(draws).to_bytes(n, 'little')

        service = SharedSecretService(source)

        def first_call(_):
            barrier.wait()
            return service.get()

        with concurrent.futures.ThreadPoolExecutor(max_workers=50) as executor:
            values = list(executor.map(first_call, range(50)))

        self.assertEqual(len(draws), 1)
        self.assertEqual(set(values), {1})


class TestDefaultService(unittest.TestCase):
    def setUp(self):
        self._saved = secret_module._default_service
        secret_module._default_service = None

    def tearDown(self):
        secret_module._default_service = self._saved

    def test_process_wide_singleton(self):
        service = get_shared_secret_service()
        self.assertIs(get_shared_secret_service(), service)
        self.assertEqual(get_shared_secret_service().get(), service.get())

    def test_concurrent_singleton_creation(self):
        with concurrent.futures.ThreadPoolExecutor(max_workers=50) as executor:
            services = list(executor.map(lambda _: get_shared_secret_service(), range(50)))
            secrets = list(executor.map(lambda s: s.get(), services))
        self.assertEqual(len({id(s) for s in services}), 1)
        self.assertEqual(len(set(secrets)), 1)
