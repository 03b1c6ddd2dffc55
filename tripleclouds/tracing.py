# Copyright 2024 The swirl_jatmos Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Injectable instrumentation around the stages of a flux calculation.

Stages run eagerly or while JAX traces a jitted function, so the timings
reported here are Python-side timings: under `jax.jit` they measure tracing,
not device execution.
"""

import collections
import contextlib
import time
from typing import Iterator

from absl import logging


class Tracer:
  """A tracer whose `region` context manager does nothing."""

  @contextlib.contextmanager
  def region(self, name: str) -> Iterator[None]:
    del name
    yield


NullTracer = Tracer


class LoggingTracer(Tracer):
  """Logs the wall-clock time spent in each named stage.

  The accumulated time and number of calls of every stage are also kept in
  `totals` and `counts`.
  """

  def __init__(self, prefix: str = 'tripleclouds'):
    self._prefix = prefix
    self.totals = collections.defaultdict(float)
    self.counts = collections.defaultdict(int)

  @contextlib.contextmanager
  def region(self, name: str) -> Iterator[None]:
    t0 = time.time()
    try:
      yield
    finally:
      elapsed = time.time() - t0
      self.totals[name] += elapsed
      self.counts[name] += 1
      logging.info('%s:%s took %.3e s.', self._prefix, name, elapsed)
