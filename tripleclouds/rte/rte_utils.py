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

"""Utility library for vertical recurrences through the atmospheric column."""

from typing import Any, Callable, TypeAlias

import jax
import jax.numpy as jnp

Array: TypeAlias = jax.Array
PyTree: TypeAlias = Any


def _stack_outputs(outputs: list[PyTree]) -> PyTree:
  """Stacks a list of per-level outputs along a new last axis."""
  return jax.tree.map(lambda *xs: jnp.stack(xs, axis=-1), *outputs)


def recurrent_op(
    f: Callable[..., tuple[PyTree, PyTree]],
    init: PyTree,
    inputs: dict[str, Array],
    forward: bool = True,
) -> tuple[PyTree, PyTree]:
  """Compute a sequence of recurrent operations over the level axis.

  The level axis is the last axis of every input. Each step receives the carry
  and the slices of the inputs at one level as keyword arguments, and returns
  the new carry and an output for that level. It uses a Python for loop, not
  scan.

  Args:
    f: The recurrent operation to apply, `f(carry, **level_inputs)`.
    init: The initial state of the recurrent operation.
    inputs: A dictionary of inputs to the recurrent operation.
    forward: Whether to run from the first level (the top of the atmosphere) to
      the last, or in the reverse direction.

  Returns:
    A tuple of the final carry state and the outputs, stacked along a new last
    axis in level order regardless of the direction of the recurrence.
  """
  n = next(iter(inputs.values())).shape[-1]

  carry = init
  outputs = [None] * n
  levels = range(n) if forward else reversed(range(n))
  for i in levels:
    level_args = {k: v[..., i] for k, v in inputs.items()}
    carry, outputs[i] = f(carry, **level_args)

  return carry, _stack_outputs(outputs)


def recurrent_op_scan(
    f: Callable[..., tuple[PyTree, PyTree]],
    init: PyTree,
    inputs: dict[str, Array],
    forward: bool = True,
) -> tuple[PyTree, PyTree]:
  """Compute a sequence of recurrent operations over the level axis with scan.

  Note: jax.lax.scan() may be inefficient on GPUs, because each iteration must
  launch a new kernel. May want to use the version with for loops on GPU.

  Args:
    f: The recurrent operation to apply, `f(carry, **level_inputs)`.
    init: The initial state of the recurrent operation.
    inputs: A dictionary of inputs to the recurrent operation.
    forward: Whether to run from the first level to the last.

  Returns:
    A tuple of the final carry state and the outputs, stacked along a new last
    axis in level order.
  """

  def wrapped_f_for_scan(carry, inputs):
    return f(carry, **inputs)

  # scan() always scans over the first dimension, so the level axis is moved to
  # the front on the way in and to the back on the way out.
  inputs = {k: jnp.moveaxis(v, -1, 0) for k, v in inputs.items()}

  carry, output = jax.lax.scan(
      wrapped_f_for_scan, init, inputs, reverse=not forward
  )
  output = jax.tree.map(lambda x: jnp.moveaxis(x, 0, -1), output)
  return carry, output


def column_recurrence(
    f: Callable[..., tuple[PyTree, PyTree]],
    init: PyTree,
    inputs: dict[str, Array],
    forward: bool = True,
    use_scan: bool = False,
) -> tuple[PyTree, PyTree]:
  """Dispatches to the loop or scan version of the recurrence."""
  if use_scan:
    return recurrent_op_scan(f, init, inputs, forward)
  return recurrent_op(f, init, inputs, forward)
