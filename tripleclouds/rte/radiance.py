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

"""Propagation of radiances at a single zenith angle through the column.

Radiances are expressed in flux units (pi times the radiance) and are
area-weighted in each region like the fluxes, so a radiance multiplied by the
normalized flux weight of its angle is that angle's contribution to the flux.
"""

from typing import TypeAlias

import jax
import jax.numpy as jnp
from tripleclouds.rte import rte_utils

Array: TypeAlias = jax.Array
StatesMap: TypeAlias = dict[str, Array]


def calc_radiance_dn(
    weight: float,
    transmittance: Array,
    source_dn: Array,
    v_overlap: Array,
    use_scan: bool = False,
) -> StatesMap:
  """Computes the weighted downwelling radiance profile at one angle.

  Args:
    weight: The normalized flux weight of the angle.
    transmittance: The slant-path transmittance, shape (nspec, nregion, nlev).
    source_dn: The downward emission from the base of each layer.
    v_overlap: The downward overlap matrices, shape (nregion, nregion, nlev + 1).
    use_scan: Whether to use scan or for loops for the recurrent operation.

  Returns:
    A dictionary with the following items:
      'flux_dn': The contribution to the downwelling flux at each half-level,
        shape (nspec, nlev + 1).
      'flux_dn_surf': The contribution to the downwelling flux at the surface
        in each region of the lowest layer, shape (nspec, nregion).
  """
  nspec, nregion, _ = transmittance.shape

  def radiance_dn_op(
      radiance_top: Array,
      transmittance: Array,
      source_dn: Array,
      v_overlap: Array,
  ) -> tuple[Array, tuple[Array, Array]]:
    radiance_base = transmittance * radiance_top + source_dn
    radiance_below = jnp.einsum('ij,sj->si', v_overlap, radiance_base)
    return radiance_below, (jnp.sum(radiance_base, axis=1), radiance_base)

  toa_radiance = jnp.zeros((nspec, nregion), dtype=transmittance.dtype)
  _, (radiance_base_sum, radiance_base) = rte_utils.column_recurrence(
      radiance_dn_op,
      toa_radiance,
      {
          'transmittance': transmittance,
          'source_dn': source_dn,
          'v_overlap': v_overlap[..., 1:],
      },
      forward=True,
      use_scan=use_scan,
  )
  flux_dn = jnp.concatenate(
      [jnp.zeros((nspec, 1), dtype=transmittance.dtype), radiance_base_sum],
      axis=1,
  )
  return {
      'flux_dn': weight * flux_dn,
      'flux_dn_surf': weight * radiance_base[..., -1],
  }


def calc_radiance_up(
    weight: float,
    flux_up_surf: Array,
    transmittance: Array,
    source_up: Array,
    u_overlap: Array,
    use_scan: bool = False,
) -> Array:
  """Computes the weighted upwelling radiance profile at one angle.

  Args:
    weight: The normalized flux weight of the angle.
    flux_up_surf: The upwelling radiance leaving the surface in each region of
      the lowest layer, shape (nspec, nregion), in flux units.
    transmittance: The slant-path transmittance, shape (nspec, nregion, nlev).
    source_up: The upward emission from the top of each layer.
    u_overlap: The upward overlap matrices, shape (nregion, nregion, nlev + 1).
    use_scan: Whether to use scan or for loops for the recurrent operation.

  Returns:
    The contribution to the upwelling flux at each half-level, shape
    (nspec, nlev + 1).
  """

  def radiance_up_op(
      radiance_base: Array,
      transmittance: Array,
      source_up: Array,
      u_overlap: Array,
  ) -> tuple[Array, Array]:
    radiance_top = transmittance * radiance_base + source_up
    radiance_above = jnp.einsum('ij,sj->si', u_overlap, radiance_top)
    return radiance_above, jnp.sum(radiance_top, axis=1)

  _, radiance_top_sum = rte_utils.column_recurrence(
      radiance_up_op,
      flux_up_surf,
      {
          'transmittance': transmittance,
          'source_up': source_up,
          'u_overlap': u_overlap[..., :-1],
      },
      forward=False,
      use_scan=use_scan,
  )
  flux_up = jnp.concatenate(
      [radiance_top_sum, jnp.sum(flux_up_surf, axis=1, keepdims=True)], axis=1
  )
  return weight * flux_up
