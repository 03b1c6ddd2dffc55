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

"""Two-stream Tripleclouds flux profile of a multi-region column."""

from typing import TypeAlias

import jax
import jax.numpy as jnp
from tripleclouds.rte import rte_utils

Array: TypeAlias = jax.Array
StatesMap: TypeAlias = dict[str, Array]


def calc_two_stream_flux(
    surf_emission: Array,
    surf_albedo: Array,
    region_fracs: Array,
    reflectance: Array,
    transmittance: Array,
    source_up: Array,
    source_dn: Array,
    is_cloud_free_layer: Array,
    u_overlap: Array,
    v_overlap: Array,
    use_scan: bool = False,
) -> StatesMap:
  """Solves the two-stream equations in each region of each layer.

  This extends the adding method of Shonk and Hogan (2008) to several regions
  per layer. An upward pass from the surface accumulates the albedo of, and the
  upward emission from, everything below each layer in each region. Crossing
  an interface, albedos are weighted by the downward overlap matrix (radiation
  reflected from below returns to the region it came from) and upward emission
  is redistributed with the upward overlap matrix. A downward pass from the top
  of the atmosphere, where there is no incoming longwave flux, then yields the
  downwelling fluxes, and the upwelling fluxes follow from the albedos and
  emissions.

  Args:
    surf_emission: The surface upward emission, shape (nspec,) [W/m^2].
    surf_albedo: The surface albedo, shape (nspec,).
    region_fracs: The fractional area of each region, shape (nregion, nlev).
    reflectance: The diffuse reflectance, shape (nspec, nregion, nlev).
    transmittance: The diffuse transmittance.
    source_up: The upward emission from the top of each layer [W/m^2].
    source_dn: The downward emission from the base of each layer [W/m^2].
    is_cloud_free_layer: Whether each layer is entirely clear, shape (nlev,).
    u_overlap: The upward overlap matrices, shape (nregion, nregion, nlev + 1).
    v_overlap: The downward overlap matrices, shape (nregion, nregion, nlev + 1).
    use_scan: Whether to use scan or for loops for the recurrent operation.

  Returns:
    A dictionary with the per-region fluxes [W/m^2], each of shape
    (nspec, nregion, nlev):
      'flux_up_top': The upwelling flux at the top of each layer.
      'flux_dn_top': The downwelling flux at the top of each layer.
      'flux_up_base': The upwelling flux at the base of each layer.
      'flux_dn_base': The downwelling flux at the base of each layer.
  """
  nspec = surf_emission.shape[0]
  nregion = region_fracs.shape[0]

  # Only the clear region of a cloud-free layer is populated.
  is_cloudy_region = jnp.arange(nregion) > 0
  empty_region = (
      is_cloudy_region[:, jnp.newaxis] & is_cloud_free_layer[jnp.newaxis, :]
  )

  def albedo_and_source_op(
      carry: tuple[Array, Array],
      reflectance: Array,
      transmittance: Array,
      source_up: Array,
      source_dn: Array,
      empty_region: Array,
      u_overlap: Array,
      v_overlap: Array,
  ) -> tuple[tuple[Array, Array], StatesMap]:
    """Recurrent formula for albedo and upward emission, from the surface."""
    albedo_base, source_base = carry
    # Geometric series solution accounting for infinite reflection events.
    beta = 1 / (1 - reflectance * albedo_base)
    albedo_top = reflectance + transmittance**2 * beta * albedo_base
    source_top = source_up + transmittance * beta * (
        source_base + source_dn * albedo_base
    )
    albedo_top = jnp.where(empty_region, 0.0, albedo_top)
    source_top = jnp.where(empty_region, 0.0, source_top)

    # Cross the interface at the top of the layer into the layer above.
    albedo_above = jnp.einsum('si,ij->sj', albedo_top, v_overlap)
    source_above = jnp.einsum('ji,si->sj', u_overlap, source_top)
    level_out = {
        'albedo_top': albedo_top,
        'source_top': source_top,
        'albedo_base': albedo_base,
        'source_base': source_base,
    }
    return (albedo_above, source_above), level_out

  surf_albedo_regions = jnp.broadcast_to(
      surf_albedo[:, jnp.newaxis], (nspec, nregion)
  )
  surf_source_regions = (
      surf_emission[:, jnp.newaxis] * region_fracs[jnp.newaxis, :, -1]
  )
  _, upward = rte_utils.column_recurrence(
      albedo_and_source_op,
      (surf_albedo_regions, surf_source_regions),
      {
          'reflectance': reflectance,
          'transmittance': transmittance,
          'source_up': source_up,
          'source_dn': source_dn,
          'empty_region': empty_region,
          'u_overlap': u_overlap[..., :-1],
          'v_overlap': v_overlap[..., :-1],
      },
      forward=False,
      use_scan=use_scan,
  )

  def flux_dn_op(
      flux_dn_top: Array,
      reflectance: Array,
      transmittance: Array,
      source_dn: Array,
      albedo_base: Array,
      source_base: Array,
      v_overlap: Array,
  ) -> tuple[Array, StatesMap]:
    """Recurrent formula for downwelling flux from the top of atmosphere."""
    beta = 1 / (1 - reflectance * albedo_base)
    flux_dn_base = (
        transmittance * flux_dn_top + reflectance * source_base + source_dn
    ) * beta
    # Cross the interface at the base of the layer into the layer below.
    flux_dn_below = jnp.einsum('ij,sj->si', v_overlap, flux_dn_base)
    return flux_dn_below, {
        'flux_dn_top': flux_dn_top,
        'flux_dn_base': flux_dn_base,
    }

  toa_flux_dn = jnp.zeros((nspec, nregion), dtype=reflectance.dtype)
  _, downward = rte_utils.column_recurrence(
      flux_dn_op,
      toa_flux_dn,
      {
          'reflectance': reflectance,
          'transmittance': transmittance,
          'source_dn': source_dn,
          'albedo_base': upward['albedo_base'],
          'source_base': upward['source_base'],
          'v_overlap': v_overlap[..., 1:],
      },
      forward=True,
      use_scan=use_scan,
  )

  flux_dn_top = downward['flux_dn_top']
  flux_dn_base = downward['flux_dn_base']
  flux_up_top = upward['albedo_top'] * flux_dn_top + upward['source_top']
  flux_up_base = upward['albedo_base'] * flux_dn_base + upward['source_base']
  return {
      'flux_up_top': flux_up_top,
      'flux_dn_top': flux_dn_top,
      'flux_up_base': flux_up_base,
      'flux_dn_base': flux_dn_base,
  }
