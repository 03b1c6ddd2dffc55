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

"""Longwave reflectance, transmittance and sources of each layer and region.

Common symbols:
ssa: single-scattering albedo;
od: optical depth;
g: asymmetry factor;
mu: cosine of the zenith angle of a radiance calculation;
gamma: exchange rate coefficient in the radiative transfer equation.

Every per-region array has shape (nspec, nregion, nlev). Planck functions are
given at half-levels in flux units [W/m^2], i.e. the flux emitted by a
horizontal black-body surface, and the emission sources of each region are
weighted by the region's fractional area so that the per-region fluxes of a
layer sum to the gridbox-mean flux.
"""

from typing import TypeAlias

import jax
import jax.numpy as jnp
from tripleclouds import constants

Array: TypeAlias = jax.Array
StatesMap: TypeAlias = dict[str, Array]

_EPSILON = 1e-6
# Below this optical depth the emission is treated in the thin-layer limit.
_MIN_OD_FOR_LINEAR_SRC = 1e-4
# Minimum value of the k parameter used in the transmittance.
_K_MIN = 1e-2


def _k_fn(gamma1: Array, gamma2: Array) -> Array:
  """Compute the k parameter used in the transmittance."""
  k = jnp.sqrt(jnp.maximum((gamma1 + gamma2) * (gamma1 - gamma2), _EPSILON))
  return jnp.maximum(k, _K_MIN)


def _rt_denominator_diffuse(gamma1: Array, gamma2: Array, od: Array) -> Array:
  """Shared denominator of the diffuse reflectance and transmittance."""
  # Refactored to avoid rounding errors when k, gamma1 are of very different
  # magnitudes.
  k = _k_fn(gamma1, gamma2)
  return k * (1 + jnp.exp(-2.0 * od * k)) + gamma1 * (
      1 - jnp.exp(-2.0 * od * k)
  )


def _diffuse_reflectance(gamma1: Array, gamma2: Array, od: Array) -> Array:
  """The diffuse reflectance (equation 25 of Meador and Weaver (1980))."""
  k = _k_fn(gamma1, gamma2)
  denom = _rt_denominator_diffuse(gamma1, gamma2, od)
  return gamma2 * (1.0 - jnp.exp(-2.0 * od * k)) / denom


def _diffuse_transmittance(gamma1: Array, gamma2: Array, od: Array) -> Array:
  """The diffuse transmittance (equation 26 of Meador and Weaver (1980))."""
  k = _k_fn(gamma1, gamma2)
  denom = _rt_denominator_diffuse(gamma1, gamma2, od)
  return 2.0 * k * jnp.exp(-od * k) / denom


def _planck_top_and_base(planck_hl: Array, region_fracs: Array) -> tuple[
    Array, Array]:
  """Area-weighted Planck functions at the top and base of each layer."""
  planck_top = planck_hl[:, jnp.newaxis, :-1] * region_fracs[jnp.newaxis]
  planck_base = planck_hl[:, jnp.newaxis, 1:] * region_fracs[jnp.newaxis]
  return planck_top, planck_base


def _linear_in_od_source(
    src_exit: Array,
    src_entry: Array,
    transmittance: Array,
    od: Array,
    od_slant: Array,
) -> Array:
  """Emission leaving a layer whose source function is linear in optical depth.

  Args:
    src_exit: The source function at the face the radiation leaves through.
    src_entry: The source function at the opposite face.
    transmittance: The transmittance along the path, `exp(-od_slant)`.
    od: The vertical optical depth of the layer.
    od_slant: The optical depth along the path.

  Returns:
    The radiation emitted from the layer through `src_exit`'s face.
  """
  is_thick = od > _MIN_OD_FOR_LINEAR_SRC
  safe_od_slant = jnp.where(is_thick, od_slant, 1.0)
  linear = (
      src_exit
      - transmittance * src_entry
      + (src_entry - src_exit) * (1.0 - transmittance) / safe_od_slant
  )
  thin = 0.5 * (src_exit + src_entry) * (1.0 - transmittance)
  return jnp.where(is_thick, linear, thin)


def calc_reflectance_transmittance(
    region_fracs: Array,
    planck_hl: Array,
    od: Array,
    ssa: Array,
    asymmetry: Array,
) -> StatesMap:
  """Computes the two-stream reflectance, transmittance and sources.

  The diffuse reflectance and transmittance follow Meador and Weaver (1980)
  with the longwave exchange coefficients of Fu et al. (1997). Emission uses
  the first-order coefficient of the Taylor expansion of the Planck function
  in optical depth (Toon et al., JGR 1989, Eqs 26-27).

  Args:
    region_fracs: The fractional area of each region, shape (nregion, nlev).
    planck_hl: The Planck function at half-levels, shape (nspec, nlev + 1).
    od: The optical depth of each region, shape (nspec, nregion, nlev).
    ssa: The single-scattering albedo of each region.
    asymmetry: The asymmetry factor of each region.

  Returns:
    A dictionary containing the following items:
      'reflectance': The diffuse reflectance.
      'transmittance': The diffuse transmittance.
      'source_up': The upward emission from the top of each layer [W/m^2].
      'source_dn': The downward emission from the base of each layer [W/m^2].
  """
  # The coefficient of the parallel irradiance in the 2-stream RTE.
  gamma1 = constants.LW_DIFFUSIVITY * (1 - 0.5 * ssa * (1 + asymmetry))
  # The coefficient of the antiparallel irradiance in the 2-stream RTE.
  gamma2 = constants.LW_DIFFUSIVITY * 0.5 * ssa * (1 - asymmetry)

  reflectance = _diffuse_reflectance(gamma1, gamma2, od)
  transmittance = _diffuse_transmittance(gamma1, gamma2, od)

  planck_top, planck_base = _planck_top_and_base(planck_hl, region_fracs)

  is_thick = od > _MIN_OD_FOR_LINEAR_SRC
  od_eff = jnp.where(is_thick, od * (gamma1 + gamma2), 1.0)
  b_1 = jnp.where(is_thick, (planck_base - planck_top) / od_eff, 0.0)

  c_up_top = planck_top + b_1
  c_up_base = planck_base + b_1
  c_dn_top = planck_top - b_1
  c_dn_base = planck_base - b_1

  # Optically thin layers emit their mean Planck function times their
  # emissivity.
  thin = 0.5 * (planck_top + planck_base) * (1.0 - reflectance - transmittance)
  source_up = jnp.where(
      is_thick,
      c_up_top - reflectance * c_dn_top - transmittance * c_up_base,
      thin,
  )
  source_dn = jnp.where(
      is_thick,
      c_dn_base - reflectance * c_up_base - transmittance * c_dn_top,
      thin,
  )
  return {
      'reflectance': reflectance,
      'transmittance': transmittance,
      'source_up': source_up,
      'source_dn': source_dn,
  }


def calc_no_scattering_radiance_source(
    mu: float,
    region_fracs: Array,
    planck_hl: Array,
    od: Array,
) -> StatesMap:
  """Computes the slant-path transmittance and emission without scattering.

  Args:
    mu: The cosine of the zenith angle.
    region_fracs: The fractional area of each region, shape (nregion, nlev).
    planck_hl: The Planck function at half-levels, shape (nspec, nlev + 1).
    od: The optical depth of each region, shape (nspec, nregion, nlev).

  Returns:
    A dictionary containing 'transmittance', 'source_up' and 'source_dn'.
  """
  od_slant = od / mu
  transmittance = jnp.exp(-od_slant)
  planck_top, planck_base = _planck_top_and_base(planck_hl, region_fracs)
  source_up = _linear_in_od_source(
      planck_top, planck_base, transmittance, od, od_slant
  )
  source_dn = _linear_in_od_source(
      planck_base, planck_top, transmittance, od, od_slant
  )
  return {
      'transmittance': transmittance,
      'source_up': source_up,
      'source_dn': source_dn,
  }


def calc_radiance_source(
    mu: float,
    region_fracs: Array,
    planck_hl: Array,
    od: Array,
    ssa: Array,
    asymmetry: Array,
    flux_up_base: Array,
    flux_dn_base: Array,
    flux_up_top: Array,
    flux_dn_top: Array,
) -> StatesMap:
  """Computes the slant-path transmittance and sources including scattering.

  The two-stream fluxes provide the scattering source. The phase function is
  truncated to `1 + 3 g mu mu'`, so that scattering of hemispherically
  isotropic fluxes into direction `mu` of the same hemisphere is weighted by
  `1 + 1.5 g mu` and from the opposite hemisphere by `1 - 1.5 g mu`. The
  source function varies linearly in optical depth between the values at the
  layer faces.

  Args:
    mu: The cosine of the zenith angle.
    region_fracs: The fractional area of each region, shape (nregion, nlev).
    planck_hl: The Planck function at half-levels, shape (nspec, nlev + 1).
    od: The optical depth of each region, shape (nspec, nregion, nlev).
    ssa: The single-scattering albedo of each region.
    asymmetry: The asymmetry factor of each region.
    flux_up_base: The two-stream upwelling flux at the base of each layer.
    flux_dn_base: The two-stream downwelling flux at the base of each layer.
    flux_up_top: The two-stream upwelling flux at the top of each layer.
    flux_dn_top: The two-stream downwelling flux at the top of each layer.

  Returns:
    A dictionary containing 'transmittance', 'source_up' and 'source_dn'.
  """
  od_slant = od / mu
  transmittance = jnp.exp(-od_slant)
  planck_top, planck_base = _planck_top_and_base(planck_hl, region_fracs)

  forward = 1.0 + 1.5 * asymmetry * mu
  backward = 1.0 - 1.5 * asymmetry * mu

  def source_fn(planck, flux_same, flux_opposite):
    return (1.0 - ssa) * planck + 0.5 * ssa * (
        flux_same * forward + flux_opposite * backward
    )

  src_fn_up_top = source_fn(planck_top, flux_up_top, flux_dn_top)
  src_fn_up_base = source_fn(planck_base, flux_up_base, flux_dn_base)
  src_fn_dn_top = source_fn(planck_top, flux_dn_top, flux_up_top)
  src_fn_dn_base = source_fn(planck_base, flux_dn_base, flux_up_base)

  source_up = _linear_in_od_source(
      src_fn_up_top, src_fn_up_base, transmittance, od, od_slant
  )
  source_dn = _linear_in_od_source(
      src_fn_dn_base, src_fn_dn_top, transmittance, od, od_slant
  )
  return {
      'transmittance': transmittance,
      'source_up': source_up,
      'source_dn': source_dn,
  }
