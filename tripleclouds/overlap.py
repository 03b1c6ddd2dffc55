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

"""Overlap matrices describing how regions connect across layer interfaces.

The overlap matrices follow Hogan et al. (JGR 2016). For each of the nlev + 1
interfaces, counted down from the top of the atmosphere, `v_overlap` maps the
area-weighted downwelling fluxes in each region just above the interface to
those just below it, and `u_overlap` maps the upwelling fluxes just below the
interface to those just above it. A clear layer is assumed above the top of the
atmosphere and below the surface.
"""

from typing import TypeAlias

import jax
import jax.numpy as jnp
from tripleclouds import constants

Array: TypeAlias = jax.Array
StatesMap: TypeAlias = dict[str, Array]


def _safe_divide(num: Array, denom: Array, threshold: float) -> Array:
  """`num / denom` where `denom >= threshold`, and zero elsewhere."""
  valid = denom >= threshold
  return jnp.where(valid, num / jnp.where(valid, denom, 1.0), 0.0)


def _ranked_coupling(frac_upper: Array, frac_lower: Array) -> Array:
  """Maximum overlap of cloudy regions ordered from thin to thick.

  Args:
    frac_upper: The normalized fractions of the cloudy regions above the
      interface, shape (ncloudy, ninterface), summing to one over regions.
    frac_lower: As `frac_upper` but below the interface.

  Returns:
    The joint fractions, shape (ncloudy, ncloudy, ninterface), indexed by
    (region above, region below).
  """
  cum_upper = jnp.cumsum(frac_upper, axis=0)
  cum_lower = jnp.cumsum(frac_lower, axis=0)
  start_upper = cum_upper - frac_upper
  start_lower = cum_lower - frac_lower
  joint = jnp.minimum(
      cum_upper[:, jnp.newaxis], cum_lower[jnp.newaxis, :]
  ) - jnp.maximum(start_upper[:, jnp.newaxis], start_lower[jnp.newaxis, :])
  return jnp.maximum(joint, 0.0)


def calc_alpha_overlap_matrix(
    overlap_param: Array,
    frac_upper: Array,
    frac_lower: Array,
    decorrelation_scaling: float = constants.DECORRELATION_SCALING,
    cloud_fraction_threshold: float = constants.CLOUD_FRACTION_THRESHOLD,
) -> Array:
  """Computes the joint area fractions of regions on either side of interfaces.

  The combined cloud cover of the two layers either side of an interface is a
  blend of maximum and random overlap weighted by the overlap parameter (the
  "alpha" of Hogan and Illingworth, 2000). Within the part of the gridbox where
  cloud overlaps cloud, the cloudy regions overlap with the parameter
  `overlap_param ** (1 / decorrelation_scaling)`.

  Args:
    overlap_param: The overlap parameter at each interface, shape (ninterface,).
    frac_upper: The region fractions above each interface, shape
      (nregion, ninterface).
    frac_lower: The region fractions below each interface, shape
      (nregion, ninterface).
    decorrelation_scaling: Ratio of the decorrelation length of cloud
      inhomogeneities to that of cloud boundaries.
    cloud_fraction_threshold: Cloud fractions below this are ignored.

  Returns:
    The joint fractions, shape (nregion, nregion, ninterface), indexed by
    (region above, region below).
  """
  cf_upper = jnp.sum(frac_upper[1:], axis=0)
  cf_lower = jnp.sum(frac_lower[1:], axis=0)
  pair_cloud_cover = overlap_param * jnp.maximum(cf_upper, cf_lower) + (
      1.0 - overlap_param
  ) * (cf_upper + cf_lower - cf_upper * cf_lower)

  # Fractions of each cloudy region within the cloud.
  norm_upper = _safe_divide(frac_upper[1:], cf_upper, cloud_fraction_threshold)
  norm_lower = _safe_divide(frac_lower[1:], cf_lower, cloud_fraction_threshold)

  clear_clear = 1.0 - pair_cloud_cover
  clear_cloudy = (pair_cloud_cover - cf_upper) * norm_lower
  cloudy_clear = (pair_cloud_cover - cf_lower) * norm_upper

  overlap_inhom = overlap_param ** (1.0 / decorrelation_scaling)
  cloudy_cloudy = (cf_upper + cf_lower - pair_cloud_cover) * (
      overlap_inhom * _ranked_coupling(norm_upper, norm_lower)
      + (1.0 - overlap_inhom)
      * norm_upper[:, jnp.newaxis]
      * norm_lower[jnp.newaxis, :]
  )

  top_row = jnp.concatenate(
      [clear_clear[jnp.newaxis], clear_cloudy], axis=0
  )[jnp.newaxis]
  lower_rows = jnp.concatenate(
      [cloudy_clear[:, jnp.newaxis], cloudy_cloudy], axis=1
  )
  return jnp.concatenate([top_row, lower_rows], axis=0)


def calc_overlap_matrices(
    region_fracs: Array,
    overlap_param: Array,
    decorrelation_scaling: float = constants.DECORRELATION_SCALING,
    cloud_fraction_threshold: float = constants.CLOUD_FRACTION_THRESHOLD,
) -> StatesMap:
  """Computes the upward and downward overlap matrices and the cloud cover.

  Args:
    region_fracs: The fractional area coverage of each region, shape
      (nregion, nlev), with region 0 clear.
    overlap_param: The overlap parameter between adjacent layers, shape
      (nlev - 1,).
    decorrelation_scaling: Ratio of the decorrelation length of cloud
      inhomogeneities to that of cloud boundaries.
    cloud_fraction_threshold: Regions smaller than this are ignored.

  Returns:
    A dictionary with the following items:
      'u_overlap': The upward overlap matrices, shape
        (nregion, nregion, nlev + 1), where `u_overlap[i, j, k]` is the
        fraction of the upwelling flux in region j below interface k that
        enters region i above it.
      'v_overlap': The downward overlap matrices, where `v_overlap[i, j, k]` is
        the fraction of the downwelling flux in region j above interface k that
        enters region i below it.
      'cloud_cover': The total cloud cover of the profile.
  """
  nregion = region_fracs.shape[0]
  clear_guard = jnp.zeros((nregion, 1), dtype=region_fracs.dtype)
  clear_guard = clear_guard.at[0].set(1.0)
  fracs = jnp.concatenate([clear_guard, region_fracs, clear_guard], axis=1)
  frac_upper = fracs[:, :-1]
  frac_lower = fracs[:, 1:]

  # The overlap parameter does not matter next to the clear guard layers.
  one = jnp.ones((1,), dtype=region_fracs.dtype)
  overlap_param = jnp.concatenate(
      [one, jnp.asarray(overlap_param, dtype=region_fracs.dtype), one]
  )

  joint = calc_alpha_overlap_matrix(
      overlap_param,
      frac_upper,
      frac_lower,
      decorrelation_scaling,
      cloud_fraction_threshold,
  )

  v_overlap = _safe_divide(
      jnp.swapaxes(joint, 0, 1),
      frac_upper[jnp.newaxis, :, :],
      cloud_fraction_threshold,
  )
  u_overlap = _safe_divide(
      joint, frac_lower[jnp.newaxis, :, :], cloud_fraction_threshold
  )

  # Clear-sky area surviving each interface on the way down.
  clear_sky_fraction = jnp.prod(v_overlap[0, 0, :])
  cloud_cover = 1.0 - clear_sky_fraction
  return {
      'u_overlap': u_overlap,
      'v_overlap': v_overlap,
      'cloud_cover': cloud_cover,
  }
