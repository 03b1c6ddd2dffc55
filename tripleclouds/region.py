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

"""Properties of the horizontal regions of the Tripleclouds assumption.

A gridbox is split into a clear region and two cloudy regions. The cloudy
regions sample a sub-grid distribution of in-cloud optical depth at two points:
following Shonk and Hogan (2008), the optically "thin" region is placed at the
16th percentile of the distribution, and the optically "thick" region is chosen
so that the mean in-cloud optical depth is conserved.
"""

from typing import Literal, TypeAlias

import jax
import jax.numpy as jnp
from tripleclouds import constants

Array: TypeAlias = jax.Array
StatesMap: TypeAlias = dict[str, Array]
CloudPdfShape: TypeAlias = Literal['lognormal', 'gamma']

# Minimum optical depth scaling of the thin region for a gamma distribution.
MIN_GAMMA_OD_SCALING = 0.025

# At large fractional standard deviations (FSDs) a gamma distribution cannot be
# captured with two equally weighted points, so the thin region is given more
# weight. Its share of the cloud is 0.5 up to FSD = 1.5, rises linearly to 0.9
# at FSD = 3.725, and is capped there.
MIN_LOWER_FRAC = 0.5
MAX_LOWER_FRAC = 0.9
FSD_AT_MIN_LOWER_FRAC = 1.5
FSD_AT_MAX_LOWER_FRAC = 3.725
LOWER_FRAC_FSD_GRADIENT = (MAX_LOWER_FRAC - MIN_LOWER_FRAC) / (
    FSD_AT_MAX_LOWER_FRAC - FSD_AT_MIN_LOWER_FRAC
)
LOWER_FRAC_FSD_INTERCEPT = (
    MIN_LOWER_FRAC - FSD_AT_MIN_LOWER_FRAC * LOWER_FRAC_FSD_GRADIENT
)


class UnsupportedRegionCountError(ValueError):
  """Raised when the region properties are requested for a region count that
  has no sub-grid decomposition."""


def _lognormal_properties(
    cloud_fraction: Array, fractional_std: Array
) -> tuple[Array, Array, Array, Array]:
  """Equal-area split with the 16th percentile of a lognormal distribution."""
  # If the equivalent Normal distribution has mean mu and standard deviation
  # sigma, the 16th percentile of the lognormal is very close to exp(mu-sigma).
  variance_factor = fractional_std**2 + 1.0
  thin_scaling = jnp.exp(-jnp.sqrt(jnp.log(variance_factor))) / jnp.sqrt(
      variance_factor
  )
  thin_frac = 0.5 * cloud_fraction
  thick_frac = 0.5 * cloud_fraction
  # Equal areas, so the mean scaling is exactly one.
  thick_scaling = 2.0 - thin_scaling
  return thin_frac, thick_frac, thin_scaling, thick_scaling


def _gamma_properties(
    cloud_fraction: Array,
    fractional_std: Array,
) -> tuple[Array, Array, Array, Array]:
  """Weighted split with the 16th percentile of a gamma distribution.

  The 16th percentile becomes vanishingly small for FSD >~ 2, so the thin
  region scaling is floored at `MIN_GAMMA_OD_SCALING` and, at high FSD, the
  thin region is given a larger share of the cloud (appendix of Hogan et al.,
  2019).

  Args:
    cloud_fraction: The cloud fraction of each level.
    fractional_std: The fractional standard deviation of each level.

  Returns:
    The thin and thick region fractions and optical depth scalings.
  """
  lower_frac = jnp.clip(
      LOWER_FRAC_FSD_INTERCEPT + fractional_std * LOWER_FRAC_FSD_GRADIENT,
      MIN_LOWER_FRAC,
      MAX_LOWER_FRAC,
  )
  thin_frac = cloud_fraction * lower_frac
  thin_scaling = MIN_GAMMA_OD_SCALING + (1.0 - MIN_GAMMA_OD_SCALING) * jnp.exp(
      -fractional_std * (1.0 + 0.5 * fractional_std * (
          1.0 + 0.5 * fractional_std))
  )
  thick_frac = cloud_fraction - thin_frac

  # Conservation of the mean optical depth. The thick region holds at least a
  # tenth of the cloud, so only clear levels have no thick area.
  has_thick_area = thick_frac > 0.0
  safe_thick_frac = jnp.where(has_thick_area, thick_frac, 1.0)
  thick_scaling = jnp.where(
      has_thick_area,
      (cloud_fraction - thin_frac * thin_scaling) / safe_thick_frac,
      1.0,
  )
  return thin_frac, thick_frac, thin_scaling, thick_scaling


def calc_region_properties(
    cloud_fraction: Array,
    fractional_std: Array,
    pdf_shape: CloudPdfShape = 'gamma',
    cloud_fraction_threshold: float = (
        constants.DEFAULT_REGION_FRACTION_THRESHOLD
    ),
    n_regions: int = constants.N_REGIONS,
) -> StatesMap:
  """Computes the region fractions and optical depth scalings of each level.

  Levels with a cloud fraction below `cloud_fraction_threshold` are entirely
  clear: the clear region covers the gridbox and the cloudy regions have zero
  area and a scaling of one.

  Args:
    cloud_fraction: The cloud fraction profile, shape (nlev,).
    fractional_std: The fractional standard deviation of the in-cloud water
      content, shape (nlev,).
    pdf_shape: Either 'lognormal' or 'gamma', the assumed shape of the sub-grid
      distribution of in-cloud optical depth.
    cloud_fraction_threshold: Cloud fractions below this are ignored.
    n_regions: The number of regions; only the Tripleclouds value of 3 has a
      sub-grid decomposition.

  Returns:
    A dictionary with the following items:
      'region_fracs': The fractional area coverage of each region, shape
        (n_regions, nlev). Row 0 is the clear region.
      'od_scaling': The optical depth scaling of each cloudy region relative to
        the mean in-cloud optical depth, shape (n_regions - 1, nlev). Row 0 is
        the thin region.

  Raises:
    UnsupportedRegionCountError: If `n_regions` is not 3.
    ValueError: If `pdf_shape` is not recognised.
  """
  if n_regions != constants.N_REGIONS:
    raise UnsupportedRegionCountError(
        f'Region properties are only defined for {constants.N_REGIONS}'
        f' regions, but {n_regions} were requested.'
    )

  cloud_fraction = jnp.asarray(cloud_fraction)
  fractional_std = jnp.asarray(fractional_std)

  if pdf_shape == 'lognormal':
    thin_frac, thick_frac, thin_scaling, thick_scaling = _lognormal_properties(
        cloud_fraction, fractional_std
    )
  elif pdf_shape == 'gamma':
    thin_frac, thick_frac, thin_scaling, thick_scaling = _gamma_properties(
        cloud_fraction, fractional_std
    )
  else:
    raise ValueError(
        f'Unsupported cloud PDF shape: {pdf_shape}.  Must be one of'
        " ['lognormal', 'gamma']."
    )

  is_cloudy = cloud_fraction >= cloud_fraction_threshold
  region_fracs = jnp.stack([
      jnp.where(is_cloudy, 1.0 - cloud_fraction, 1.0),
      jnp.where(is_cloudy, thin_frac, 0.0),
      jnp.where(is_cloudy, thick_frac, 0.0),
  ])
  od_scaling = jnp.stack([
      jnp.where(is_cloudy, thin_scaling, 1.0),
      jnp.where(is_cloudy, thick_scaling, 1.0),
  ])
  return {'region_fracs': region_fracs, 'od_scaling': od_scaling}
