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

"""Configuration for the Tripleclouds flux solvers."""

import dataclasses
from typing import TypeAlias

import dataclasses_json  # Used for JSON serialization.
from tripleclouds import constants
from tripleclouds import region

CloudPdfShape: TypeAlias = region.CloudPdfShape


@dataclasses.dataclass(frozen=True, kw_only=True)
class SolverOptions(dataclasses_json.DataClassJsonMixin):
  """Parameters controlling a flux calculation."""

  # Number of angles per hemisphere for the radiance calculations; for example,
  # 2 results in the delta-2-plus-4 algorithm recommended by Fu et al. (1997).
  # A value of 0 uses the two-stream Tripleclouds fluxes directly. Values above
  # the maximum number of Gauss-Legendre points are clamped to it.
  angles_per_hemisphere: int = 0
  # Reserved for representing 3D radiative effects; currently informational.
  represent_3d_effects: bool = False
  # Number of horizontal regions: clear sky plus the cloudy regions.
  n_regions: int = constants.N_REGIONS
  # Shape of the sub-grid distribution of in-cloud optical depth.
  cloud_pdf_shape: CloudPdfShape = 'gamma'
  # Cloud fractions below this are treated as clear sky.
  cloud_fraction_threshold: float = constants.CLOUD_FRACTION_THRESHOLD
  # Ratio of the overlap decorrelation length of cloud inhomogeneities to that
  # of cloud boundaries.
  decorrelation_scaling: float = constants.DECORRELATION_SCALING
  # If True, use jax.lax.scan instead of for loop for scanning through an array.
  use_scan: bool = False

  def __post_init__(self):
    if self.angles_per_hemisphere < 0:
      raise ValueError(
          'angles_per_hemisphere must be non-negative, got'
          f' {self.angles_per_hemisphere}.'
      )
    if self.n_regions != constants.N_REGIONS:
      raise region.UnsupportedRegionCountError(
          f'Unsupported number of regions: {self.n_regions}.  Only'
          f' {constants.N_REGIONS} regions (Tripleclouds) are implemented.'
      )
    allowed_pdf_shapes = ['lognormal', 'gamma']
    if self.cloud_pdf_shape not in allowed_pdf_shapes:
      raise ValueError(
          f'Unsupported cloud PDF shape: {self.cloud_pdf_shape}.  Must be one'
          f' of {allowed_pdf_shapes}.'
      )
    if self.cloud_fraction_threshold <= 0.0:
      raise ValueError(
          'cloud_fraction_threshold must be positive, got'
          f' {self.cloud_fraction_threshold}.'
      )
    if self.decorrelation_scaling <= 0.0:
      raise ValueError(
          'decorrelation_scaling must be positive, got'
          f' {self.decorrelation_scaling}.'
      )
