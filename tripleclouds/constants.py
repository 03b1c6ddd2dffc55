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

"""Constants shared by the Tripleclouds longwave solver."""

# Secant of the longwave diffusivity angle per Fu et al. (1997).
LW_DIFFUSIVITY = 1.66
# Maximum number of Gauss-Legendre points per hemisphere.
MAX_GAUSS_LEGENDRE_POINTS = 8
# Number of horizontal regions: one clear plus two cloudy.
N_REGIONS = 3
# Cloud fractions below this are treated as clear sky by the flux solvers.
CLOUD_FRACTION_THRESHOLD = 1e-6
# Default threshold of the region property engine when called on its own.
DEFAULT_REGION_FRACTION_THRESHOLD = 1e-20
# Ratio of the decorrelation length of cloud inhomogeneities to that of cloud
# boundaries.
DECORRELATION_SCALING = 0.5
