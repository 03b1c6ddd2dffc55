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

"""Angular quadrature for the radiance calculations of each hemisphere."""

from absl import logging
import numpy as np
from tripleclouds import constants


def gauss_legendre(n: int) -> tuple[np.ndarray, np.ndarray]:
  """Gauss-Legendre points and weights for the cosine of the zenith angle.

  Args:
    n: The number of points, at most `MAX_GAUSS_LEGENDRE_POINTS`.

  Returns:
    A tuple of the points `mu` in (0, 1) and their weights, which sum to one.
  """
  if not 1 <= n <= constants.MAX_GAUSS_LEGENDRE_POINTS:
    raise ValueError(
        f'The number of Gauss-Legendre points must be between 1 and'
        f' {constants.MAX_GAUSS_LEGENDRE_POINTS}, but {n} was requested.'
    )
  x, w = np.polynomial.legendre.leggauss(n)
  # Map from [-1, 1] onto [0, 1].
  return 0.5 * (x + 1.0), 0.5 * w


def angular_quadrature(n_angles: int) -> tuple[np.ndarray, np.ndarray]:
  """Zenith-angle cosines and weights for `n_angles` angles per hemisphere.

  A single angle is the two-stream special case: the diffusivity angle with a
  weight of one. More angles use Gauss-Legendre quadrature, with the number of
  points capped at `MAX_GAUSS_LEGENDRE_POINTS`.

  Args:
    n_angles: The requested number of angles per hemisphere.

  Returns:
    A tuple of the cosines `mu` and the quadrature weights.
  """
  if n_angles < 1:
    raise ValueError(
        f'At least one angle per hemisphere is required, got {n_angles}.'
    )
  if n_angles > constants.MAX_GAUSS_LEGENDRE_POINTS:
    logging.warning(
        'Requested %d angles per hemisphere; using the maximum of %d.',
        n_angles,
        constants.MAX_GAUSS_LEGENDRE_POINTS,
    )
    n_angles = constants.MAX_GAUSS_LEGENDRE_POINTS

  if n_angles == 1:
    return np.array([1.0 / constants.LW_DIFFUSIVITY]), np.array([1.0])
  return gauss_legendre(n_angles)


def flux_weights(mu: np.ndarray, weight: np.ndarray) -> np.ndarray:
  """Weights converting radiances to fluxes, normalized to sum to one.

  Projection into the horizontal multiplies each weight by `mu`; normalizing
  by the sum of `weight * mu` makes the quadrature exactly flux conserving for
  an isotropic radiance field.

  Args:
    mu: The cosines of the zenith angles.
    weight: The quadrature weights.

  Returns:
    The normalized flux weight of each angle.
  """
  projected = np.asarray(weight) * np.asarray(mu)
  return projected / np.sum(projected)
