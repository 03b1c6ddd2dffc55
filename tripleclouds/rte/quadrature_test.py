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

from absl.testing import absltest
from absl.testing import parameterized
import numpy as np
from tripleclouds import constants
from tripleclouds.rte import quadrature


class QuadratureTest(parameterized.TestCase):

  def test_single_angle_is_diffusivity_angle(self):
    mu, weight = quadrature.angular_quadrature(1)
    np.testing.assert_allclose(mu, [1.0 / constants.LW_DIFFUSIVITY])
    np.testing.assert_allclose(weight, [1.0])
    np.testing.assert_allclose(quadrature.flux_weights(mu, weight), [1.0])

  @parameterized.parameters(range(2, 9))
  def test_gauss_legendre_integrates_polynomials_exactly(self, n):
    mu, weight = quadrature.angular_quadrature(n)
    self.assertLen(mu, n)
    self.assertTrue(np.all((mu > 0.0) & (mu < 1.0)))
    for power in range(2 * n):
      np.testing.assert_allclose(
          np.sum(weight * mu**power), 1.0 / (power + 1), rtol=1e-12
      )

  @parameterized.parameters(range(1, 9))
  def test_flux_weights_sum_to_one(self, n):
    mu, weight = quadrature.angular_quadrature(n)
    flux_weight = quadrature.flux_weights(mu, weight)
    np.testing.assert_allclose(np.sum(flux_weight), 1.0, rtol=1e-14)
    self.assertTrue(np.all(flux_weight > 0.0))

  def test_number_of_angles_is_capped(self):
    mu, weight = quadrature.angular_quadrature(20)
    self.assertLen(mu, constants.MAX_GAUSS_LEGENDRE_POINTS)
    self.assertLen(weight, constants.MAX_GAUSS_LEGENDRE_POINTS)

  def test_invalid_number_of_angles_raises(self):
    with self.assertRaises(ValueError):
      quadrature.angular_quadrature(0)
    with self.assertRaises(ValueError):
      quadrature.gauss_legendre(constants.MAX_GAUSS_LEGENDRE_POINTS + 1)


if __name__ == '__main__':
  absltest.main()
