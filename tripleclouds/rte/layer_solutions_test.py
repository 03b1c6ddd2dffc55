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
import jax
jax.config.update('jax_enable_x64', True)
import jax.numpy as jnp
import numpy as np
from tripleclouds import constants
from tripleclouds.rte import layer_solutions

_NSPEC = 2
_NLEV = 4


def _region_fracs() -> np.ndarray:
  return np.array([
      [1.0, 0.5, 0.2, 0.0],
      [0.0, 0.3, 0.4, 0.6],
      [0.0, 0.2, 0.4, 0.4],
  ])


def _optical_depth() -> np.ndarray:
  od = np.array([1e-6, 0.05, 1.0, 8.0])
  return np.broadcast_to(od, (_NSPEC, 3, _NLEV)) * np.array(
      [1.0, 2.0]
  )[:, np.newaxis, np.newaxis]


class LayerSolutionsTest(parameterized.TestCase):

  def test_non_scattering_two_stream_matches_radiance_at_diffusivity_angle(
      self,
  ):
    # SETUP
    region_fracs = _region_fracs()
    planck_hl = np.tile(np.linspace(50.0, 300.0, _NLEV + 1), (_NSPEC, 1))
    od = _optical_depth()
    zeros = np.zeros_like(od)

    # ACTION
    two_stream = layer_solutions.calc_reflectance_transmittance(
        region_fracs, planck_hl, od, zeros, zeros
    )
    radiance = layer_solutions.calc_no_scattering_radiance_source(
        1.0 / constants.LW_DIFFUSIVITY, region_fracs, planck_hl, od
    )

    # VERIFICATION
    np.testing.assert_allclose(two_stream['reflectance'], 0.0, atol=1e-15)
    np.testing.assert_allclose(
        two_stream['transmittance'],
        np.exp(-constants.LW_DIFFUSIVITY * od),
        rtol=1e-12,
    )
    for key in ('transmittance', 'source_up', 'source_dn'):
      np.testing.assert_allclose(
          two_stream[key], radiance[key], rtol=1e-10, atol=1e-12
      )

  @parameterized.parameters(0.0, 0.5, 0.99)
  def test_isothermal_layer_emits_by_its_absorptivity(self, ssa_value):
    # SETUP
    region_fracs = _region_fracs()
    planck = 200.0
    planck_hl = np.full((_NSPEC, _NLEV + 1), planck)
    od = _optical_depth()
    ssa = np.full_like(od, ssa_value)
    asymmetry = np.full_like(od, 0.8)

    # ACTION
    output = layer_solutions.calc_reflectance_transmittance(
        region_fracs, planck_hl, od, ssa, asymmetry
    )

    # VERIFICATION
    absorptivity = 1.0 - output['reflectance'] - output['transmittance']
    expected = planck * region_fracs[np.newaxis] * absorptivity
    np.testing.assert_allclose(output['source_up'], expected, rtol=1e-10)
    np.testing.assert_allclose(output['source_dn'], expected, rtol=1e-10)

  def test_scattering_layer_reflects(self):
    # SETUP
    region_fracs = _region_fracs()
    planck_hl = np.ones((_NSPEC, _NLEV + 1))
    od = _optical_depth()
    ssa = np.full_like(od, 0.9)
    asymmetry = np.full_like(od, 0.5)

    # ACTION
    output = layer_solutions.calc_reflectance_transmittance(
        region_fracs, planck_hl, od, ssa, asymmetry
    )

    # VERIFICATION
    reflectance = output['reflectance']
    transmittance = output['transmittance']
    self.assertTrue(jnp.all(reflectance[..., 1:] > 0.0))
    self.assertTrue(jnp.all(reflectance + transmittance <= 1.0))
    # Reflectance grows with optical depth.
    self.assertTrue(jnp.all(jnp.diff(reflectance, axis=-1) > 0.0))

  def test_transparent_layer_has_no_emission(self):
    # SETUP
    region_fracs = _region_fracs()
    planck_hl = np.tile(np.linspace(50.0, 300.0, _NLEV + 1), (_NSPEC, 1))
    od = np.zeros((_NSPEC, 3, _NLEV))

    # ACTION
    output = layer_solutions.calc_no_scattering_radiance_source(
        0.5, region_fracs, planck_hl, od
    )

    # VERIFICATION
    np.testing.assert_allclose(output['transmittance'], 1.0)
    np.testing.assert_allclose(output['source_up'], 0.0)
    np.testing.assert_allclose(output['source_dn'], 0.0)

  @parameterized.parameters(0.1, 0.5, 0.9)
  def test_radiance_source_in_isotropic_equilibrium(self, mu):
    # In an isothermal column filled with black-body radiation, scattering
    # neither adds nor removes radiation, whatever the phase function.
    # SETUP
    region_fracs = _region_fracs()
    planck = 150.0
    planck_hl = np.full((_NSPEC, _NLEV + 1), planck)
    od = _optical_depth()
    ssa = np.full_like(od, 0.7)
    asymmetry = np.full_like(od, 0.85)
    flux = planck * np.broadcast_to(region_fracs, od.shape)

    # ACTION
    output = layer_solutions.calc_radiance_source(
        mu, region_fracs, planck_hl, od, ssa, asymmetry, flux, flux, flux, flux
    )

    # VERIFICATION
    expected = flux * (1.0 - np.exp(-od / mu))
    np.testing.assert_allclose(output['source_up'], expected, rtol=1e-10)
    np.testing.assert_allclose(output['source_dn'], expected, rtol=1e-10)

  @parameterized.parameters(0.2, 0.6, 1.0)
  def test_forward_scattering_favours_direction_of_incident_flux(self, mu):
    # SETUP
    region_fracs = np.array([[0.2], [0.4], [0.4]])
    planck_hl = np.zeros((1, 2))
    od = np.ones((1, 3, 1))
    ssa = np.full_like(od, 0.9)
    flux_dn = 100.0 * region_fracs[np.newaxis]
    flux_up = np.zeros_like(flux_dn)

    def sources(asymmetry_value):
      return layer_solutions.calc_radiance_source(
          mu,
          region_fracs,
          planck_hl,
          od,
          ssa,
          np.full_like(od, asymmetry_value),
          flux_up,
          flux_dn,
          flux_up,
          flux_dn,
      )

    # ACTION
    isotropic = sources(0.0)
    forward = sources(0.8)

    # VERIFICATION
    # Downwelling flux scattered by a forward-peaked phase function stays
    # mostly downwelling.
    self.assertTrue(np.all(forward['source_dn'] > isotropic['source_dn']))
    self.assertTrue(np.all(forward['source_up'] < isotropic['source_up']))
    expected_isotropic = (
        0.45 * flux_dn * (1.0 - np.exp(-od / mu))
    )
    np.testing.assert_allclose(
        isotropic['source_dn'], expected_isotropic, rtol=1e-12
    )
    np.testing.assert_allclose(
        forward['source_dn'],
        expected_isotropic * (1.0 + 1.2 * mu),
        rtol=1e-12,
    )

  def test_radiance_source_without_scattering_is_thermal_emission(self):
    # SETUP
    region_fracs = _region_fracs()
    planck_hl = np.tile(np.linspace(50.0, 300.0, _NLEV + 1), (_NSPEC, 1))
    od = _optical_depth()
    zeros = np.zeros_like(od)
    flux = np.full_like(od, 1e3)

    # ACTION
    with_fluxes = layer_solutions.calc_radiance_source(
        0.4, region_fracs, planck_hl, od, zeros, zeros, flux, flux, flux, flux
    )
    thermal = layer_solutions.calc_no_scattering_radiance_source(
        0.4, region_fracs, planck_hl, od
    )

    # VERIFICATION
    for key in ('transmittance', 'source_up', 'source_dn'):
      np.testing.assert_allclose(with_fluxes[key], thermal[key], rtol=1e-12)


if __name__ == '__main__':
  absltest.main()
