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
import numpy as np
from tripleclouds import overlap
from tripleclouds import region
from tripleclouds.rte import two_stream_flux


def _per_region(x: np.ndarray, nregion: int = 3) -> np.ndarray:
  """Repeats (nspec, nlev) layer properties in every region."""
  return np.repeat(x[:, np.newaxis, :], nregion, axis=1)


def _solve(
    surf_emission, surf_albedo, region_fracs, reflectance, transmittance,
    source_up, source_dn, overlap_param, use_scan=False,
):
  overlaps = overlap.calc_overlap_matrices(region_fracs, overlap_param)
  return two_stream_flux.calc_two_stream_flux(
      surf_emission,
      surf_albedo,
      region_fracs,
      reflectance,
      transmittance,
      source_up,
      source_dn,
      region_fracs[0] == 1.0,
      overlaps['u_overlap'],
      overlaps['v_overlap'],
      use_scan,
  )


class TwoStreamFluxTest(parameterized.TestCase):

  @parameterized.parameters(True, False)
  def test_single_clear_layer(self, use_scan):
    # SETUP
    refl, trans, src_up, src_dn = 0.2, 0.5, 30.0, 40.0
    emission = np.array([300.0])
    albedo = np.array([0.1])
    region_fracs = np.array([[1.0], [0.0], [0.0]])
    reflectance = np.full((1, 3, 1), refl)
    transmittance = np.full((1, 3, 1), trans)
    source_up = np.array([[[src_up], [0.0], [0.0]]])
    source_dn = np.array([[[src_dn], [0.0], [0.0]]])

    # ACTION
    fluxes = _solve(
        emission, albedo, region_fracs, reflectance, transmittance,
        source_up, source_dn, np.zeros(0), use_scan,
    )

    # VERIFICATION
    beta = 1.0 / (1.0 - refl * 0.1)
    expected_dn_base = (refl * 300.0 + src_dn) * beta
    expected_up_top = src_up + trans * beta * (300.0 + 0.1 * src_dn)
    np.testing.assert_allclose(fluxes['flux_dn_top'][0, :, 0], 0.0)
    np.testing.assert_allclose(
        fluxes['flux_dn_base'][0, :, 0], [expected_dn_base, 0.0, 0.0]
    )
    np.testing.assert_allclose(
        fluxes['flux_up_base'][0, :, 0],
        [0.1 * expected_dn_base + 300.0, 0.0, 0.0],
    )
    np.testing.assert_allclose(
        fluxes['flux_up_top'][0, :, 0], [expected_up_top, 0.0, 0.0]
    )

  @parameterized.parameters(True, False)
  def test_identical_regions_reproduce_single_region(self, use_scan):
    # SETUP
    nspec, nlev = 2, 6
    rng = np.random.default_rng(7)
    cloud_fraction = np.array([0.0, 0.3, 0.8, 1.0, 0.4, 0.0])
    fractional_std = np.full(nlev, 1.0)
    region_fracs = region.calc_region_properties(
        cloud_fraction, fractional_std, 'lognormal'
    )['region_fracs']
    clear_fracs = np.zeros((3, nlev))
    clear_fracs[0] = 1.0
    overlap_param = rng.uniform(0.0, 1.0, nlev - 1)

    reflectance = rng.uniform(0.0, 0.3, (nspec, nlev))
    transmittance = rng.uniform(0.2, 0.7, (nspec, nlev))
    source_up = rng.uniform(10.0, 50.0, (nspec, nlev))
    source_dn = rng.uniform(10.0, 50.0, (nspec, nlev))
    emission = np.array([350.0, 150.0])
    albedo = np.array([0.05, 0.2])

    # ACTION
    cloudy = _solve(
        emission, albedo, region_fracs, _per_region(reflectance),
        _per_region(transmittance),
        _per_region(source_up) * np.asarray(region_fracs)[np.newaxis],
        _per_region(source_dn) * np.asarray(region_fracs)[np.newaxis],
        overlap_param, use_scan,
    )
    clear = _solve(
        emission, albedo, clear_fracs, _per_region(reflectance),
        _per_region(transmittance),
        _per_region(source_up) * clear_fracs[np.newaxis],
        _per_region(source_dn) * clear_fracs[np.newaxis],
        overlap_param, use_scan,
    )

    # VERIFICATION
    for key in ('flux_up_top', 'flux_dn_top', 'flux_up_base', 'flux_dn_base'):
      np.testing.assert_allclose(
          np.sum(cloudy[key], axis=1),
          np.sum(clear[key], axis=1),
          rtol=1e-10,
          err_msg=key,
      )

  def test_scan_matches_loop(self):
    # SETUP
    nspec, nlev = 3, 5
    rng = np.random.default_rng(11)
    region_fracs = region.calc_region_properties(
        rng.uniform(0.0, 1.0, nlev), rng.uniform(0.5, 2.0, nlev), 'gamma'
    )['region_fracs']
    args = (
        rng.uniform(200.0, 400.0, nspec),
        rng.uniform(0.0, 0.1, nspec),
        region_fracs,
        rng.uniform(0.0, 0.4, (nspec, 3, nlev)),
        rng.uniform(0.1, 0.6, (nspec, 3, nlev)),
        rng.uniform(0.0, 40.0, (nspec, 3, nlev)),
        rng.uniform(0.0, 40.0, (nspec, 3, nlev)),
        rng.uniform(0.0, 1.0, nlev - 1),
    )

    # ACTION
    loop = _solve(*args, use_scan=False)
    scan = _solve(*args, use_scan=True)

    # VERIFICATION
    for key, value in loop.items():
      np.testing.assert_allclose(scan[key], value, rtol=1e-12, err_msg=key)


if __name__ == '__main__':
  absltest.main()
