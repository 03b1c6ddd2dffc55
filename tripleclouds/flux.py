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

"""Longwave flux profiles of a cloudy column with the Tripleclouds method.

Each model layer is split into a clear region and two cloudy regions of
different optical depth, and regions in adjacent layers are connected by
overlap matrices. Fluxes are computed either with the two-stream Tripleclouds
solver alone or, following Fu et al. (1997), by passing radiances at a few
zenith angles through the column with the two-stream fluxes as the scattering
source.

All level-dependent variables count down from the top of the atmosphere. The
inputs are expected to be physically valid (non-negative optical depths, cloud
fractions in [0, 1]); only their shapes are checked.
"""

from typing import TypeAlias

from absl import logging
import jax
import jax.numpy as jnp
from tripleclouds import overlap
from tripleclouds import region
from tripleclouds import tracing
from tripleclouds.config import solver_options
from tripleclouds.rte import layer_solutions
from tripleclouds.rte import quadrature
from tripleclouds.rte import radiance
from tripleclouds.rte import two_stream_flux

Array: TypeAlias = jax.Array
StatesMap: TypeAlias = dict[str, Array]
SolverOptions: TypeAlias = solver_options.SolverOptions


def _check_shape(name: str, x: Array, expected: tuple[int, ...]) -> None:
  if x.shape != expected:
    raise ValueError(
        f'Expected `{name}` to have shape {expected}, got {x.shape}.'
    )


def _column_dimensions(planck_hl: Array) -> tuple[int, int]:
  """Returns (nspec, nlev) implied by the half-level Planck function."""
  if planck_hl.ndim != 2 or planck_hl.shape[1] < 2:
    raise ValueError(
        'Expected `planck_hl` to have shape (nspec, nlev + 1) with nlev >= 1,'
        f' got {planck_hl.shape}.'
    )
  nspec, nlev_plus_1 = planck_hl.shape
  return nspec, nlev_plus_1 - 1


def _validate_inputs(planck_hl: Array, **arrays: Array) -> tuple[int, int]:
  """Checks every array against the column dimensions."""
  nspec, nlev = _column_dimensions(planck_hl)
  expected_shapes = {
      'surf_emission': (nspec,),
      'surf_albedo': (nspec,),
      'cloud_fraction': (nlev,),
      'fractional_std': (nlev,),
      'od_clear': (nspec, nlev),
      'od_cloud': (nspec, nlev),
      'ssa_cloud': (nspec, nlev),
      'asymmetry_cloud': (nspec, nlev),
      'overlap_param': (nlev - 1,),
  }
  for name, x in arrays.items():
    _check_shape(name, x, expected_shapes[name])
  return nspec, nlev


def _regions_and_overlap(
    cloud_fraction: Array,
    fractional_std: Array,
    overlap_param: Array,
    options: SolverOptions,
    tracer: tracing.Tracer,
) -> StatesMap:
  """Computes the wavelength-independent region properties and overlaps."""
  with tracer.region('calc_region_properties'):
    region_props = region.calc_region_properties(
        cloud_fraction,
        fractional_std,
        options.cloud_pdf_shape,
        options.cloud_fraction_threshold,
        options.n_regions,
    )
  with tracer.region('calc_overlap_matrices'):
    overlaps = overlap.calc_overlap_matrices(
        region_props['region_fracs'],
        overlap_param,
        options.decorrelation_scaling,
        options.cloud_fraction_threshold,
    )
  return region_props | overlaps


def combine_optical_depth(
    od_clear: Array, od_cloud: Array, od_scaling: Array
) -> Array:
  """Optical depth of each region, shape (nspec, nregion, nlev).

  Region 0 is clear, so it only has the gas and aerosol optical depth; each
  cloudy region adds the in-cloud optical depth times its scaling.
  """
  od_cloudy = (
      od_clear[:, jnp.newaxis]
      + od_cloud[:, jnp.newaxis] * od_scaling[jnp.newaxis]
  )
  return jnp.concatenate([od_clear[:, jnp.newaxis], od_cloudy], axis=1)


def combine_single_scattering_albedo(
    od: Array, od_cloud: Array, ssa_cloud: Array, od_scaling: Array
) -> Array:
  """Single-scattering albedo of each region, shape (nspec, nregion, nlev).

  Gases and aerosols are treated as purely absorbing, so the clear region has
  zero single-scattering albedo and that of a cloudy region is the cloud's
  weighted by its share of the combined optical depth.
  """
  scattering_od = (
      ssa_cloud[:, jnp.newaxis]
      * od_cloud[:, jnp.newaxis]
      * od_scaling[jnp.newaxis]
  )
  od_cloudy = od[:, 1:]
  has_od = od_cloudy > 0.0
  ssa_cloudy = jnp.where(
      has_od, scattering_od / jnp.where(has_od, od_cloudy, 1.0), 0.0
  )
  return jnp.concatenate([jnp.zeros_like(od[:, :1]), ssa_cloudy], axis=1)


def cloud_free_layers(region_fracs: Array) -> Array:
  """Whether each layer is entirely clear, shape (nlev,).

  The layers above the top of the atmosphere and below the surface are clear
  by construction of the overlap matrices, so they are not included.
  """
  return region_fracs[0] == 1.0


def _log_options(name: str, options: SolverOptions, n_angles: int) -> None:
  logging.info(
      '%s: %d angles per hemisphere, %s cloud PDF, %d regions.',
      name,
      n_angles,
      options.cloud_pdf_shape,
      options.n_regions,
  )
  if options.represent_3d_effects:
    logging.warning(
        '%s: 3D radiative effects were requested but are not represented.',
        name,
    )


def _sum_regions(flux_top: Array, flux_surf: Array) -> Array:
  """Gridbox-mean half-level fluxes from per-region layer-top fluxes."""
  return jnp.concatenate(
      [
          jnp.sum(flux_top, axis=1),
          jnp.sum(flux_surf, axis=1, keepdims=True),
      ],
      axis=1,
  )


def calc_flux(
    surf_emission: Array,
    surf_albedo: Array,
    planck_hl: Array,
    cloud_fraction: Array,
    fractional_std: Array,
    od_clear: Array,
    od_cloud: Array,
    ssa_cloud: Array,
    asymmetry_cloud: Array,
    overlap_param: Array,
    options: SolverOptions = SolverOptions(),
    tracer: tracing.Tracer | None = None,
) -> StatesMap:
  """Computes the flux profile including the effects of scattering.

  The classic Tripleclouds two-stream solver is used alone when
  `options.angles_per_hemisphere` is 0. Otherwise its fluxes provide the
  scattering source for radiance calculations at the requested number of
  angles, computed in pairs (up and down with the same absolute zenith angle)
  and integrated with flux-normalized quadrature weights.

  Args:
    surf_emission: Surface upward emission (emissivity times the Planck
      function at the skin temperature) in each spectral interval, shape
      (nspec,) [W/m^2].
    surf_albedo: Surface albedo in each spectral interval, shape (nspec,).
    planck_hl: Planck function integrated over each spectral interval at each
      half-level, i.e. the flux emitted by a horizontal black-body surface,
      shape (nspec, nlev + 1) [W/m^2].
    cloud_fraction: Cloud fraction profile, shape (nlev,).
    fractional_std: Fractional standard deviation of the in-cloud water content
      (or extinction), shape (nlev,).
    od_clear: Layer optical depth of gases and aerosols, shape (nspec, nlev).
    od_cloud: Layer optical depth of cloud averaged over the cloudy part of the
      gridbox, shape (nspec, nlev). Any delta-Eddington scaling should already
      have been applied.
    ssa_cloud: Single-scattering albedo of the cloud, shape (nspec, nlev).
    asymmetry_cloud: Asymmetry factor of the cloud, shape (nspec, nlev).
    overlap_param: Overlap parameter between adjacent layers, shape
      (nlev - 1,).
    options: Solver options.
    tracer: Optional instrumentation; no-op by default.

  Returns:
    A dictionary with the following items:
      'flux_up': The upwelling flux at each half-level, (nspec, nlev + 1).
      'flux_dn': The downwelling flux at each half-level, (nspec, nlev + 1).
      'cloud_cover': The total cloud cover from the overlap rules.
  """
  tracer = tracer or tracing.NullTracer()
  dtype = jnp.result_type(planck_hl, od_clear, od_cloud, float)
  (
      surf_emission, surf_albedo, planck_hl, cloud_fraction, fractional_std,
      od_clear, od_cloud, ssa_cloud, asymmetry_cloud, overlap_param,
  ) = (
      jnp.asarray(x, dtype=dtype)
      for x in (
          surf_emission, surf_albedo, planck_hl, cloud_fraction,
          fractional_std, od_clear, od_cloud, ssa_cloud, asymmetry_cloud,
          overlap_param,
      )
  )
  _validate_inputs(
      planck_hl,
      surf_emission=surf_emission,
      surf_albedo=surf_albedo,
      cloud_fraction=cloud_fraction,
      fractional_std=fractional_std,
      od_clear=od_clear,
      od_cloud=od_cloud,
      ssa_cloud=ssa_cloud,
      asymmetry_cloud=asymmetry_cloud,
      overlap_param=overlap_param,
  )
  n_angles = options.angles_per_hemisphere
  _log_options('calc_flux', options, n_angles)

  with tracer.region('calc_flux'):
    props = _regions_and_overlap(
        cloud_fraction, fractional_std, overlap_param, options, tracer
    )
    region_fracs = props['region_fracs']

    od = combine_optical_depth(od_clear, od_cloud, props['od_scaling'])
    ssa = combine_single_scattering_albedo(
        od, od_cloud, ssa_cloud, props['od_scaling']
    )
    # Gases do not scatter, so the asymmetry factor of the mixture is that of
    # the cloud regardless of the optical depth scaling.
    asymmetry = jnp.broadcast_to(asymmetry_cloud[:, jnp.newaxis], od.shape)
    is_cloud_free_layer = cloud_free_layers(region_fracs)

    with tracer.region('calc_reflectance_transmittance'):
      layer_props = layer_solutions.calc_reflectance_transmittance(
          region_fracs, planck_hl, od, ssa, asymmetry
      )

    with tracer.region('calc_two_stream_flux'):
      fluxes = two_stream_flux.calc_two_stream_flux(
          surf_emission,
          surf_albedo,
          region_fracs,
          layer_props['reflectance'],
          layer_props['transmittance'],
          layer_props['source_up'],
          layer_props['source_dn'],
          is_cloud_free_layer,
          props['u_overlap'],
          props['v_overlap'],
          options.use_scan,
      )

    if n_angles > 0:
      mu_list, weight_list = quadrature.angular_quadrature(n_angles)
      weights = quadrature.flux_weights(mu_list, weight_list)
      flux_up_surf = fluxes['flux_up_base'][..., -1]
      flux_up = jnp.zeros_like(planck_hl)
      flux_dn = jnp.zeros_like(planck_hl)
      with tracer.region('radiance_correction'):
        for mu, weight in zip(mu_list, weights):
          sources = layer_solutions.calc_radiance_source(
              float(mu),
              region_fracs,
              planck_hl,
              od,
              ssa,
              asymmetry,
              fluxes['flux_up_base'],
              fluxes['flux_dn_base'],
              fluxes['flux_up_top'],
              fluxes['flux_dn_top'],
          )
          flux_dn += radiance.calc_radiance_dn(
              float(weight),
              sources['transmittance'],
              sources['source_dn'],
              props['v_overlap'],
              options.use_scan,
          )['flux_dn']
          flux_up += radiance.calc_radiance_up(
              float(weight),
              flux_up_surf,
              sources['transmittance'],
              sources['source_up'],
              props['u_overlap'],
              options.use_scan,
          )
    else:
      flux_up = _sum_regions(
          fluxes['flux_up_top'], fluxes['flux_up_base'][..., -1]
      )
      flux_dn = _sum_regions(
          fluxes['flux_dn_top'], fluxes['flux_dn_base'][..., -1]
      )

  return {
      'flux_up': flux_up,
      'flux_dn': flux_dn,
      'cloud_cover': props['cloud_cover'],
  }


def calc_no_scattering_flux(
    surf_emission: Array,
    surf_albedo: Array,
    planck_hl: Array,
    cloud_fraction: Array,
    fractional_std: Array,
    od_clear: Array,
    od_cloud: Array,
    overlap_param: Array,
    options: SolverOptions = SolverOptions(),
    tracer: tracing.Tracer | None = None,
) -> StatesMap:
  """Computes the flux profile neglecting scattering, via radiances.

  Without scattering no two-stream solution is needed: radiances at each
  angle are passed down through the column and then up from the surface. At
  least one angle is always used; a single angle is the diffusivity-factor
  two-stream special case. The surface emits `surf_emission` spread over the
  regions of the lowest layer and reflects the downwelling flux in each region
  with `surf_albedo`.

  Args:
    surf_emission: Surface upward emission in each spectral interval, shape
      (nspec,) [W/m^2].
    surf_albedo: Surface albedo in each spectral interval, shape (nspec,).
    planck_hl: Planck function integrated over each spectral interval at each
      half-level, shape (nspec, nlev + 1) [W/m^2].
    cloud_fraction: Cloud fraction profile, shape (nlev,).
    fractional_std: Fractional standard deviation of the in-cloud water
      content, shape (nlev,).
    od_clear: Layer optical depth of gases and aerosols, shape (nspec, nlev).
    od_cloud: Layer absorption optical depth of cloud averaged over the cloudy
      part of the gridbox, shape (nspec, nlev). Any Chou scaling should already
      have been applied.
    overlap_param: Overlap parameter between adjacent layers, shape
      (nlev - 1,).
    options: Solver options.
    tracer: Optional instrumentation; no-op by default.

  Returns:
    A dictionary with the following items:
      'flux_up': The upwelling flux at each half-level, (nspec, nlev + 1).
      'flux_dn': The downwelling flux at each half-level, (nspec, nlev + 1).
      'cloud_cover': The total cloud cover from the overlap rules.
  """
  tracer = tracer or tracing.NullTracer()
  dtype = jnp.result_type(planck_hl, od_clear, od_cloud, float)
  (
      surf_emission, surf_albedo, planck_hl, cloud_fraction, fractional_std,
      od_clear, od_cloud, overlap_param,
  ) = (
      jnp.asarray(x, dtype=dtype)
      for x in (
          surf_emission, surf_albedo, planck_hl, cloud_fraction,
          fractional_std, od_clear, od_cloud, overlap_param,
      )
  )
  _validate_inputs(
      planck_hl,
      surf_emission=surf_emission,
      surf_albedo=surf_albedo,
      cloud_fraction=cloud_fraction,
      fractional_std=fractional_std,
      od_clear=od_clear,
      od_cloud=od_cloud,
      overlap_param=overlap_param,
  )
  n_angles = max(options.angles_per_hemisphere, 1)
  _log_options('calc_no_scattering_flux', options, n_angles)

  with tracer.region('calc_no_scattering_flux'):
    props = _regions_and_overlap(
        cloud_fraction, fractional_std, overlap_param, options, tracer
    )
    region_fracs = props['region_fracs']
    od = combine_optical_depth(od_clear, od_cloud, props['od_scaling'])

    mu_list, weight_list = quadrature.angular_quadrature(n_angles)
    weights = quadrature.flux_weights(mu_list, weight_list)

    with tracer.region('calc_no_scattering_radiance_source'):
      sources = [
          layer_solutions.calc_no_scattering_radiance_source(
              float(mu), region_fracs, planck_hl, od
          )
          for mu in mu_list
      ]

    flux_dn = jnp.zeros_like(planck_hl)
    flux_dn_surf = jnp.zeros(
        (planck_hl.shape[0], region_fracs.shape[0]), dtype=dtype
    )
    with tracer.region('calc_radiance_dn'):
      for weight, src in zip(weights, sources):
        radiance_dn = radiance.calc_radiance_dn(
            float(weight),
            src['transmittance'],
            src['source_dn'],
            props['v_overlap'],
            options.use_scan,
        )
        flux_dn += radiance_dn['flux_dn']
        flux_dn_surf += radiance_dn['flux_dn_surf']

    # The surface is a Lambertian reflector, so the reflected flux leaves
    # isotropically like the emission.
    flux_up_surf = (
        surf_emission[:, jnp.newaxis] * region_fracs[jnp.newaxis, :, -1]
        + surf_albedo[:, jnp.newaxis] * flux_dn_surf
    )
    flux_up = jnp.zeros_like(planck_hl)
    with tracer.region('calc_radiance_up'):
      for weight, src in zip(weights, sources):
        flux_up += radiance.calc_radiance_up(
            float(weight),
            flux_up_surf,
            src['transmittance'],
            src['source_up'],
            props['u_overlap'],
            options.use_scan,
        )

  return {
      'flux_up': flux_up,
      'flux_dn': flux_dn,
      'cloud_cover': props['cloud_cover'],
  }
