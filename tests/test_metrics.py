import dataclasses

import numpy as np
import pytest

from floorheat.fem.layer_stack import build_layer_stack
from floorheat.fem.mesh_builder import FloorMesh
from floorheat.fem.metrics import (
    WATER_DENSITY_KG_PER_M3,
    WATER_HEAT_CAPACITY_J_PER_KGK,
    HydraulicEstimate,
    comfort_norms,
    compute_metrics,
    hydraulic_estimate,
    max_local_step,
    one_dimensional_check,
    surface_profile,
)
from floorheat.fem.pipe_loop import compute_loop_profile


def _mesh(nx=5, ny=3, dx=0.05, dy=0.01):
    return FloorMesh(
        nx=nx,
        ny=ny,
        width_m=dx * (nx - 1),
        height_m=dy * (ny - 1),
        dx_m=dx,
        dy_m=dy,
        row_conductivity_w_per_mk=np.array([1.0, 1.0, 2.0]),
        pipe_label=np.full((ny, nx), -1, dtype=np.int64),
    )


class TestSurfaceMetrics:

    def test_fluxes_and_shares(self):
        field = np.array([[30.0] * 5, [25.0] * 5, [20.0] * 5])
        metrics = compute_metrics(field, _mesh(), 10.0, 22.0)
        assert metrics.mean_surface_temp_c == pytest.approx(30.0)
        assert metrics.mean_upward_flux_w_per_m2 == pytest.approx(80.0)
        assert metrics.mean_downward_flux_w_per_m2 == pytest.approx(1000.0)
        assert metrics.total_flux_w_per_m2 == pytest.approx(1080.0)
        assert metrics.upward_share == pytest.approx(80.0 / 1080.0)
        assert metrics.percent_above_29c == 100.0
        assert metrics.percent_above_31c == 0.0
        assert metrics.surface_spread_c == 0.0

    def test_upward_heat_flow_through_bottom_counts_as_zero_loss(self):
        field = np.array([[30.0] * 5, [25.0] * 5, [28.0] * 5])
        metrics = compute_metrics(field, _mesh(), 10.0, 22.0)
        assert metrics.mean_downward_flux_w_per_m2 == 0.0
        assert metrics.upward_share == pytest.approx(1.0)

    def test_profile_has_one_sample_per_column(self):
        surface = np.array([23.0, 24.0, 25.0, 24.0, 23.0])
        profile = surface_profile(surface, _mesh(), 10.0, 22.0)
        assert [sample.x_m for sample in profile] == pytest.approx([0.0, 0.05, 0.10, 0.15, 0.20])
        assert [sample.upward_flux_w_per_m2 for sample in profile] == pytest.approx([10.0, 20.0, 30.0, 20.0, 10.0])

    def test_local_step_uses_span_in_columns(self):
        surface = np.array([0.0, 1.0, 2.0, 3.0, 4.0])
        assert max_local_step(surface, 0.10, 0.05) == pytest.approx(2.0)
        # Spans shorter than a column still compare neighbours.
        assert max_local_step(surface, 0.05, 0.10) == pytest.approx(1.0)

    def test_comfort_norms(self):
        field = np.array([[28.0, 29.5, 28.0, 28.0, 28.0], [25.0] * 5, [20.0] * 5])
        norms = comfort_norms(compute_metrics(field, _mesh(), 10.0, 22.0))
        assert norms.limit_c == 29.0
        assert not norms.mean_exceeds
        assert norms.max_exceeds


class TestOneDimensionalCheck:

    def test_series_resistances(self, reference_request):
        stack = build_layer_stack(reference_request)
        loop = compute_loop_profile(reference_request)
        check = one_dimensional_check(stack, loop, 10.0, 22.0)
        expected_r = 0.014 / 1.10 + 0.05 / 0.46 + 0.0 + 0.1
        assert check.total_resistance_m2k_per_w == pytest.approx(expected_r)
        assert check.underlay_resistance_m2k_per_w == 0.0
        assert check.pipe_temp_c == pytest.approx(loop.outer_mean_temp_c)
        assert check.flux_w_per_m2 == pytest.approx((loop.outer_mean_temp_c - 22.0) / expected_r)
        assert check.surface_temp_c == pytest.approx(22.0 + check.flux_w_per_m2 * 0.1)


class TestHydraulics:

    def test_return_estimate_from_output(self, reference_request):
        loop = compute_loop_profile(reference_request)
        estimate = hydraulic_estimate(reference_request, loop, 50.0)
        mass_flow = 1.5 / 1000.0 / 60.0 * WATER_DENSITY_KG_PER_M3
        assert estimate.mass_flow_kg_per_s == pytest.approx(mass_flow)
        assert estimate.plan_area_m2 == pytest.approx(9.0)
        assert estimate.loop_output_w == pytest.approx(450.0)
        assert estimate.auto_return_temp_c == pytest.approx(
            45.0 - 450.0 / (mass_flow * WATER_HEAT_CAPACITY_J_PER_KGK)
        )

    def test_area_from_loop_length(self, reference_request):
        request = dataclasses.replace(reference_request, use_fixed_area=False, loop_length_m=80.0)
        estimate = hydraulic_estimate(request, compute_loop_profile(request), 50.0)
        assert estimate.plan_area_m2 == pytest.approx(0.15 * 80.0)

    def test_clamped_return_temperature(self):
        estimate = HydraulicEstimate(
            mass_flow_kg_per_s=0.02,
            plan_area_m2=9.0,
            loop_output_w=100.0,
            auto_return_temp_c=-3.0,
        )
        assert estimate.clamped_return_temp_c(45.0) == 0.0
        high = HydraulicEstimate(0.02, 9.0, -100.0, 47.0)
        assert high.clamped_return_temp_c(45.0) == 45.0
