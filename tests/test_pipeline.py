import dataclasses

import numpy as np
import pytest

from floorheat.fem import next_return_temperature, solve, with_auto_return
from floorheat.fem.metrics import HydraulicEstimate
from floorheat.model import InvalidConfiguration, SolveRequest, materials
from floorheat.model.request import MAX_NX, MIN_NX


def _with_hydraulics(result, *, return_temp_c, estimate_c, auto_return=True):
    request = dataclasses.replace(result.request, auto_return=auto_return, return_temp_c=return_temp_c)
    hydraulics = HydraulicEstimate(
        mass_flow_kg_per_s=0.025,
        plan_area_m2=9.0,
        loop_output_w=500.0,
        auto_return_temp_c=estimate_c,
    )
    return dataclasses.replace(result, request=request, hydraulics=hydraulics)


@pytest.mark.slow
class TestReferenceScenarios:

    def test_reference_floor(self, reference_result):
        metrics = reference_result.metrics
        assert 22.0 < metrics.mean_surface_temp_c < 42.5
        assert metrics.mean_upward_flux_w_per_m2 > 0.0
        assert metrics.mean_downward_flux_w_per_m2 > 0.0
        assert 0.0 < metrics.upward_share < 1.0
        assert metrics.min_surface_temp_c <= metrics.mean_surface_temp_c <= metrics.max_surface_temp_c
        assert len(reference_result.profile) == reference_result.mesh.nx
        assert reference_result.layer_boundaries_m == pytest.approx((0.0, 0.014, 0.064, 0.064))

    def test_air_movement_raises_surface_coefficient(self, reference_request, reference_result):
        moving = solve(dataclasses.replace(reference_request, air_velocity_m_per_s=1.0))
        assert reference_result.effective_htc_w_per_m2k == pytest.approx(10.0)
        assert moving.effective_htc_w_per_m2k == pytest.approx(16.0)
        assert moving.metrics.mean_surface_temp_c < reference_result.metrics.mean_surface_temp_c

    def test_thicker_insulation_lowers_downward_flux(self, reference_request, reference_result):
        thin = solve(dataclasses.replace(reference_request, insulation=materials.EPS_30))
        assert reference_result.metrics.mean_downward_flux_w_per_m2 < thin.metrics.mean_downward_flux_w_per_m2

    def test_higher_supply_raises_output(self, reference_request, reference_result):
        hotter = solve(dataclasses.replace(reference_request, supply_temp_c=50.0))
        assert hotter.metrics.mean_upward_flux_w_per_m2 > reference_result.metrics.mean_upward_flux_w_per_m2
        assert hotter.metrics.mean_surface_temp_c > reference_result.metrics.mean_surface_temp_c

    def test_one_dimensional_check_agrees_for_close_spacing(self, reference_request):
        # The 1D model ignores spacing, so it only matches the 2D field when pipes sit close together.
        request = dataclasses.replace(reference_request, pipe_count=1, pipe_spacing_m=0.10)
        result = solve(request)
        assert result.metrics.mean_upward_flux_w_per_m2 == pytest.approx(result.one_d.flux_w_per_m2, rel=0.25)

    def test_identical_requests_give_identical_fields(self, reference_request, reference_result):
        again = solve(reference_request)
        assert np.array_equal(again.temperatures_c, reference_result.temperatures_c)
        assert not again.temperatures_c.flags.writeable

    def test_out_of_range_parameters_are_clamped(self, reference_request):
        result = solve(dataclasses.replace(reference_request, pipe_spacing_m=1.0, cut_fraction=0.9, nx=48))
        assert result.request.pipe_spacing_m == pytest.approx(0.40)
        assert result.request.cut_fraction == pytest.approx(0.5)
        assert result.mesh.width_m == pytest.approx(1.2)


class TestValidation:

    def test_non_finite_input_is_rejected(self):
        with pytest.raises(InvalidConfiguration, match="air_temp_c"):
            solve(SolveRequest(air_temp_c=float("nan")))

    def test_non_integer_pipe_count_is_rejected(self):
        with pytest.raises(InvalidConfiguration, match="pipe_count"):
            solve(SolveRequest(pipe_count=2.5))

    def test_unknown_layout_is_rejected(self):
        with pytest.raises(InvalidConfiguration, match="layout"):
            solve(SolveRequest(layout="zigzag"))

    @pytest.mark.parametrize("nx, expected", [(10**6, MAX_NX), (1, MIN_NX), (96, 96)])
    def test_grid_width_is_clamped(self, nx, expected):
        assert SolveRequest(nx=nx).normalized().nx == expected


class TestAutoReturn:

    def test_disabled_mode_never_feeds_back(self, reference_result):
        assert next_return_temperature(reference_result) is None
        assert with_auto_return(reference_result) is None

    def test_estimate_is_rounded_to_hundredths(self, reference_result):
        result = _with_hydraulics(reference_result, return_temp_c=40.0, estimate_c=38.123456)
        assert next_return_temperature(result) == 38.12
        follow_up = with_auto_return(result)
        assert follow_up.return_temp_c == 38.12
        assert follow_up.supply_temp_c == result.request.supply_temp_c

    def test_small_changes_are_ignored(self, reference_result):
        result = _with_hydraulics(reference_result, return_temp_c=40.0, estimate_c=39.97)
        assert next_return_temperature(result) is None

    def test_estimate_is_clamped_to_supply_range(self, reference_result):
        below = _with_hydraulics(reference_result, return_temp_c=40.0, estimate_c=-4.0)
        above = _with_hydraulics(reference_result, return_temp_c=40.0, estimate_c=61.0)
        assert next_return_temperature(below) == 0.0
        assert next_return_temperature(above) == reference_result.request.supply_temp_c

    def test_real_solve_feedback_is_quantized(self, reference_request):
        result = solve(dataclasses.replace(reference_request, auto_return=True))
        updated = next_return_temperature(result)
        if updated is not None:
            assert updated == round(updated, 2)
            assert 0.0 <= updated <= reference_request.supply_temp_c
            assert abs(updated - reference_request.return_temp_c) > 0.05
