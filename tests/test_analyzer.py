import dataclasses

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from floorheat.fem.analyzer import (
    METHOD_DIRECT,
    FieldBoundaryConditions,
    FloorFemAnalyzer,
    assemble_system,
    initial_field,
    remaining_error,
)
from floorheat.fem.layer_stack import build_layer_stack
from floorheat.fem.mesh_builder import build_floor_mesh
from floorheat.fem.pipe_loop import compute_loop_profile
from floorheat.fem.pipeline import boundary_conditions
from floorheat.model import SolveRequest, materials

# Thick anhydrite screed over thin insulation at the widest spacing: the slowest stack to relax.
_SLOW_STACK = SolveRequest(
    covering=materials.TILE,
    screed=materials.ANHYDRITE_SCREED,
    insulation=materials.EPS_30,
    screed_thickness_m=0.12,
    pipe_spacing_m=0.40,
)


def _problem(request: SolveRequest):
    request = request.normalized()
    stack = build_layer_stack(request)
    output = build_floor_mesh(request, stack)
    loop = compute_loop_profile(request)
    pipe_temps = [loop.temperature_for_pipe(pipe.index) for pipe in output.pipes]
    return output.mesh, pipe_temps, boundary_conditions(request, stack)


class TestAnalyzer:

    def test_unknown_method_is_rejected(self):
        with pytest.raises(ValueError):
            FloorFemAnalyzer(method="multigrid")

    def test_initial_field_spans_air_to_below(self):
        field = initial_field(5, 4, 18.0, 22.0)
        assert field.shape == (5, 4)
        assert np.allclose(field[0], 22.0)
        assert np.allclose(field[-1], 18.0)

    def test_default_schedule_runs_all_sweeps(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        solution = FloorFemAnalyzer().solve(mesh, pipe_temps, boundary)
        assert solution.iterations == 1200
        assert solution.temperatures_c.shape == (mesh.ny, mesh.nx)

    def test_tolerance_exits_early(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        solution = FloorFemAnalyzer(sweeps=50000, tolerance_c=1e-6).solve(mesh, pipe_temps, boundary)
        assert solution.converged
        assert solution.iterations < 50000
        assert solution.residual_c <= 1e-6
        assert solution.error_estimate_c <= 1e-6

    @pytest.mark.parametrize("underlay", [materials.NO_UNDERLAY, materials.BUBBLE_FOIL_5, materials.MAT_50])
    def test_relaxation_matches_direct_solve(self, reference_request, underlay):
        mesh, pipe_temps, boundary = _problem(dataclasses.replace(reference_request, underlay=underlay))
        relaxed = FloorFemAnalyzer(sweeps=50000, tolerance_c=1e-8).solve(mesh, pipe_temps, boundary)
        direct = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary)
        assert direct.method == METHOD_DIRECT
        np.testing.assert_allclose(relaxed.temperatures_c, direct.temperatures_c, atol=1e-4)

    def test_single_centred_pipe_gives_symmetric_field(self, reference_request):
        request = dataclasses.replace(reference_request, pipe_count=1)
        mesh, pipe_temps, boundary = _problem(request)
        field = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary).temperatures_c
        np.testing.assert_allclose(field, field[:, ::-1], atol=1e-6)

    def test_default_relaxation_keeps_single_pipe_symmetric(self, reference_request):
        request = dataclasses.replace(reference_request, pipe_count=1)
        mesh, pipe_temps, boundary = _problem(request)
        field = FloorFemAnalyzer().solve(mesh, pipe_temps, boundary).temperatures_c
        # Left-to-right sweeps leave a small ordering bias within the 1200-sweep budget.
        np.testing.assert_allclose(field, field[:, ::-1], atol=0.05)

    def test_converged_relaxation_keeps_single_pipe_symmetric(self, reference_request):
        request = dataclasses.replace(reference_request, pipe_count=1)
        mesh, pipe_temps, boundary = _problem(request)
        analyzer = FloorFemAnalyzer(sweeps=50000, tolerance_c=1e-8)
        field = analyzer.solve(mesh, pipe_temps, boundary).temperatures_c
        np.testing.assert_allclose(field, field[:, ::-1], atol=1e-6)

    def test_boundary_rules_hold_in_solution(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        field = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary).temperatures_c
        assert np.allclose(field[-1], boundary.below_temp_c)
        assert field[0, 0] == pytest.approx(field[0, 1])
        assert field[0, -1] == pytest.approx(field[0, -2])
        assert np.allclose(field[1:-1, 0], field[1:-1, 1])
        rows, cols = np.nonzero(mesh.pipe_mask)
        for j, i in zip(rows, cols):
            assert field[j, i] == pytest.approx(pipe_temps[mesh.pipe_label[j, i]])
        k0 = mesh.row_conductivity_w_per_mk[0]
        h = boundary.surface_htc_w_per_m2k
        conduction = k0 * (field[1, 5] - field[0, 5]) / mesh.dy_m
        assert conduction == pytest.approx(h * (field[0, 5] - boundary.air_temp_c))

    def test_mounting_mat_pulls_pipe_nodes_toward_air(self, reference_request):
        request = dataclasses.replace(reference_request, underlay=materials.MAT_50)
        mesh, pipe_temps, boundary = _problem(request)
        assert boundary.reduced_contact
        field = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary).temperatures_c
        rows, cols = np.nonzero(mesh.pipe_mask)
        for j, i in zip(rows, cols):
            assert field[j, i] < pipe_temps[mesh.pipe_label[j, i]]

    def test_result_is_read_only_and_repeatable(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        analyzer = FloorFemAnalyzer()
        first = analyzer.solve(mesh, pipe_temps, boundary).temperatures_c
        second = analyzer.solve(mesh, pipe_temps, boundary).temperatures_c
        assert np.array_equal(first, second)
        with pytest.raises(ValueError):
            first[0, 0] = 0.0

    def test_progress_reaches_completion(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        seen = []
        FloorFemAnalyzer(sweeps=300).solve(mesh, pipe_temps, boundary, progress_callback=seen.append)
        assert seen[0] == 0.0
        assert seen[-1] == pytest.approx(1.0)
        assert seen == sorted(seen)

    def test_non_finite_field_raises(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        broken = dataclasses.replace(boundary, air_temp_c=float("nan"))
        with pytest.raises(RuntimeError):
            FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, broken)

    def test_assembled_rows_are_normalized(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        matrix, rhs = assemble_system(mesh, np.asarray(pipe_temps), boundary)
        assert matrix.shape == (mesh.nx * mesh.ny, mesh.nx * mesh.ny)
        assert np.allclose(matrix.diagonal(), 1.0)
        assert rhs.shape == (mesh.nx * mesh.ny,)

    def test_boundary_conditions_dataclass(self):
        boundary = FieldBoundaryConditions(
            air_temp_c=22.0,
            surface_htc_w_per_m2k=10.0,
            below_temp_c=18.0,
            mean_water_temp_c=42.5,
        )
        assert boundary.contact_fraction == 1.0
        assert not boundary.reduced_contact


class TestConvergenceReport:

    @pytest.mark.parametrize(
        "request_",
        [
            _SLOW_STACK,
            dataclasses.replace(
                _SLOW_STACK, covering=materials.LAMINATE_8, insulation=materials.EPS_100, screed_thickness_m=0.10
            ),
            SolveRequest(),
        ],
    )
    def test_converged_flag_is_backed_by_direct_solve(self, request_):
        mesh, pipe_temps, boundary = _problem(request_)
        relaxed = FloorFemAnalyzer().solve(mesh, pipe_temps, boundary)
        direct = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary)
        error = float(np.max(np.abs(relaxed.temperatures_c - direct.temperatures_c)))
        if relaxed.converged:
            assert error <= 5e-3
            assert relaxed.residual_c <= 1e-3

    def test_slow_stack_is_not_reported_converged_after_default_sweeps(self):
        mesh, pipe_temps, boundary = _problem(_SLOW_STACK)
        relaxed = FloorFemAnalyzer().solve(mesh, pipe_temps, boundary)
        direct = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary)
        error = float(np.max(np.abs(relaxed.temperatures_c - direct.temperatures_c)))
        assert error > 0.05
        assert not relaxed.converged
        assert relaxed.error_estimate_c > 1e-3

    def test_tolerance_on_slow_stack_reaches_direct_solution(self):
        mesh, pipe_temps, boundary = _problem(_SLOW_STACK)
        relaxed = FloorFemAnalyzer(sweeps=50000, tolerance_c=1e-5).solve(mesh, pipe_temps, boundary)
        direct = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary)
        assert relaxed.converged
        assert relaxed.iterations < 50000
        np.testing.assert_allclose(relaxed.temperatures_c, direct.temperatures_c, atol=1e-3)

    def test_direct_solution_has_negligible_residual(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        direct = FloorFemAnalyzer(method=METHOD_DIRECT).solve(mesh, pipe_temps, boundary)
        assert direct.residual_c < 1e-9
        assert direct.error_estimate_c == 0.0

    def test_residual_matches_assembled_system(self, reference_request):
        mesh, pipe_temps, boundary = _problem(reference_request)
        relaxed = FloorFemAnalyzer(sweeps=200).solve(mesh, pipe_temps, boundary)
        matrix, rhs = assemble_system(mesh, np.asarray(pipe_temps), boundary)
        expected = np.max(np.abs(matrix @ relaxed.temperatures_c.ravel() - rhs))
        assert relaxed.residual_c == pytest.approx(expected)

    def test_remaining_error_edge_cases(self):
        assert remaining_error(0.0, 1.0, 0.5) == 0.0
        assert remaining_error(0.2, 1.0, 0.0) == 0.0
        assert remaining_error(0.2, 1.0, 1.0) == float("inf")
        assert remaining_error(0.2, 1.0, 2.0) == float("inf")
        assert remaining_error(0.3, 1.0, 0.5) == pytest.approx(0.3)

    @pytest.mark.property
    @settings(max_examples=100, deadline=None)
    @given(
        error=st.floats(min_value=1e-4, max_value=10.0),
        rho=st.floats(min_value=0.05, max_value=0.95),
    )
    def test_remaining_error_is_exact_for_geometric_decay(self, error, rho):
        # One chunk shrinks both the error and the residual by rho.
        change = error * (1.0 - rho)
        assert remaining_error(change, 2.0 * error, 2.0 * error * rho) == pytest.approx(error * rho, rel=1e-9)
