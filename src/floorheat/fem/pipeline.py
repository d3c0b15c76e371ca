from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from floorheat.fem.analyzer import FieldBoundaryConditions, FieldSolution, FloorFemAnalyzer
from floorheat.fem.layer_stack import LayerStack, build_layer_stack
from floorheat.fem.mesh_builder import FloorMesh, PipeCrossSection, build_floor_mesh
from floorheat.fem.metrics import (
    ComfortNorms,
    FloorMetrics,
    HydraulicEstimate,
    OneDimensionalCheck,
    SurfaceSample,
    comfort_norms,
    compute_metrics,
    hydraulic_estimate,
    one_dimensional_check,
    surface_profile,
)
from floorheat.fem.pipe_loop import LoopThermalProfile, compute_loop_profile
from floorheat.model import SolveRequest

logger = logging.getLogger(__name__)

AUTO_RETURN_THRESHOLD_C = 0.05


@dataclass(frozen=True, eq=False)
class SolveResult:
    """Everything derived from one request; the field is a read-only array."""

    request: SolveRequest
    stack: LayerStack
    mesh: FloorMesh
    pipes: List[PipeCrossSection]
    loop: LoopThermalProfile
    solution: FieldSolution
    profile: List[SurfaceSample]
    metrics: FloorMetrics
    one_d: OneDimensionalCheck
    hydraulics: HydraulicEstimate
    norms: ComfortNorms
    effective_htc_w_per_m2k: float

    @property
    def temperatures_c(self) -> NDArray[np.float64]:
        return self.solution.temperatures_c

    @property
    def layer_boundaries_m(self) -> Tuple[float, float, float, float]:
        return self.stack.boundaries_m


def boundary_conditions(request: SolveRequest, stack: LayerStack) -> FieldBoundaryConditions:
    return FieldBoundaryConditions(
        air_temp_c=request.air_temp_c,
        surface_htc_w_per_m2k=request.effective_htc_w_per_m2k,
        below_temp_c=request.below_insulation_temp_c,
        mean_water_temp_c=request.mean_water_temp_c,
        contact_fraction=stack.underlay.contact_fraction,
        reduced_contact=stack.underlay.reduces_pipe_contact,
    )


def solve(
    request: SolveRequest,
    *,
    analyzer: Optional[FloorFemAnalyzer] = None,
    progress_callback: Optional[Callable[[float], None]] = None,
) -> SolveResult:
    """
    Run one forward pass: stack, grid, pipes, field, metrics.

    Args:
        request: Parameter set; it is validated and then clamped to valid ranges.
        analyzer: Solver to use, defaults to the fixed 1200-sweep relaxation.
        progress_callback: Receives the solve progress in [0, 1].

    Raises:
        InvalidConfiguration: The request violates the solver contract.
        RuntimeError: The solve produced non-finite temperatures.
    """
    request.validate()
    request = request.normalized()
    analyzer = analyzer or FloorFemAnalyzer()

    stack = build_layer_stack(request)
    mesh_output = build_floor_mesh(request, stack)
    mesh = mesh_output.mesh
    loop = compute_loop_profile(request)
    boundary = boundary_conditions(request, stack)
    pipe_temps = [loop.temperature_for_pipe(pipe.index) for pipe in mesh_output.pipes]

    logger.info(
        f"Solving {request.layout.value} floor: {mesh.nx}x{mesh.ny} grid, "
        f"pipes at {', '.join(f'{t:.2f}' for t in pipe_temps)} °C"
    )
    solution = analyzer.solve(mesh, pipe_temps, boundary, progress_callback=progress_callback)

    h_eff = boundary.surface_htc_w_per_m2k
    metrics = compute_metrics(solution.temperatures_c, mesh, h_eff, request.air_temp_c)
    result = SolveResult(
        request=request,
        stack=stack,
        mesh=mesh,
        pipes=mesh_output.pipes,
        loop=loop,
        solution=solution,
        profile=surface_profile(solution.surface_temps_c, mesh, h_eff, request.air_temp_c),
        metrics=metrics,
        one_d=one_dimensional_check(stack, loop, h_eff, request.air_temp_c),
        hydraulics=hydraulic_estimate(request, loop, metrics.mean_upward_flux_w_per_m2),
        norms=comfort_norms(metrics),
        effective_htc_w_per_m2k=h_eff,
    )
    logger.info(
        f"Surface mean {metrics.mean_surface_temp_c:.2f} °C, "
        f"q_up {metrics.mean_upward_flux_w_per_m2:.1f} W/m², q_down {metrics.mean_downward_flux_w_per_m2:.1f} W/m²"
    )
    return result


def next_return_temperature(
    result: SolveResult,
    *,
    threshold_c: float = AUTO_RETURN_THRESHOLD_C,
) -> Optional[float]:
    """
    Return temperature to feed back in auto-return mode, or None when nothing should change.

    The hydraulic estimate is clamped to [0, Ts] and rounded to 0.01 K; changes
    of ``threshold_c`` or less are ignored so the feedback loop settles.
    """
    request = result.request
    if not request.auto_return:
        return None
    estimate = result.hydraulics.clamped_return_temp_c(request.supply_temp_c)
    if abs(estimate - request.return_temp_c) <= threshold_c:
        return None
    return round(estimate, 2)


def with_auto_return(result: SolveResult) -> Optional[SolveRequest]:
    """Follow-up request carrying the fed-back return temperature, if any."""
    updated = next_return_temperature(result)
    if updated is None:
        return None
    return dataclasses.replace(result.request, return_temp_c=updated)
