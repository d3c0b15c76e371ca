from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
from numpy.typing import NDArray

from floorheat.fem.layer_stack import LayerStack
from floorheat.fem.mesh_builder import FloorMesh
from floorheat.fem.pipe_loop import LoopThermalProfile
from floorheat.model import SolveRequest

WATER_DENSITY_KG_PER_M3 = 998.0
WATER_HEAT_CAPACITY_J_PER_KGK = 4180.0
COMFORT_LIMIT_C = 29.0
UPPER_COMFORT_LIMIT_C = 31.0
_FOOT_SPANS_M = (0.05, 0.10)
_EPS = 1e-9
_MIN_CONDUCTIVITY = 1e-3
_MIN_HTC = 1e-3
_MIN_RESISTANCE = 1e-6
_MIN_MASS_FLOW = 1e-6
_MIN_PLAN_AREA_M2 = 1e-6


@dataclass(frozen=True)
class SurfaceSample:
    x_m: float
    temperature_c: float
    upward_flux_w_per_m2: float


@dataclass(frozen=True)
class FloorMetrics:
    mean_surface_temp_c: float
    min_surface_temp_c: float
    max_surface_temp_c: float
    surface_spread_c: float
    mean_upward_flux_w_per_m2: float
    mean_downward_flux_w_per_m2: float
    total_flux_w_per_m2: float
    upward_share: float
    percent_above_29c: float
    percent_above_31c: float
    max_step_5cm_c: float
    max_step_10cm_c: float

    @property
    def upward_share_percent(self) -> float:
        return 100.0 * self.upward_share


@dataclass(frozen=True)
class OneDimensionalCheck:
    """Series resistance estimate from the pipe plane to the room."""

    covering_resistance_m2k_per_w: float
    screed_resistance_m2k_per_w: float
    underlay_resistance_m2k_per_w: float
    convective_resistance_m2k_per_w: float
    pipe_temp_c: float
    flux_w_per_m2: float
    surface_temp_c: float

    @property
    def total_resistance_m2k_per_w(self) -> float:
        return (
            self.covering_resistance_m2k_per_w
            + self.screed_resistance_m2k_per_w
            + self.underlay_resistance_m2k_per_w
            + self.convective_resistance_m2k_per_w
        )


@dataclass(frozen=True)
class HydraulicEstimate:
    mass_flow_kg_per_s: float
    plan_area_m2: float
    loop_output_w: float
    auto_return_temp_c: float

    def clamped_return_temp_c(self, supply_temp_c: float) -> float:
        return max(0.0, min(supply_temp_c, self.auto_return_temp_c))


@dataclass(frozen=True)
class ComfortNorms:
    limit_c: float
    mean_exceeds: bool
    max_exceeds: bool


def upward_flux(surface_temps_c: NDArray[np.float64], htc_w_per_m2k: float, air_temp_c: float) -> NDArray[np.float64]:
    return htc_w_per_m2k * (surface_temps_c - air_temp_c)


def mean_downward_flux(temperatures_c: NDArray[np.float64], mesh: FloorMesh) -> float:
    """Mean flux through the bottom plane, positive when heat leaves downward."""
    k_bottom = float(mesh.row_conductivity_w_per_mk[-1])
    column_flux = -k_bottom * (temperatures_c[-1] - temperatures_c[-2]) / mesh.dy_m
    return float(np.mean(column_flux))


def max_local_step(surface_temps_c: NDArray[np.float64], span_m: float, dx_m: float) -> float:
    """Largest surface temperature difference between columns ``span_m`` apart (bare-foot check)."""
    nx = surface_temps_c.size
    steps = max(1, int(round(span_m / max(_EPS, dx_m))))
    partner = np.minimum(np.arange(nx) + steps, nx - 1)
    return float(np.max(np.abs(surface_temps_c[partner] - surface_temps_c)))


def surface_profile(
    surface_temps_c: NDArray[np.float64],
    mesh: FloorMesh,
    htc_w_per_m2k: float,
    air_temp_c: float,
) -> List[SurfaceSample]:
    fluxes = upward_flux(surface_temps_c, htc_w_per_m2k, air_temp_c)
    return [
        SurfaceSample(x_m=float(x), temperature_c=float(t), upward_flux_w_per_m2=float(q))
        for x, t, q in zip(mesh.x_nodes_m, surface_temps_c, fluxes)
    ]


def compute_metrics(
    temperatures_c: NDArray[np.float64],
    mesh: FloorMesh,
    htc_w_per_m2k: float,
    air_temp_c: float,
) -> FloorMetrics:
    surface = np.asarray(temperatures_c[0], dtype=float)
    q_up = float(np.mean(upward_flux(surface, htc_w_per_m2k, air_temp_c)))
    q_down = max(0.0, mean_downward_flux(temperatures_c, mesh))
    q_total = q_up + q_down
    nx = surface.size
    short_span, long_span = _FOOT_SPANS_M
    return FloorMetrics(
        mean_surface_temp_c=float(np.mean(surface)),
        min_surface_temp_c=float(np.min(surface)),
        max_surface_temp_c=float(np.max(surface)),
        surface_spread_c=float(np.max(surface) - np.min(surface)),
        mean_upward_flux_w_per_m2=q_up,
        mean_downward_flux_w_per_m2=q_down,
        total_flux_w_per_m2=q_total,
        upward_share=q_up / (q_total + _EPS),
        percent_above_29c=100.0 * np.count_nonzero(surface > COMFORT_LIMIT_C) / nx,
        percent_above_31c=100.0 * np.count_nonzero(surface > UPPER_COMFORT_LIMIT_C) / nx,
        max_step_5cm_c=max_local_step(surface, short_span, mesh.dx_m),
        max_step_10cm_c=max_local_step(surface, long_span, mesh.dx_m),
    )


def one_dimensional_check(
    stack: LayerStack,
    loop: LoopThermalProfile,
    htc_w_per_m2k: float,
    air_temp_c: float,
) -> OneDimensionalCheck:
    """Cross-check the 2D field against covering, screed, underlay and film resistances in series."""
    r_cover = 0.0
    if stack.covering_thickness_m > 0.0:
        r_cover = stack.covering_thickness_m / max(stack.covering_conductivity_w_per_mk, _MIN_CONDUCTIVITY)
    r_screed = stack.screed_thickness_m / max(stack.screed_conductivity_w_per_mk, _MIN_CONDUCTIVITY)
    r_under = 0.0
    if stack.underlay_thickness_m > 0.0:
        r_under = stack.underlay_thickness_m / max(stack.underlay_conductivity_w_per_mk, _MIN_CONDUCTIVITY)
    r_conv = 1.0 / max(htc_w_per_m2k, _MIN_HTC)
    total = r_cover + r_screed + r_under + r_conv
    pipe_temp = loop.outer_mean_temp_c
    flux = (pipe_temp - air_temp_c) / max(total, _MIN_RESISTANCE)
    return OneDimensionalCheck(
        covering_resistance_m2k_per_w=r_cover,
        screed_resistance_m2k_per_w=r_screed,
        underlay_resistance_m2k_per_w=r_under,
        convective_resistance_m2k_per_w=r_conv,
        pipe_temp_c=pipe_temp,
        flux_w_per_m2=flux,
        surface_temp_c=air_temp_c + flux * r_conv,
    )


def hydraulic_estimate(
    request: SolveRequest,
    loop: LoopThermalProfile,
    mean_upward_flux_w_per_m2: float,
) -> HydraulicEstimate:
    """Return temperature implied by the upward output at the configured flow rate."""
    mass_flow = max(_MIN_MASS_FLOW, request.flow_rate_l_per_min / 1000.0 / 60.0 * WATER_DENSITY_KG_PER_M3)
    if request.use_fixed_area:
        area = max(_MIN_PLAN_AREA_M2, request.area_m2)
    else:
        area = max(_MIN_PLAN_AREA_M2, request.pipe_spacing_m * loop.loop_length_m)
    output = mean_upward_flux_w_per_m2 * area
    capacity = max(_MIN_MASS_FLOW, mass_flow * WATER_HEAT_CAPACITY_J_PER_KGK)
    return HydraulicEstimate(
        mass_flow_kg_per_s=mass_flow,
        plan_area_m2=area,
        loop_output_w=output,
        auto_return_temp_c=request.supply_temp_c - output / capacity,
    )


def comfort_norms(metrics: FloorMetrics, limit_c: float = COMFORT_LIMIT_C) -> ComfortNorms:
    return ComfortNorms(
        limit_c=limit_c,
        mean_exceeds=metrics.mean_surface_temp_c > limit_c,
        max_exceeds=metrics.max_surface_temp_c > limit_c,
    )
