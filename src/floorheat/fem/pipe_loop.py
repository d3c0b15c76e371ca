"""
One-dimensional water temperature model along the heating loop.

The water is assumed to cool exponentially towards the room air while it
travels the loop. A single decay coefficient is fitted so that the model
reproduces the configured supply and return temperatures, and the pipes seen
in the cross-section sample it at the cut position.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from floorheat.model import LoopLayout, SolveRequest

MIN_LOOP_LENGTH_M = 5.0
_MIN_DIFFERENCE = 1e-6
_MIN_AREA_M2 = 1e-3
_MIN_SPACING_FOR_LENGTH_M = 0.02


@dataclass(frozen=True)
class LoopThermalProfile:
    decay_per_m: float
    loop_length_m: float
    cut_position_m: float
    local_supply_temp_c: float
    local_return_temp_c: float
    pipe_temps_c: Tuple[float, ...]

    def temperature_for_pipe(self, index: int) -> float:
        return self.pipe_temps_c[max(0, min(len(self.pipe_temps_c) - 1, index))]

    @property
    def outer_mean_temp_c(self) -> float:
        """Average of the first and last pipe, used by the 1D cross-check."""
        return 0.5 * (self.pipe_temps_c[0] + self.pipe_temps_c[-1])


def effective_loop_length(request: SolveRequest) -> float:
    if request.use_fixed_area:
        length = max(_MIN_AREA_M2, request.area_m2) / max(_MIN_SPACING_FOR_LENGTH_M, request.pipe_spacing_m)
    else:
        length = request.loop_length_m
    return max(MIN_LOOP_LENGTH_M, length)


def decay_coefficient(
    supply_temp_c: float,
    return_temp_c: float,
    air_temp_c: float,
    loop_length_m: float,
) -> float:
    """Fit alpha in Tr = Tair + (Ts - Tair) * exp(-alpha * L)."""
    supply_excess = max(_MIN_DIFFERENCE, supply_temp_c - air_temp_c)
    return_excess = max(_MIN_DIFFERENCE, return_temp_c - air_temp_c)
    alpha = math.log(supply_excess / return_excess) / max(_MIN_DIFFERENCE, loop_length_m)
    return max(_MIN_DIFFERENCE, alpha)


def supply_side_temperature(
    distance_m: float,
    *,
    supply_temp_c: float,
    air_temp_c: float,
    decay_per_m: float,
    loop_length_m: float,
) -> float:
    s = min(max(distance_m, 0.0), loop_length_m)
    return air_temp_c + (supply_temp_c - air_temp_c) * math.exp(-decay_per_m * s)


def return_side_temperature(
    distance_m: float,
    *,
    supply_temp_c: float,
    air_temp_c: float,
    decay_per_m: float,
    loop_length_m: float,
) -> float:
    s = min(max(loop_length_m - distance_m, 0.0), loop_length_m)
    return air_temp_c + (supply_temp_c - air_temp_c) * math.exp(-decay_per_m * s)


def compute_loop_profile(request: SolveRequest) -> LoopThermalProfile:
    """Return the water temperature seen by each pipe of the cross-section."""
    ts = request.supply_temp_c
    tr = request.return_temp_c
    t_air = request.air_temp_c
    length = effective_loop_length(request)
    cut = min(max(request.cut_fraction, 0.0), 0.5) * max(_MIN_DIFFERENCE, length)
    alpha = decay_coefficient(ts, tr, t_air, length)
    model = dict(supply_temp_c=ts, air_temp_c=t_air, decay_per_m=alpha, loop_length_m=length)

    local_supply = supply_side_temperature(cut, **model)
    local_return = return_side_temperature(cut, **model)

    count = max(1, request.pipe_count)
    if count == 1:
        temps: Tuple[float, ...] = (0.5 * (ts + tr),)
    else:
        delta = request.layout.lateral_offset_m()
        left = supply_side_temperature(cut - delta, **model)
        right = supply_side_temperature(cut + delta, **model)
        if request.layout is LoopLayout.MEANDER:
            # Monotonic decay along the serpentine, no supply/return alternation.
            middle = local_supply
        else:
            # Spiral: outer runs follow the supply leg, the centre run the return leg.
            middle = local_return
        triple = (left, middle, right)
        temps = tuple(triple[min(k, len(triple) - 1)] for k in range(count))

    return LoopThermalProfile(
        decay_per_m=alpha,
        loop_length_m=length,
        cut_position_m=cut,
        local_supply_temp_c=local_supply,
        local_return_temp_c=local_return,
        pipe_temps_c=temps,
    )
