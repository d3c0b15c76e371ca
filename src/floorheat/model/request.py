from __future__ import annotations

import dataclasses
import math
from dataclasses import dataclass
from typing import Iterable, List

from . import materials
from .floor_system import InvalidConfiguration, LayerMaterial, LayerRole, LoopLayout, Underlay

MIN_PIPE_SPACING_M = 0.08
MAX_PIPE_SPACING_M = 0.40
MIN_PIPE_DIAMETER_M = 0.012
MAX_PIPE_DIAMETER_M = 0.020
MIN_SCREED_THICKNESS_M = 0.02
MAX_CUT_FRACTION = 0.5
MIN_NX = 3
MAX_NX = 1000

_NUMERIC_FIELDS = (
    "air_temp_c",
    "supply_temp_c",
    "return_temp_c",
    "pipe_spacing_m",
    "pipe_outer_diameter_m",
    "screed_thickness_m",
    "top_htc_w_per_m2k",
    "below_insulation_temp_c",
    "air_velocity_m_per_s",
    "cut_fraction",
    "area_m2",
    "loop_length_m",
    "flow_rate_l_per_min",
)


@dataclass(frozen=True)
class SolveRequest:
    """Complete, immutable parameter set for one floor cross-section solve."""

    air_temp_c: float = 22.0
    supply_temp_c: float = 45.0
    return_temp_c: float = 40.0
    pipe_spacing_m: float = 0.15
    pipe_outer_diameter_m: float = 0.016
    screed_thickness_m: float = 0.05
    top_htc_w_per_m2k: float = 10.0
    below_insulation_temp_c: float = 18.0
    air_velocity_m_per_s: float = 0.0
    layout: LoopLayout = LoopLayout.SPIRAL
    cut_fraction: float = 0.5
    pipe_count: int = 3
    use_fixed_area: bool = True
    area_m2: float = 9.0
    loop_length_m: float = 80.0
    auto_return: bool = False
    flow_rate_l_per_min: float = 1.5
    covering: LayerMaterial = materials.TILE
    screed: LayerMaterial = materials.SEMI_DRY_SCREED
    underlay: Underlay = materials.NO_UNDERLAY
    insulation: LayerMaterial = materials.EPS_100
    nx: int = 144

    @property
    def mean_water_temp_c(self) -> float:
        return 0.5 * (self.supply_temp_c + self.return_temp_c)

    @property
    def effective_htc_w_per_m2k(self) -> float:
        """Top heat-transfer coefficient including near-surface air movement."""
        return self.top_htc_w_per_m2k + 6.0 * max(0.0, self.air_velocity_m_per_s) ** 0.6

    def normalized(self) -> "SolveRequest":
        """Return a copy with every slider-type parameter clamped to its valid range."""
        return dataclasses.replace(
            self,
            pipe_spacing_m=min(max(self.pipe_spacing_m, MIN_PIPE_SPACING_M), MAX_PIPE_SPACING_M),
            pipe_outer_diameter_m=min(
                max(self.pipe_outer_diameter_m, MIN_PIPE_DIAMETER_M), MAX_PIPE_DIAMETER_M
            ),
            screed_thickness_m=max(self.screed_thickness_m, MIN_SCREED_THICKNESS_M),
            top_htc_w_per_m2k=max(self.top_htc_w_per_m2k, 0.0),
            air_velocity_m_per_s=max(self.air_velocity_m_per_s, 0.0),
            cut_fraction=min(max(self.cut_fraction, 0.0), MAX_CUT_FRACTION),
            pipe_count=max(1, int(self.pipe_count)),
            flow_rate_l_per_min=max(self.flow_rate_l_per_min, 0.0),
            nx=min(max(MIN_NX, int(self.nx)), MAX_NX),
        )

    def issues(self) -> Iterable[str]:
        """Yield contract violations that clamping cannot repair."""
        for name in _NUMERIC_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                yield f"Parameter '{name}' must be a finite number, got {value!r}."
        for name in ("pipe_count", "nx"):
            if not isinstance(getattr(self, name), int):
                yield f"Parameter '{name}' must be an integer, got {getattr(self, name)!r}."
        if not isinstance(self.layout, LoopLayout):
            yield f"Unknown loop layout {self.layout!r}."
        yield from self.covering.issues(LayerRole.COVERING)
        yield from self.screed.issues(LayerRole.SCREED)
        yield from self.insulation.issues(LayerRole.INSULATION)
        yield from self.underlay.issues()

    def validate(self) -> None:
        problems: List[str] = list(self.issues())
        if problems:
            raise InvalidConfiguration("; ".join(problems))
