from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Tuple

from floorheat.model import InvalidConfiguration, LayerRole, SolveRequest, UnderlayProperties

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayerStack:
    """Vertical build-up of the floor, measured downward from the surface (y = 0)."""

    covering_thickness_m: float
    covering_conductivity_w_per_mk: float
    screed_thickness_m: float
    screed_conductivity_w_per_mk: float
    underlay: UnderlayProperties
    insulation_thickness_m: float
    insulation_conductivity_w_per_mk: float

    @property
    def underlay_thickness_m(self) -> float:
        return self.underlay.thickness_m

    @property
    def underlay_conductivity_w_per_mk(self) -> float:
        return self.underlay.conductivity_w_per_mk

    @property
    def total_height_m(self) -> float:
        return (
            self.covering_thickness_m
            + self.screed_thickness_m
            + self.underlay_thickness_m
            + self.insulation_thickness_m
        )

    @property
    def screed_top_m(self) -> float:
        return self.covering_thickness_m

    @property
    def underlay_top_m(self) -> float:
        return self.covering_thickness_m + self.screed_thickness_m

    @property
    def insulation_top_m(self) -> float:
        return self.underlay_top_m + self.underlay_thickness_m

    @property
    def boundaries_m(self) -> Tuple[float, float, float, float]:
        """Top of covering, top of screed, top of underlay and top of insulation."""
        return (0.0, self.screed_top_m, self.underlay_top_m, self.insulation_top_m)

    def layers(self) -> List[Tuple[LayerRole, float, float]]:
        """Return [(role, thickness_m, conductivity)] top to bottom, including empty layers."""
        return [
            (LayerRole.COVERING, self.covering_thickness_m, self.covering_conductivity_w_per_mk),
            (LayerRole.SCREED, self.screed_thickness_m, self.screed_conductivity_w_per_mk),
            (LayerRole.UNDERLAY, self.underlay_thickness_m, self.underlay_conductivity_w_per_mk),
            (LayerRole.INSULATION, self.insulation_thickness_m, self.insulation_conductivity_w_per_mk),
        ]

    def conductivity_at(self, depth_m: float) -> float:
        """Conductivity of the layer containing ``depth_m``; an interface belongs to the layer above."""
        if depth_m <= self.covering_thickness_m:
            return self.covering_conductivity_w_per_mk
        if depth_m <= self.underlay_top_m:
            return self.screed_conductivity_w_per_mk
        if depth_m <= self.insulation_top_m:
            return self.underlay_conductivity_w_per_mk
        return self.insulation_conductivity_w_per_mk

    def layer_at(self, depth_m: float) -> LayerRole:
        if depth_m <= self.covering_thickness_m:
            return LayerRole.COVERING
        if depth_m <= self.underlay_top_m:
            return LayerRole.SCREED
        if depth_m <= self.insulation_top_m:
            return LayerRole.UNDERLAY
        return LayerRole.INSULATION


def build_layer_stack(request: SolveRequest) -> LayerStack:
    """
    Turn the material choices of ``request`` into a layer stack.

    The request is expected to be normalized already. A covering or insulation
    of zero thickness takes the screed conductivity so that the row mapping
    never sees the placeholder values of the "none" presets.
    """
    screed_k = request.screed.conductivity_w_per_mk
    covering_t = max(request.covering.thickness_m, 0.0)
    insulation_t = max(request.insulation.thickness_m, 0.0)
    covering_k = request.covering.conductivity_w_per_mk if covering_t > 0.0 else screed_k
    insulation_k = request.insulation.conductivity_w_per_mk if insulation_t > 0.0 else screed_k
    underlay = request.underlay.properties()

    stack = LayerStack(
        covering_thickness_m=covering_t,
        covering_conductivity_w_per_mk=covering_k,
        screed_thickness_m=request.screed_thickness_m,
        screed_conductivity_w_per_mk=screed_k,
        underlay=underlay,
        insulation_thickness_m=insulation_t,
        insulation_conductivity_w_per_mk=insulation_k,
    )
    _check_stack(stack)
    logger.debug(
        f"Layer stack: cover={covering_t:.4f} m, screed={stack.screed_thickness_m:.4f} m, "
        f"underlay={stack.underlay_thickness_m:.4f} m (k={stack.underlay_conductivity_w_per_mk:.4f}), "
        f"insulation={insulation_t:.4f} m"
    )
    return stack


def _check_stack(stack: LayerStack) -> None:
    if stack.total_height_m <= 0.0:
        raise InvalidConfiguration(
            f"Floor cross-section has no height (total {stack.total_height_m:.6f} m)."
        )
    for role, thickness, conductivity in stack.layers():
        if thickness > 0.0 and conductivity <= 0.0:
            raise InvalidConfiguration(
                f"{role.value} layer of {thickness:.4f} m has non-positive conductivity {conductivity}."
            )
