from __future__ import annotations

import dataclasses
from typing import Iterable, List, Optional

from floorheat.model import (
    LayerMaterial,
    LayerRole,
    LoopLayout,
    SolveRequest,
    Underlay,
    materials as material_catalog,
)


def make_reference_request(**overrides) -> SolveRequest:
    """Return the 45/40 °C tile-on-semi-dry-screed floor used as the benchmark baseline."""

    base = SolveRequest(
        air_temp_c=22.0,
        supply_temp_c=45.0,
        return_temp_c=40.0,
        pipe_spacing_m=0.15,
        pipe_outer_diameter_m=0.016,
        screed_thickness_m=0.05,
        top_htc_w_per_m2k=10.0,
        below_insulation_temp_c=18.0,
        covering=material_catalog.TILE,
        screed=material_catalog.SEMI_DRY_SCREED,
        underlay=material_catalog.NO_UNDERLAY,
        insulation=material_catalog.EPS_100,
    )
    return dataclasses.replace(base, **overrides)


def covering_variants(
    coverings: Optional[Iterable[LayerMaterial]] = None,
    *,
    base: Optional[SolveRequest] = None,
) -> List[SolveRequest]:
    base = base or make_reference_request()
    coverings = list(coverings) if coverings is not None else material_catalog.presets_for_role(LayerRole.COVERING)
    return [dataclasses.replace(base, covering=covering) for covering in coverings]


def underlay_variants(
    underlays: Optional[Iterable[Underlay]] = None,
    *,
    base: Optional[SolveRequest] = None,
) -> List[SolveRequest]:
    base = base or make_reference_request()
    underlays = list(underlays) if underlays is not None else material_catalog.all_underlays()
    return [dataclasses.replace(base, underlay=underlay) for underlay in underlays]


def layout_variants(*, base: Optional[SolveRequest] = None) -> List[SolveRequest]:
    base = base or make_reference_request()
    return [dataclasses.replace(base, layout=layout) for layout in LoopLayout]


def describe(request: SolveRequest) -> str:
    return (
        f"{request.covering.name} / {request.screed.name} {request.screed_thickness_m * 1000.0:.0f} mm / "
        f"{request.underlay.name} / {request.insulation.name}, {request.layout.value}, "
        f"S={request.pipe_spacing_m * 1000.0:.0f} mm"
    )
