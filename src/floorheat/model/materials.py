from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from .floor_system import (
    BubbleFoil,
    FoilContact,
    LayerMaterial,
    LayerRole,
    MountingMat,
    NoUnderlay,
    Underlay,
)

# Screed thickness is a separate parameter; presets carry conductivity only.
WET_SCREED = LayerMaterial(identifier="wet", name="Wet cement screed", conductivity_w_per_mk=0.80)
SEMI_DRY_SCREED = LayerMaterial(identifier="semi", name="Semi-dry screed", conductivity_w_per_mk=0.46)
ANHYDRITE_SCREED = LayerMaterial(identifier="anhydrite", name="Anhydrite screed", conductivity_w_per_mk=1.60)
CONCRETE_SCREED = LayerMaterial(identifier="high", name="Concrete", conductivity_w_per_mk=1.50)

# Effective values including the usual adhesive/underlay sublayers.
TILE = LayerMaterial(
    identifier="tile",
    name="Tile 10 mm + adhesive 4 mm",
    thickness_m=0.014,
    conductivity_w_per_mk=1.10,
)
LAMINATE_8 = LayerMaterial(
    identifier="laminate8",
    name="Laminate 8 mm + underlay 2 mm",
    thickness_m=0.010,
    conductivity_w_per_mk=0.11,
)
WOOD_20 = LayerMaterial(identifier="wood20", name="Wood 20 mm", thickness_m=0.020, conductivity_w_per_mk=0.15)
VINYL_5 = LayerMaterial(identifier="vinyl5", name="Vinyl 5 mm", thickness_m=0.005, conductivity_w_per_mk=0.25)
BARE_SCREED = LayerMaterial(
    identifier="none",
    name="No covering (bare screed)",
    thickness_m=0.0,
    conductivity_w_per_mk=99.0,
)

EPS_30 = LayerMaterial(identifier="eps30", name="EPS 30 mm", thickness_m=0.03, conductivity_w_per_mk=0.035)
EPS_50 = LayerMaterial(identifier="eps50", name="EPS 50 mm", thickness_m=0.05, conductivity_w_per_mk=0.035)
EPS_100 = LayerMaterial(identifier="eps100", name="EPS 100 mm", thickness_m=0.10, conductivity_w_per_mk=0.035)
XPS_50 = LayerMaterial(identifier="xps50", name="XPS 50 mm", thickness_m=0.05, conductivity_w_per_mk=0.030)
NO_INSULATION = LayerMaterial(identifier="none", name="No insulation", thickness_m=0.0, conductivity_w_per_mk=1.0)

NO_UNDERLAY = NoUnderlay()
FOIL = FoilContact()
BUBBLE_FOIL_5 = BubbleFoil(gap_thickness_m=0.005, emissivity=0.05)
MAT_50 = MountingMat(contact_fraction=0.50, identifier="mat50", name="Mounting mat (50% contact)")
MAT_33 = MountingMat(contact_fraction=0.33, identifier="mat33", name="Mounting mat (33% contact)")

SCREEDS: List[LayerMaterial] = [WET_SCREED, SEMI_DRY_SCREED, ANHYDRITE_SCREED, CONCRETE_SCREED]
COVERINGS: List[LayerMaterial] = [TILE, LAMINATE_8, WOOD_20, VINYL_5, BARE_SCREED]
INSULATIONS: List[LayerMaterial] = [EPS_30, EPS_50, EPS_100, XPS_50, NO_INSULATION]
UNDERLAYS: List[Underlay] = [NO_UNDERLAY, FOIL, BUBBLE_FOIL_5, MAT_50, MAT_33]

_LAYER_LOOKUP: Dict[LayerRole, Dict[str, LayerMaterial]] = {
    LayerRole.COVERING: {material.identifier: material for material in COVERINGS},
    LayerRole.SCREED: {material.identifier: material for material in SCREEDS},
    LayerRole.INSULATION: {material.identifier: material for material in INSULATIONS},
}
_UNDERLAY_LOOKUP: Dict[str, Underlay] = {underlay.identifier: underlay for underlay in UNDERLAYS}


def presets_for_role(role: LayerRole) -> Sequence[LayerMaterial]:
    if role is LayerRole.UNDERLAY:
        raise ValueError("Underlay presets are listed by all_underlays().")
    return list(_LAYER_LOOKUP[role].values())


def all_underlays() -> Sequence[Underlay]:
    return list(UNDERLAYS)


def find_material(role: LayerRole, identifier: str) -> LayerMaterial | None:
    return _LAYER_LOOKUP.get(role, {}).get(identifier)


def find_underlay(identifier: str) -> Optional[Underlay]:
    return _UNDERLAY_LOOKUP.get(identifier)
