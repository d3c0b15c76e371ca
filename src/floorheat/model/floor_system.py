from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Iterable, Optional, Union

# Horizontal unventilated air gap, heat flow downward, per 10 mm of gap.
_AIR_GAP_RESISTANCE_PER_10MM = 0.11
_LOW_EMISSIVITY_FACTOR = 1.6
_MIN_GAP_CONDUCTIVITY = 0.002
_FOIL_EMISSIVITY = 0.05


class InvalidConfiguration(ValueError):
    """Raised when a parameter set violates the solver contract."""


class LoopLayout(Enum):
    """Pipe loop layout in plan view."""

    MEANDER = "meander"
    SPIRAL = "spiral"

    def lateral_offset_m(self) -> float:
        """Travelled-length difference between neighbouring runs at the cut."""
        if self is LoopLayout.SPIRAL:
            return 2.0
        return 3.0


class LayerRole(Enum):
    """Layers of the floor build-up, listed top to bottom."""

    COVERING = "covering"
    SCREED = "screed"
    UNDERLAY = "underlay"
    INSULATION = "insulation"


class UnderlayKind(Enum):
    NONE = "none"
    FOIL_CONTACT = "foil"
    BUBBLE_FOIL = "bubble"
    MOUNTING_MAT = "mat"


@dataclass(frozen=True)
class LayerMaterial:
    """Preset for a covering, screed or insulation layer."""

    identifier: str
    name: str
    conductivity_w_per_mk: float
    thickness_m: float = 0.0
    notes: Optional[str] = None

    def issues(self, role: LayerRole) -> Iterable[str]:
        label = role.value
        if not _is_finite(self.conductivity_w_per_mk) or not _is_finite(self.thickness_m):
            yield f"{label} '{self.identifier}' has non-finite properties."
            return
        if self.conductivity_w_per_mk <= 0.0:
            yield f"{label} '{self.identifier}' conductivity must be positive."
        if self.thickness_m < 0.0:
            yield f"{label} '{self.identifier}' thickness must not be negative."


@dataclass(frozen=True)
class UnderlayProperties:
    """Thermal effect of an underlay on the cross-section."""

    kind: UnderlayKind
    thickness_m: float = 0.0
    conductivity_w_per_mk: float = 1.0
    contact_fraction: float = 1.0
    gap_thickness_m: float = 0.0
    emissivity: Optional[float] = None
    base_air_resistance_m2k_per_w: float = 0.0
    radiative_factor: float = 1.0
    gap_resistance_m2k_per_w: float = 0.0

    @property
    def reduces_pipe_contact(self) -> bool:
        return self.kind is UnderlayKind.MOUNTING_MAT


@dataclass(frozen=True)
class NoUnderlay:
    identifier: str = "none"
    name: str = "No underlay"
    kind: ClassVar[UnderlayKind] = UnderlayKind.NONE

    def properties(self) -> UnderlayProperties:
        return UnderlayProperties(kind=self.kind)

    def issues(self) -> Iterable[str]:
        return ()


@dataclass(frozen=True)
class FoilContact:
    """Plain foil in full contact; no air gap and no added resistance."""

    identifier: str = "foil"
    name: str = "Foil in contact"
    kind: ClassVar[UnderlayKind] = UnderlayKind.FOIL_CONTACT

    def properties(self) -> UnderlayProperties:
        return UnderlayProperties(kind=self.kind, emissivity=_FOIL_EMISSIVITY)

    def issues(self) -> Iterable[str]:
        return ()


@dataclass(frozen=True)
class BubbleFoil:
    """Bubble foil folded into an equivalent-conductivity air-gap layer."""

    gap_thickness_m: float = 0.005
    emissivity: float = _FOIL_EMISSIVITY
    identifier: str = "bubble5"
    name: str = "Bubble foil 5 mm"
    kind: ClassVar[UnderlayKind] = UnderlayKind.BUBBLE_FOIL

    def properties(self) -> UnderlayProperties:
        gap = max(self.gap_thickness_m, 0.0)
        if gap <= 0.0:
            return UnderlayProperties(kind=self.kind, emissivity=self.emissivity)
        base_resistance = _AIR_GAP_RESISTANCE_PER_10MM * (gap / 0.01)
        gap_resistance = base_resistance * _LOW_EMISSIVITY_FACTOR
        conductivity = max(_MIN_GAP_CONDUCTIVITY, gap / gap_resistance)
        return UnderlayProperties(
            kind=self.kind,
            thickness_m=gap,
            conductivity_w_per_mk=conductivity,
            gap_thickness_m=gap,
            emissivity=self.emissivity,
            base_air_resistance_m2k_per_w=base_resistance,
            radiative_factor=_LOW_EMISSIVITY_FACTOR,
            gap_resistance_m2k_per_w=gap_resistance,
        )

    def issues(self) -> Iterable[str]:
        if not _is_finite(self.gap_thickness_m):
            yield f"Underlay '{self.identifier}' gap thickness is not finite."
        elif self.gap_thickness_m < 0.0:
            yield f"Underlay '{self.identifier}' gap thickness must not be negative."


@dataclass(frozen=True)
class MountingMat:
    """Pipe mounting mat; adds no thickness but limits pipe-to-screed contact."""

    contact_fraction: float = 0.5
    identifier: str = "mat50"
    name: str = "Mounting mat (50% contact)"
    kind: ClassVar[UnderlayKind] = UnderlayKind.MOUNTING_MAT

    def properties(self) -> UnderlayProperties:
        fraction = min(max(self.contact_fraction, 0.0), 1.0)
        return UnderlayProperties(kind=self.kind, contact_fraction=fraction)

    def issues(self) -> Iterable[str]:
        if not _is_finite(self.contact_fraction):
            yield f"Underlay '{self.identifier}' contact fraction is not finite."
        elif self.contact_fraction <= 0.0:
            yield f"Underlay '{self.identifier}' contact fraction must be positive."


Underlay = Union[NoUnderlay, FoilContact, BubbleFoil, MountingMat]


def _is_finite(value: float) -> bool:
    try:
        return math.isfinite(value)
    except TypeError:
        return False
