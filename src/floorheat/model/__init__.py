"""Domain models for radiant floor cross-section analysis."""

from .floor_system import (
    BubbleFoil,
    FoilContact,
    InvalidConfiguration,
    LayerMaterial,
    LayerRole,
    LoopLayout,
    MountingMat,
    NoUnderlay,
    Underlay,
    UnderlayKind,
    UnderlayProperties,
)
from .request import SolveRequest
from . import materials

__all__ = [
    "BubbleFoil",
    "FoilContact",
    "InvalidConfiguration",
    "LayerMaterial",
    "LayerRole",
    "LoopLayout",
    "MountingMat",
    "NoUnderlay",
    "SolveRequest",
    "Underlay",
    "UnderlayKind",
    "UnderlayProperties",
    "materials",
]
