"""
Steady-state thermal analysis of a radiant floor cross-section.

The floor build-up (covering, screed, underlay, insulation) is discretised on a
uniform node grid, the heating pipes are pinned to temperatures taken from a
plan-view loop model, and the field is relaxed with over-relaxed Gauss-Seidel
sweeps.  A sparse direct solve of the same node equations is available as a
reference.
"""

from .analyzer import FieldBoundaryConditions, FieldSolution, FloorFemAnalyzer
from .layer_stack import LayerStack, build_layer_stack
from .mesh_builder import FloorMesh, MeshBuildOutput, PipeCrossSection, build_floor_mesh
from .metrics import ComfortNorms, FloorMetrics, HydraulicEstimate, OneDimensionalCheck, SurfaceSample
from .pipe_loop import LoopThermalProfile, compute_loop_profile
from .pipeline import SolveResult, next_return_temperature, solve, with_auto_return
from .report import ReportPaths, generate_report

__all__ = [
    "ComfortNorms",
    "FieldBoundaryConditions",
    "FieldSolution",
    "FloorFemAnalyzer",
    "FloorMesh",
    "FloorMetrics",
    "HydraulicEstimate",
    "LayerStack",
    "LoopThermalProfile",
    "MeshBuildOutput",
    "OneDimensionalCheck",
    "PipeCrossSection",
    "ReportPaths",
    "SolveResult",
    "SurfaceSample",
    "build_floor_mesh",
    "build_layer_stack",
    "compute_loop_profile",
    "generate_report",
    "next_return_temperature",
    "solve",
    "with_auto_return",
]
