from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
from numpy.typing import NDArray

from floorheat.fem.layer_stack import LayerStack
from floorheat.model import SolveRequest

logger = logging.getLogger(__name__)

MIN_NY = 3
MAX_NY = 300
_BASELINE_NY = 80
_MIN_CELL_SIZE_M = 1e-5
_MIN_COVER_ABOVE_INSULATION_M = 0.02

# Minimum number of cells across each layer that is present.
_CELLS_PER_COVERING = 6
_CELLS_PER_SCREED = 30
_CELLS_PER_UNDERLAY = 4
_CELLS_PER_INSULATION = 10


@dataclass(frozen=True)
class PipeCrossSection:
    """Circular pipe section embedded in the screed."""

    index: int
    centre_x_m: float
    centre_y_m: float
    radius_m: float

    @property
    def top_y_m(self) -> float:
        return self.centre_y_m - self.radius_m

    @property
    def bottom_y_m(self) -> float:
        return self.centre_y_m + self.radius_m


@dataclass(frozen=True, eq=False)
class FloorMesh:
    """Uniform node grid over one repeating unit of the floor (row 0 is the surface)."""

    nx: int
    ny: int
    width_m: float
    height_m: float
    dx_m: float
    dy_m: float
    row_conductivity_w_per_mk: NDArray[np.float64]
    pipe_label: NDArray[np.int64]

    @property
    def x_nodes_m(self) -> NDArray[np.float64]:
        return np.arange(self.nx, dtype=float) * self.dx_m

    @property
    def y_nodes_m(self) -> NDArray[np.float64]:
        return np.arange(self.ny, dtype=float) * self.dy_m

    @property
    def pipe_mask(self) -> NDArray[np.bool_]:
        return self.pipe_label >= 0


@dataclass(frozen=True, eq=False)
class MeshBuildOutput:
    mesh: FloorMesh
    pipes: List[PipeCrossSection]


def choose_row_count(stack: LayerStack) -> int:
    """
    Pick NY so that the thinnest present layer is resolved.

    Every layer with a non-zero thickness proposes a cell size (thickness over
    its minimum cell count) next to a height-based baseline; the finest one wins.
    """
    height = stack.total_height_m
    candidates = [height / max(2, _BASELINE_NY - 1)]
    if stack.covering_thickness_m > 0.0:
        candidates.append(stack.covering_thickness_m / _CELLS_PER_COVERING)
    candidates.append(stack.screed_thickness_m / _CELLS_PER_SCREED)
    if stack.underlay_thickness_m > 0.0:
        candidates.append(stack.underlay_thickness_m / _CELLS_PER_UNDERLAY)
    if stack.insulation_thickness_m > 0.0:
        candidates.append(stack.insulation_thickness_m / _CELLS_PER_INSULATION)
    target = max(_MIN_CELL_SIZE_M, min(candidates))
    return max(MIN_NY, min(MAX_NY, int(round(height / target)) + 1))


def build_row_conductivity(stack: LayerStack, ny: int, dy_m: float) -> NDArray[np.float64]:
    return np.array([stack.conductivity_at(j * dy_m) for j in range(ny)], dtype=float)


def place_pipes(request: SolveRequest, stack: LayerStack) -> List[PipeCrossSection]:
    """
    Lay the pipes on the underlay (or directly on the insulation).

    The pipe is lifted by the underlay thickness, but never so far that it
    leaves the screed or loses the minimum distance to the insulation top.
    """
    diameter = request.pipe_outer_diameter_m
    spacing = request.pipe_spacing_m
    insulation_top = stack.insulation_top_m
    limit_by_screed = max(0.0, stack.screed_thickness_m - diameter)
    limit_by_cover = max(0.0, insulation_top - _MIN_COVER_ABOVE_INSULATION_M - diameter)
    max_offset = max(0.0, min(limit_by_screed, limit_by_cover))
    offset = min(stack.underlay_thickness_m, max_offset)
    centre_y = insulation_top - offset - 0.5 * diameter

    count = max(1, request.pipe_count)
    return [
        PipeCrossSection(
            index=k,
            centre_x_m=(k + 0.5) * spacing,
            centre_y_m=centre_y,
            radius_m=0.5 * diameter,
        )
        for k in range(count)
    ]


def build_pipe_labels(
    pipes: Sequence[PipeCrossSection],
    nx: int,
    ny: int,
    dx_m: float,
    dy_m: float,
) -> NDArray[np.int64]:
    """Label interior nodes inside a pipe with the pipe index (first match wins), others with -1."""
    labels = np.full((ny, nx), -1, dtype=np.int64)
    if nx < 3 or ny < 3:
        return labels
    x = np.arange(1, nx - 1, dtype=float) * dx_m
    y = np.arange(1, ny - 1, dtype=float) * dy_m
    xx, yy = np.meshgrid(x, y)
    interior = labels[1:-1, 1:-1]
    for pipe in pipes:
        inside = np.hypot(xx - pipe.centre_x_m, yy - pipe.centre_y_m) <= pipe.radius_m
        interior[inside & (interior < 0)] = pipe.index
    return labels


def build_floor_mesh(
    request: SolveRequest,
    stack: LayerStack,
) -> MeshBuildOutput:
    """Generate the node grid, row conductivities and pipe labels for ``request``."""
    nx = max(3, int(request.nx))
    pipes = place_pipes(request, stack)
    width = max(1, request.pipe_count) * request.pipe_spacing_m
    height = stack.total_height_m
    ny = choose_row_count(stack)
    dx = width / (nx - 1)
    dy = height / (ny - 1)

    mesh = FloorMesh(
        nx=nx,
        ny=ny,
        width_m=width,
        height_m=height,
        dx_m=dx,
        dy_m=dy,
        row_conductivity_w_per_mk=build_row_conductivity(stack, ny, dy),
        pipe_label=build_pipe_labels(pipes, nx, ny, dx, dy),
    )
    mesh.row_conductivity_w_per_mk.setflags(write=False)
    mesh.pipe_label.setflags(write=False)
    pipe_nodes = int(np.count_nonzero(mesh.pipe_mask))
    logger.debug(
        f"Floor mesh {nx}x{ny} (dx={dx * 1000.0:.3f} mm, dy={dy * 1000.0:.3f} mm), "
        f"{len(pipes)} pipes covering {pipe_nodes} nodes"
    )
    if pipe_nodes == 0:
        logger.warning(
            f"No grid node falls inside the pipes (radius {pipes[0].radius_m * 1000.0:.1f} mm); "
            "the field will not see the heating circuit."
        )
    return MeshBuildOutput(mesh=mesh, pipes=pipes)

