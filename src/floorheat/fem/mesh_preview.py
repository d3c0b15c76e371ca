from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

import matplotlib.pyplot as plt
import numpy as np

from .layer_stack import LayerStack
from .mesh_builder import FloorMesh, PipeCrossSection

_LAYER_COLOURS = ("#4a90d9", "#7f7f7f", "#2ca02c", "#ff7f0e")


def save_mesh_preview(
    mesh: FloorMesh,
    pipes: Sequence[PipeCrossSection],
    stack: LayerStack,
    output_path: str | Path,
    *,
    title: str | None = None,
    dpi: int = 200,
) -> Path:
    """
    Render the node grid, layer interfaces and pipe sections to an image.

    Args:
        mesh: Grid returned by build_floor_mesh.
        pipes: Pipe sections placed in the screed.
        stack: Layer stack the grid was built from.
        output_path: Target path for the PNG file.
        title: Optional title to add to the plot.
        dpi: Resolution for the output image.

    Returns:
        Path to the written image.
    """
    path = Path(output_path).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    aspect = mesh.height_m / max(mesh.width_m, 1e-9)
    fig, ax = plt.subplots(figsize=(8, max(3.0, 8 * aspect)), dpi=dpi / 25)

    _draw_mesh(ax, mesh)
    _draw_layers(ax, stack)
    _draw_pipes(ax, pipes)

    if title:
        ax.set_title(title)

    ax.set_xlabel("x [mm]")
    ax.set_ylabel("depth [mm]")
    ax.set_aspect("equal", adjustable="box")
    ax.set_xlim(0.0, mesh.width_m * 1000.0)
    ax.set_ylim(mesh.height_m * 1000.0, 0.0)
    ax.grid(False)
    fig.tight_layout()
    fig.savefig(path, dpi=dpi)
    plt.close(fig)
    return path


def _draw_mesh(ax, mesh: FloorMesh) -> None:
    for x in mesh.x_nodes_m * 1000.0:
        ax.axvline(x, color="#dddddd", linewidth=0.3, zorder=1)
    for y in mesh.y_nodes_m * 1000.0:
        ax.axhline(y, color="#dddddd", linewidth=0.3, zorder=1)
    rows, cols = np.nonzero(mesh.pipe_mask)
    if rows.size:
        ax.scatter(
            cols * mesh.dx_m * 1000.0,
            rows * mesh.dy_m * 1000.0,
            s=2,
            color="#d62728",
            zorder=3,
        )


def _draw_layers(ax, stack: LayerStack) -> None:
    offset = 0.0
    for (role, thickness, _k), colour in zip(stack.layers(), _LAYER_COLOURS):
        if thickness <= 0.0:
            continue
        ax.axhspan(offset * 1000.0, (offset + thickness) * 1000.0, color=colour, alpha=0.12, zorder=0)
        ax.axhline(offset * 1000.0, color=colour, linewidth=1.0, linestyle="--", zorder=2)
        ax.text(2.0, offset * 1000.0 + 1.0, role.value, fontsize=7, va="top", color=colour)
        offset += thickness
    ax.axhline(offset * 1000.0, color="#000000", linewidth=1.0, zorder=2)


def _draw_pipes(ax, pipes: Iterable[PipeCrossSection]) -> None:
    for pipe in pipes:
        circle = plt.Circle(
            (pipe.centre_x_m * 1000.0, pipe.centre_y_m * 1000.0),
            pipe.radius_m * 1000.0,
            fill=False,
            color="#d62728",
            linewidth=1.2,
            zorder=4,
        )
        ax.add_patch(circle)
