from __future__ import annotations

import csv
import dataclasses
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import matplotlib.pyplot as plt
from matplotlib import patches

from floorheat.fem.pipeline import SolveResult
from floorheat.io.configuration import request_to_payload

logger = logging.getLogger(__name__)


@dataclass
class ReportPaths:
    base_dir: Path
    heatmap_path: Optional[Path]
    field_csv_path: Path
    profile_csv_path: Path
    summary_path: Path


def generate_report(  # noqa: D401 - simple wrapper
    result: SolveResult,
    *,
    root_dir: Path,
    include_heatmap: bool = True,
) -> ReportPaths:
    """
    Create a floor analysis report (field CSV, surface profile CSV, summary JSON and heat map).
    """

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    report_dir = root_dir / f"floor_report_{timestamp}"
    report_dir.mkdir(parents=True, exist_ok=True)

    field_csv = report_dir / "temperature_field.csv"
    profile_csv = report_dir / "surface_profile.csv"
    summary_json = report_dir / "summary.json"
    heatmap_path: Optional[Path] = None

    _write_temperature_csv(result, field_csv)
    _write_profile_csv(result, profile_csv)
    _write_summary(result, summary_json)
    if include_heatmap:
        heatmap_path = _write_heatmap(result, report_dir)

    logger.info(f"Floor report written to {report_dir}")
    return ReportPaths(
        base_dir=report_dir,
        heatmap_path=heatmap_path,
        field_csv_path=field_csv,
        profile_csv_path=profile_csv,
        summary_path=summary_json,
    )


def summary_payload(result: SolveResult) -> Dict[str, Any]:
    stack = result.stack
    metrics = result.metrics
    solution = result.solution
    return {
        "request": request_to_payload(result.request),
        "grid": {
            "nx": result.mesh.nx,
            "ny": result.mesh.ny,
            "width_m": result.mesh.width_m,
            "height_m": result.mesh.height_m,
            "dx_m": result.mesh.dx_m,
            "dy_m": result.mesh.dy_m,
        },
        "layers": {
            "boundaries_m": list(stack.boundaries_m),
            "total_height_m": stack.total_height_m,
            "underlay": dataclasses.asdict(stack.underlay) | {"kind": stack.underlay.kind.value},
        },
        "pipes": [dataclasses.asdict(pipe) for pipe in result.pipes],
        "loop": dataclasses.asdict(result.loop),
        "solver": {
            "method": solution.method,
            "iterations": solution.iterations,
            "converged": solution.converged,
            "max_update_c": solution.max_update_c,
            "residual_c": solution.residual_c,
            "error_estimate_c": solution.error_estimate_c,
        },
        "effective_htc_w_per_m2k": result.effective_htc_w_per_m2k,
        "metrics": dataclasses.asdict(metrics),
        "one_dimensional_check": dataclasses.asdict(result.one_d),
        "hydraulics": dataclasses.asdict(result.hydraulics),
        "norms": dataclasses.asdict(result.norms),
    }


def _write_temperature_csv(result: SolveResult, csv_path: Path) -> None:
    with csv_path.open("w", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["x_m", "y_m", "temperature_c"])
        x_nodes = result.mesh.x_nodes_m
        y_nodes = result.mesh.y_nodes_m
        temperatures = result.temperatures_c
        for j, y in enumerate(y_nodes):
            row = temperatures[j]
            for i, x in enumerate(x_nodes):
                writer.writerow([f"{x:.6f}", f"{y:.6f}", f"{row[i]:.6f}"])


def _write_profile_csv(result: SolveResult, csv_path: Path) -> None:
    with csv_path.open("w", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["x_m", "surface_temp_c", "upward_flux_w_per_m2"])
        for sample in result.profile:
            writer.writerow(
                [f"{sample.x_m:.4f}", f"{sample.temperature_c:.3f}", f"{sample.upward_flux_w_per_m2:.2f}"]
            )


def _write_summary(result: SolveResult, summary_path: Path) -> None:
    summary_path.write_text(json.dumps(summary_payload(result), indent=2))


def _write_heatmap(result: SolveResult, report_dir: Path) -> Path:
    heatmap_path = report_dir / "heatmap.png"
    mesh = result.mesh
    aspect = mesh.height_m / max(mesh.width_m, 1e-9)
    figure, axis = plt.subplots(figsize=(8, max(3.0, 8 * aspect + 1.0)), constrained_layout=True)
    x_nodes = mesh.x_nodes_m * 1000.0
    y_nodes = mesh.y_nodes_m * 1000.0

    colour_plot = axis.pcolormesh(
        x_nodes,
        y_nodes,
        result.temperatures_c,
        shading="auto",
        cmap="inferno",
    )
    figure.colorbar(colour_plot, ax=axis, label="Temperature (°C)")

    for pipe in result.pipes:
        axis.add_patch(
            patches.Circle(
                (pipe.centre_x_m * 1000.0, pipe.centre_y_m * 1000.0),
                radius=pipe.radius_m * 1000.0,
                edgecolor="#00c6ff",
                facecolor="none",
                linewidth=0.8,
            )
        )

    for boundary in result.stack.boundaries_m[1:]:
        axis.axhline(boundary * 1000.0, color="white", linestyle="--", linewidth=0.8)

    axis.set_xlabel("x (mm)")
    axis.set_ylabel("depth (mm)")
    axis.set_title(
        f"Floor temperature field (surface mean {result.metrics.mean_surface_temp_c:.1f} °C)"
    )
    axis.set_aspect("equal", adjustable="box")
    axis.invert_yaxis()
    axis.grid(False)

    figure.savefig(heatmap_path, dpi=200)
    plt.close(figure)
    return heatmap_path
