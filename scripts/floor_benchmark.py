#!/usr/bin/env python3

"""Standalone benchmark for the floor cross-section solver.

Runs the reference 45/40 °C floor across coverings, underlays and loop layouts,
compares the relaxation sweep against the sparse direct solve and prints the
key metrics so the results can be tracked outside the GUI.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
import sys

import numpy as np

from floorheat.fem import FloorFemAnalyzer, SolveResult, solve
from floorheat.fem.analyzer import METHOD_DIRECT
from floorheat.fem.mesh_preview import save_mesh_preview
from floorheat.model import SolveRequest

if __package__:
    from ._benchmark_utils import covering_variants, describe, layout_variants, make_reference_request, underlay_variants
else:  # Allow execution via `python floor_benchmark.py`
    script_dir = Path(__file__).resolve().parent
    if str(script_dir) not in sys.path:
        sys.path.insert(0, str(script_dir))
    from _benchmark_utils import (  # type: ignore  # noqa: E402
        covering_variants,
        describe,
        layout_variants,
        make_reference_request,
        underlay_variants,
    )


@dataclass
class Scenario:
    name: str
    request: SolveRequest


def run_scenario(scenario: Scenario, *, reference: FloorFemAnalyzer) -> SolveResult:
    started = time.perf_counter()
    result = solve(scenario.request)
    elapsed = time.perf_counter() - started
    direct = solve(scenario.request, analyzer=reference)
    deviation = float(np.max(np.abs(result.temperatures_c - direct.temperatures_c)))

    metrics = result.metrics
    print(f"\n=== {scenario.name} ===")
    print(f"  {describe(scenario.request)}")
    print(
        f"  Grid: {result.mesh.nx} x {result.mesh.ny} nodes, sweeps: {result.solution.iterations}, "
        f"converged={result.solution.converged}, {elapsed * 1000.0:.0f} ms, "
        f"max deviation from direct solve: {deviation:.2e} °C"
    )
    print(f"  Pipes: {', '.join(f'{t:.2f}' for t in result.loop.pipe_temps_c)} °C")
    print(
        f"  Surface: mean={metrics.mean_surface_temp_c:.2f} °C, spread={metrics.surface_spread_c:.2f} K, "
        f"q_up={metrics.mean_upward_flux_w_per_m2:.1f} W/m², q_down={metrics.mean_downward_flux_w_per_m2:.1f} W/m²"
    )
    print(f"  1D check: q={result.one_d.flux_w_per_m2:.1f} W/m², surface={result.one_d.surface_temp_c:.2f} °C")
    return result


def main() -> None:
    logging.basicConfig(level=logging.WARNING)
    reference = FloorFemAnalyzer(method=METHOD_DIRECT)

    scenarios = [Scenario(name="Reference floor", request=make_reference_request())]
    scenarios += [Scenario(name=f"Covering: {r.covering.name}", request=r) for r in covering_variants()]
    scenarios += [Scenario(name=f"Underlay: {r.underlay.name}", request=r) for r in underlay_variants()]
    scenarios += [Scenario(name=f"Layout: {r.layout.value}", request=r) for r in layout_variants()]

    first = None
    for scenario in scenarios:
        result = run_scenario(scenario, reference=reference)
        first = first or result

    if first is not None:
        preview_path = save_mesh_preview(
            first.mesh,
            first.pipes,
            first.stack,
            Path.cwd() / "floor_mesh_reference.png",
            title="Grid preview: reference floor",
            dpi=150,
        )
        print(f"\nGrid preview saved to {preview_path}")


if __name__ == "__main__":
    main()
