from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from floorheat.fem import FloorFemAnalyzer, SolveResult, generate_report, solve, with_auto_return
from floorheat.fem.analyzer import METHOD_DIRECT, METHOD_SOR
from floorheat.fem.mesh_preview import save_mesh_preview
from floorheat.io import load_request, save_request
from floorheat.model import InvalidConfiguration, SolveRequest

logger = logging.getLogger(__name__)

# Auto-return feedback normally settles within a handful of passes.
_MAX_FEEDBACK_PASSES = 20


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="floorheat",
        description="Steady-state temperature field of a radiant floor cross-section.",
    )
    parser.add_argument("config", nargs="?", type=Path, help="JSON parameter set (defaults when omitted)")
    parser.add_argument("--report", type=Path, metavar="DIR", help="write CSV/JSON/PNG report under DIR")
    parser.add_argument("--preview", type=Path, metavar="PNG", help="save a grid preview image")
    parser.add_argument("--save-config", type=Path, metavar="JSON", help="write the solved parameter set")
    parser.add_argument("--direct", action="store_true", help="use the sparse direct solver")
    parser.add_argument("--tolerance", type=float, default=None, help="early-exit tolerance for sweeps (°C)")
    parser.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    return parser


def run(request: SolveRequest, analyzer: FloorFemAnalyzer) -> SolveResult:
    """Solve ``request``; in auto-return mode repeat until the return temperature settles."""
    result = solve(request, analyzer=analyzer)
    for _ in range(_MAX_FEEDBACK_PASSES):
        follow_up = with_auto_return(result)
        if follow_up is None:
            break
        logger.info(f"Auto-return: re-solving with Tr = {follow_up.return_temp_c:.2f} °C")
        result = solve(follow_up, analyzer=analyzer)
    else:
        logger.warning("Auto-return feedback did not settle; reporting the last pass.")
    return result


def format_summary(result: SolveResult) -> str:
    metrics = result.metrics
    one_d = result.one_d
    hydraulics = result.hydraulics
    solution = result.solution
    lines = [
        f"Grid: {result.mesh.nx} x {result.mesh.ny} nodes, {solution.method} "
        f"({solution.iterations} iterations, converged={solution.converged}, "
        f"residual={solution.residual_c:.1e} °C)",
        f"Pipe temperatures: {', '.join(f'{t:.2f}' for t in result.loop.pipe_temps_c)} °C",
        f"Surface: mean={metrics.mean_surface_temp_c:.2f} °C, min={metrics.min_surface_temp_c:.2f} °C, "
        f"max={metrics.max_surface_temp_c:.2f} °C",
        f"Flux: up={metrics.mean_upward_flux_w_per_m2:.1f} W/m², down={metrics.mean_downward_flux_w_per_m2:.1f} W/m², "
        f"upward share={metrics.upward_share_percent:.1f} %",
        f"Foot steps: 5 cm={metrics.max_step_5cm_c:.2f} K, 10 cm={metrics.max_step_10cm_c:.2f} K",
        f"1D check: R={one_d.total_resistance_m2k_per_w:.3f} m²K/W, q={one_d.flux_w_per_m2:.1f} W/m², "
        f"surface={one_d.surface_temp_c:.2f} °C",
        f"Hydraulics: loop output={hydraulics.loop_output_w:.0f} W, "
        f"estimated Tr={hydraulics.auto_return_temp_c:.2f} °C",
    ]
    if result.norms.max_exceeds:
        lines.append(f"Warning: surface maximum exceeds {result.norms.limit_c:.0f} °C")
    return "\n".join(lines)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Solve one floor configuration from the command line."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        request = load_request(args.config) if args.config else SolveRequest()
        analyzer = FloorFemAnalyzer(
            method=METHOD_DIRECT if args.direct else METHOD_SOR,
            tolerance_c=args.tolerance,
        )
        result = run(request, analyzer)
    except (InvalidConfiguration, RuntimeError) as exc:
        logger.error(str(exc))
        return 1

    print(format_summary(result))
    if args.report:
        paths = generate_report(result, root_dir=args.report)
        print(f"Report saved to {paths.base_dir}")
    if args.preview:
        preview = save_mesh_preview(result.mesh, result.pipes, result.stack, args.preview, title="Floor grid")
        print(f"Grid preview saved to {preview}")
    if args.save_config:
        save_request(result.request, args.save_config)
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
