from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numba as nb
import numpy as np
from numpy.typing import NDArray
from scipy.sparse import coo_matrix
from scipy.sparse.linalg import spsolve

from floorheat.fem.mesh_builder import FloorMesh

logger = logging.getLogger(__name__)

DEFAULT_SWEEPS = 1200
DEFAULT_OMEGA = 1.85
# Largest residual and estimated remaining error still reported as converged when no
# early-exit tolerance is set.
_REPORT_TOLERANCE_C = 1e-3
_SWEEPS_PER_CHUNK = 100
# Chunk-to-chunk residual contraction at or above this is treated as stalled.
_MAX_CONTRACTION = 0.999
# 1 mm still-air gap (k = 0.026 W/mK) between pipe and screed under a mounting mat.
GAP_CONDUCTANCE_W_PER_M2K = 0.026 / 0.001

METHOD_SOR = "sor"
METHOD_DIRECT = "direct"


@dataclass(frozen=True)
class FieldBoundaryConditions:
    """Thermal boundary data for one cross-section solve."""

    air_temp_c: float
    surface_htc_w_per_m2k: float
    below_temp_c: float
    mean_water_temp_c: float
    contact_fraction: float = 1.0
    reduced_contact: bool = False


@dataclass(frozen=True, eq=False)
class FieldSolution:
    """Solved temperature field, indexed [row, column] with row 0 at the floor surface.

    ``residual_c`` is the largest node-equation residual of the returned field in °C
    (every equation is scaled to a unit diagonal). ``error_estimate_c`` is the estimated
    distance to the exact fixed point, extrapolated from the residual contraction of the
    last chunk of sweeps.
    """

    temperatures_c: NDArray[np.float64]
    iterations: int
    converged: bool
    max_update_c: float
    residual_c: float
    error_estimate_c: float
    method: str

    @property
    def surface_temps_c(self) -> NDArray[np.float64]:
        return self.temperatures_c[0]


class FloorFemAnalyzer:
    """Steady-state conduction solver for the layered floor grid."""

    def __init__(
        self,
        *,
        sweeps: int = DEFAULT_SWEEPS,
        omega: float = DEFAULT_OMEGA,
        tolerance_c: Optional[float] = None,
        method: str = METHOD_SOR,
    ) -> None:
        if method not in (METHOD_SOR, METHOD_DIRECT):
            raise ValueError(f"Unknown solver method '{method}'.")
        self._sweeps = max(1, int(sweeps))
        self._omega = float(omega)
        self._tolerance = tolerance_c if tolerance_c is not None and tolerance_c > 0.0 else None
        self._method = method

    def solve(
        self,
        mesh: FloorMesh,
        pipe_temps_c: Sequence[float],
        boundary: FieldBoundaryConditions,
        *,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> FieldSolution:
        if mesh.nx < 3 or mesh.ny < 3:
            raise ValueError("Floor grid must contain at least 3x3 nodes.")
        if len(pipe_temps_c) == 0:
            raise ValueError("At least one pipe temperature is required.")

        pipe_temps = np.asarray(pipe_temps_c, dtype=float)
        matrix, rhs = assemble_system(mesh, pipe_temps, boundary)
        if self._method == METHOD_DIRECT:
            if progress_callback:
                progress_callback(0.0)
            temperatures = _solve_assembled(matrix, rhs, mesh)
            if progress_callback:
                progress_callback(1.0)
            solution = FieldSolution(
                temperatures_c=temperatures,
                iterations=1,
                converged=True,
                max_update_c=0.0,
                residual_c=max_residual(matrix, rhs, temperatures),
                error_estimate_c=0.0,
                method=METHOD_DIRECT,
            )
        else:
            solution = self._solve_relaxation(mesh, pipe_temps, boundary, matrix, rhs, progress_callback)

        _check_finite(solution.temperatures_c, mesh, boundary)
        solution.temperatures_c.setflags(write=False)
        return solution

    def _solve_relaxation(
        self,
        mesh: FloorMesh,
        pipe_temps: NDArray[np.float64],
        boundary: FieldBoundaryConditions,
        matrix,
        rhs: NDArray[np.float64],
        progress_callback: Optional[Callable[[float], None]],
    ) -> FieldSolution:
        temperatures = initial_field(mesh.ny, mesh.nx, boundary.below_temp_c, boundary.air_temp_c)
        k_row = np.array(mesh.row_conductivity_w_per_mk, dtype=float)
        labels = np.array(mesh.pipe_label, dtype=np.int64)

        done = 0
        max_update = 0.0
        residual = max_residual(matrix, rhs, temperatures)
        error_estimate = float("inf")
        if progress_callback:
            progress_callback(0.0)
        while done < self._sweeps:
            chunk = min(_SWEEPS_PER_CHUNK, self._sweeps - done)
            previous = temperatures.copy()
            max_update = _sor_sweeps(
                temperatures,
                k_row,
                labels,
                pipe_temps,
                mesh.dx_m,
                mesh.dy_m,
                boundary.surface_htc_w_per_m2k,
                boundary.air_temp_c,
                boundary.below_temp_c,
                boundary.mean_water_temp_c,
                boundary.contact_fraction,
                boundary.reduced_contact,
                self._omega,
                chunk,
            )
            done += chunk
            previous_residual = residual
            residual = max_residual(matrix, rhs, temperatures)
            chunk_change = float(np.max(np.abs(temperatures - previous)))
            error_estimate = remaining_error(chunk_change, previous_residual, residual)
            if progress_callback:
                progress_callback(done / self._sweeps)
            if self._tolerance is not None and max(residual, error_estimate) <= self._tolerance:
                break

        limit = self._tolerance if self._tolerance is not None else _REPORT_TOLERANCE_C
        converged = residual <= limit and error_estimate <= limit
        if converged:
            logger.debug(
                f"Relaxation finished after {done} sweeps "
                f"(residual {residual:.2e} °C, estimated error {error_estimate:.2e} °C)"
            )
        else:
            logger.warning(
                f"Relaxation stopped after {done} sweeps with residual {residual:.2e} °C and "
                f"estimated error {error_estimate:.2e} °C; limit is {limit:.1e} °C"
            )
        return FieldSolution(
            temperatures_c=temperatures,
            iterations=done,
            converged=converged,
            max_update_c=float(max_update),
            residual_c=residual,
            error_estimate_c=error_estimate,
            method=METHOD_SOR,
        )


def initial_field(ny: int, nx: int, below_temp_c: float, air_temp_c: float) -> NDArray[np.float64]:
    """Linear seed from the air temperature at the surface to the below-insulation temperature."""
    depth_fraction = np.arange(ny, dtype=float) / (ny - 1)
    column = below_temp_c * depth_fraction + air_temp_c * (1.0 - depth_fraction)
    return np.repeat(column[:, None], nx, axis=1)


def max_residual(matrix, rhs: NDArray[np.float64], temperatures: NDArray[np.float64]) -> float:
    """Infinity norm of ``A·T − b`` for the unit-diagonal node equations, in °C."""
    return float(np.max(np.abs(matrix @ temperatures.ravel() - rhs)))


def remaining_error(chunk_change: float, previous_residual: float, residual: float) -> float:
    """Estimate the distance to the fixed point after one chunk of sweeps.

    The residual ratio across the chunk approximates the contraction factor ``rho`` of the
    slowest error mode; the geometric tail left after a change of ``chunk_change`` is then
    ``chunk_change * rho / (1 - rho)``. A stalled or growing residual gives ``inf``.
    """
    if residual == 0.0 or chunk_change == 0.0:
        return 0.0
    if previous_residual <= 0.0:
        return float("inf")
    rho = residual / previous_residual
    if rho >= _MAX_CONTRACTION:
        return float("inf")
    return chunk_change * rho / (1.0 - rho)


@nb.njit(cache=True)
def _pipe_node_value(
    t_pipe: float,
    t_neighbour: float,
    k: float,
    dy: float,
    t_air: float,
    contact_fraction: float,
    reduced_contact: bool,
) -> float:
    if not reduced_contact:
        return t_pipe
    c = k / dy
    t_gap = (c * t_neighbour + GAP_CONDUCTANCE_W_PER_M2K * t_air) / (c + GAP_CONDUCTANCE_W_PER_M2K)
    return contact_fraction * t_pipe + (1.0 - contact_fraction) * t_gap


@nb.njit(cache=True)
def _sor_sweeps(
    t: NDArray[np.float64],
    k_row: NDArray[np.float64],
    labels: NDArray[np.int64],
    pipe_temps: NDArray[np.float64],
    dx: float,
    dy: float,
    h_eff: float,
    t_air: float,
    t_below: float,
    t_mean: float,
    contact_fraction: float,
    reduced_contact: bool,
    omega: float,
    sweeps: int,
) -> float:
    ny, nx = t.shape
    last_pipe = pipe_temps.shape[0] - 1
    inv_dx2 = 1.0 / (dx * dx)
    inv_dy2 = 1.0 / (dy * dy)
    max_update = 0.0

    for _ in range(sweeps):
        max_update = 0.0

        # Surface row: convective exchange with the room.
        k = k_row[0]
        c = k / dy
        for i in range(nx):
            old = t[0, i]
            label = labels[0, i]
            if label >= 0:
                t_pipe = pipe_temps[min(label, last_pipe)]
                new = _pipe_node_value(t_pipe, t[1, i], k, dy, t_air, contact_fraction, reduced_contact)
            else:
                new = (c * t[1, i] + h_eff * t_air) / (c + h_eff)
            t[0, i] = new
            max_update = max(max_update, abs(new - old))
        # Zero-gradient corners.
        old = t[0, 0]
        t[0, 0] = t[0, 1]
        max_update = max(max_update, abs(t[0, 0] - old))
        old = t[0, nx - 1]
        t[0, nx - 1] = t[0, nx - 2]
        max_update = max(max_update, abs(t[0, nx - 1] - old))

        # Below-insulation plane.
        for i in range(nx):
            old = t[ny - 1, i]
            if labels[ny - 1, i] >= 0:
                t[ny - 1, i] = t_mean
            else:
                t[ny - 1, i] = t_below
            max_update = max(max_update, abs(t[ny - 1, i] - old))

        for j in range(1, ny - 1):
            k = k_row[j]
            k_up = k_row[j - 1]
            k_down = k_row[j + 1]
            ky_up = 2.0 * k * k_up / (k + k_up)
            ky_down = 2.0 * k * k_down / (k + k_down)
            diagonal = 2.0 * k * inv_dx2 + (ky_up + ky_down) * inv_dy2
            for i in range(nx):
                old = t[j, i]
                if i == 0:
                    new = t[j, 1]
                elif i == nx - 1:
                    new = t[j, nx - 2]
                elif labels[j, i] >= 0:
                    t_pipe = pipe_temps[min(labels[j, i], last_pipe)]
                    new = _pipe_node_value(
                        t_pipe, t[j + 1, i], k, dy, t_air, contact_fraction, reduced_contact
                    )
                else:
                    b = k * (t[j, i - 1] + t[j, i + 1]) * inv_dx2 + (
                        ky_up * t[j - 1, i] + ky_down * t[j + 1, i]
                    ) * inv_dy2
                    new = old + omega * (b / diagonal - old)
                t[j, i] = new
                max_update = max(max_update, abs(new - old))

    return max_update


def _solve_assembled(matrix, rhs: NDArray[np.float64], mesh: FloorMesh) -> NDArray[np.float64]:
    """Solve the fixed-point equations of the relaxation sweep with a sparse direct solver."""
    solution = np.asarray(spsolve(matrix, rhs), dtype=float)
    if solution.size != mesh.nx * mesh.ny:
        raise RuntimeError("Direct solver returned an unexpected solution vector length.")
    return solution.reshape((mesh.ny, mesh.nx))


def assemble_system(
    mesh: FloorMesh,
    pipe_temps: NDArray[np.float64],
    boundary: FieldBoundaryConditions,
):
    nx, ny = mesh.nx, mesh.ny
    dx, dy = mesh.dx_m, mesh.dy_m
    k_row = mesh.row_conductivity_w_per_mk
    labels = mesh.pipe_label
    last_pipe = len(pipe_temps) - 1
    h_eff = boundary.surface_htc_w_per_m2k
    t_air = boundary.air_temp_c
    g = GAP_CONDUCTANCE_W_PER_M2K
    phi = boundary.contact_fraction

    rows: List[int] = []
    cols: List[int] = []
    values: List[float] = []
    rhs = np.zeros(nx * ny, dtype=float)

    def node(j: int, i: int) -> int:
        return j * nx + i

    def couple(p: int, q: int, weight: float) -> None:
        rows.append(p)
        cols.append(q)
        values.append(-weight)

    def pipe_equation(p: int, j: int, i: int) -> None:
        t_pipe = float(pipe_temps[min(int(labels[j, i]), last_pipe)])
        if not boundary.reduced_contact:
            rhs[p] = t_pipe
            return
        c = k_row[j] / dy
        couple(p, node(j + 1, i), (1.0 - phi) * c / (c + g))
        rhs[p] = phi * t_pipe + (1.0 - phi) * g * t_air / (c + g)

    for j in range(ny):
        for i in range(nx):
            p = node(j, i)
            rows.append(p)
            cols.append(p)
            values.append(1.0)

            if j == ny - 1:
                rhs[p] = boundary.mean_water_temp_c if labels[j, i] >= 0 else boundary.below_temp_c
            elif i == 0:
                couple(p, node(j, 1), 1.0)
            elif i == nx - 1:
                couple(p, node(j, nx - 2), 1.0)
            elif labels[j, i] >= 0:
                pipe_equation(p, j, i)
            elif j == 0:
                c = k_row[0] / dy
                couple(p, node(1, i), c / (c + h_eff))
                rhs[p] = h_eff * t_air / (c + h_eff)
            else:
                k = k_row[j]
                ky_up = 2.0 * k * k_row[j - 1] / (k + k_row[j - 1])
                ky_down = 2.0 * k * k_row[j + 1] / (k + k_row[j + 1])
                w_x = k / (dx * dx)
                w_up = ky_up / (dy * dy)
                w_down = ky_down / (dy * dy)
                total = 2.0 * w_x + w_up + w_down
                couple(p, node(j, i - 1), w_x / total)
                couple(p, node(j, i + 1), w_x / total)
                couple(p, node(j - 1, i), w_up / total)
                couple(p, node(j + 1, i), w_down / total)

    matrix = coo_matrix((values, (rows, cols)), shape=(nx * ny, nx * ny)).tocsc()
    return matrix, rhs


def _check_finite(
    temperatures: NDArray[np.float64],
    mesh: FloorMesh,
    boundary: FieldBoundaryConditions,
) -> None:
    if np.all(np.isfinite(temperatures)):
        return
    bad = int(np.count_nonzero(~np.isfinite(temperatures)))
    raise RuntimeError(
        f"Solver produced {bad} non-finite temperatures on a {mesh.nx}x{mesh.ny} grid "
        f"(row conductivities {np.unique(mesh.row_conductivity_w_per_mk).tolist()}, "
        f"h={boundary.surface_htc_w_per_m2k}, dy={mesh.dy_m:.3e} m)."
    )
