from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix, spmatrix
from scipy.sparse.linalg import minres, splu

from .assembly import assemble_mixed_system
from .boundary import ConstraintSet, apply_constraints, dirichlet_constraints
from .datastructures import MaterialParameters, Mesh2d
from .dofs import DofLayout
from .mesh import cooks_membrane_mesh

if TYPE_CHECKING:
    from scipy.sparse.linalg import SuperLU

log = logging.getLogger(__name__)

# Normwise backward error above which a direct solve is reported as failed
RESIDUAL_TOL = 1e-8
# Relative residual ||K u - f|| / ||f|| above which any solve is reported as failed
RELATIVE_RESIDUAL_TOL = 1e-6


class SingularSystemError(RuntimeError):
    """Raised when the global system cannot be solved reliably."""


@dataclass
class Solution:
    """Solution vector with the system and numbering it was computed from."""

    u: NDArray[np.float64]
    mesh: Mesh2d
    dofs: DofLayout
    K: csr_matrix
    f: NDArray[np.float64]
    constraints: ConstraintSet
    residual: float


def backward_error(K: spmatrix, u: NDArray[np.float64], f: NDArray[np.float64]) -> float:
    """||K u - f|| / (||K|| ||u|| + ||f||) in the infinity norm."""
    r = K @ u - f
    K_norm = abs(K).sum(axis=1).max()
    denom = K_norm * np.max(np.abs(u)) + np.max(np.abs(f))
    if denom == 0.0:
        return 0.0
    return float(np.max(np.abs(r)) / denom)


def relative_residual(K: spmatrix, u: NDArray[np.float64], f: NDArray[np.float64]) -> float:
    """||K u - f|| / ||f|| in the 2-norm, the absolute residual when f = 0."""
    r_norm = np.linalg.norm(K @ u - f)
    f_norm = np.linalg.norm(f)
    return float(r_norm / f_norm) if f_norm > 0.0 else float(r_norm)


def _check_pivots(lu: SuperLU, n: int) -> None:
    """Reject factors whose smallest pivot is at roundoff level of the largest."""
    d = np.abs(lu.U.diagonal())
    if len(d) == 0:
        return
    ratio = d.min() / d.max() if d.max() > 0.0 else 0.0
    if ratio < n * np.finfo(np.float64).eps:
        raise SingularSystemError(
            f"Matrix is numerically singular: pivot ratio {ratio:.3e} < {n * np.finfo(np.float64).eps:.3e}"
        )


def solve_symmetric(
    K: spmatrix,
    f: NDArray[np.float64],
    method: Literal["lu", "minres"] = "lu",
    tol: float = 1e-12,
    maxiter: int | None = None,
) -> NDArray[np.float64]:
    """
    Solve the symmetric, possibly indefinite system K u = f.

    Parameters
    ----------
    method : "lu" or "minres"
        "lu" is a sparse direct factorisation with pivoting, "minres" the
        Krylov method for symmetric indefinite matrices.
    tol : float
        Relative tolerance for "minres".

    Raises
    ------
    SingularSystemError
        If the factorisation breaks down or has a roundoff-level pivot,
        MINRES does not converge, or the solution is non-finite or leaves a
        relative residual above tolerance (e.g. a structure that is not
        held in place).
    """
    if method == "lu":
        try:
            lu = splu(csr_matrix(K).tocsc())
        except RuntimeError as exc:
            raise SingularSystemError(f"Sparse factorisation failed: {exc}") from exc
        _check_pivots(lu, K.shape[0])
        u = lu.solve(np.asarray(f, dtype=np.float64))
        if np.all(np.isfinite(u)):
            err = backward_error(K, u, f)
            if err > RESIDUAL_TOL:
                raise SingularSystemError(
                    f"Direct solve is unreliable: backward error {err:.3e} > {RESIDUAL_TOL:.0e}"
                )
    elif method == "minres":
        u, info = minres(K, f, rtol=tol, maxiter=maxiter)
        if info != 0:
            raise SingularSystemError(f"MINRES did not converge (info={info})")
    else:
        raise ValueError(f"Unknown solver method '{method}'. Use 'lu' or 'minres'.")

    if not np.all(np.isfinite(u)):
        raise SingularSystemError("Solution contains non-finite values")

    # minres measures convergence against ||K|| ||u|| + ||f||, not ||f||
    limit = RELATIVE_RESIDUAL_TOL if method == "lu" else max(RELATIVE_RESIDUAL_TOL, 10.0 * tol)
    res = relative_residual(K, u, f)
    if res > limit:
        raise SingularSystemError(
            f"Solve did not satisfy the system: relative residual {res:.3e} > {limit:.0e}"
        )
    return u


def solve_mixed_elasticity(
    mesh: Mesh2d,
    material: MaterialParameters,
    traction: Sequence[float],
    clamped: str = "clamped",
    loaded: str = "right",
    method: Literal["lu", "minres"] = "lu",
    degree: int = 3,
) -> Solution:
    """
    Assemble, constrain and solve the mixed (u, p) problem on ``mesh``.

    Displacements on the ``clamped`` face set are fixed to zero and the
    constant ``traction`` acts on the ``loaded`` face set.
    """
    t0 = time.perf_counter()
    dofs = DofLayout(mesh)
    K, f = assemble_mixed_system(mesh, dofs, material, traction, loaded, degree=degree)

    constraints = dirichlet_constraints(mesh, dofs, clamped)
    K_c, f_c = apply_constraints(K, f, constraints, layout=dofs)

    u = solve_symmetric(K_c, f_c, method=method)
    residual = relative_residual(K_c, u, f_c)

    log.info(
        f"Solved mixed system: ndofs={dofs.ndofs}, constrained={len(constraints)}, "
        f"residual={residual:.2e}, time={time.perf_counter() - t0:.2f}s"
    )
    return Solution(u=u, mesh=mesh, dofs=dofs, K=K_c, f=f_c, constraints=constraints, residual=residual)


def solve_cooks_membrane(
    nu: float,
    nx: int = 50,
    ny: int = 50,
    E: float = 1.0,
    traction: Sequence[float] = (0.0, 1.0 / 16.0),
    method: Literal["lu", "minres"] = "lu",
) -> Solution:
    """Cook's membrane: left edge clamped, constant traction on the right edge."""
    material = MaterialParameters.from_young_poisson(E, nu)
    mesh = cooks_membrane_mesh(nx, ny)
    log.info(f"Cook's membrane: nx={nx}, ny={ny}, nu={nu}, G={material.G:.4e}, K={material.K:.4e}")
    return solve_mixed_elasticity(mesh, material, traction, method=method)
