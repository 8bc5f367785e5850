from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix, spmatrix

from .datastructures import EDGE_VERTICES, Mesh2d

if TYPE_CHECKING:
    from .dofs import DofLayout

log = logging.getLogger(__name__)


def boundary_faces(mesh: Mesh2d) -> NDArray[np.int64]:
    """Return (element, local face) pairs of faces owned by exactly one element."""
    # Global node pairs for every local face, sorted so shared faces compare equal
    nodes = mesh.EToV[:, EDGE_VERTICES]  # (noelms, 3, 2)
    keys = np.sort(nodes.reshape(-1, 2), axis=1)

    _, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    on_boundary = counts[inverse.ravel()] == 1

    flat = np.flatnonzero(on_boundary)
    return np.column_stack([flat // 3, flat % 3]).astype(np.int64)


def add_faceset(
    mesh: Mesh2d,
    name: str,
    predicate: Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.bool_]],
) -> NDArray[np.int64]:
    """Add the boundary faces whose two end nodes both satisfy ``predicate(x, y)``."""
    faces = boundary_faces(mesh)
    ends = mesh.EToV[faces[:, 0][:, None], EDGE_VERTICES[faces[:, 1]]]  # (n, 2)

    inside = np.asarray(predicate(mesh.VX[ends], mesh.VY[ends]), dtype=bool)
    selected = faces[inside.all(axis=1)]
    if len(selected) == 0:
        raise ValueError(f"Face set '{name}' is empty: no boundary face satisfies the predicate")

    mesh.facesets[name] = selected
    log.debug(f"Face set '{name}': {len(selected)} faces")
    return selected


def faceset_nodes(mesh: Mesh2d, name: str) -> NDArray[np.int64]:
    """Unique node indices on a face set."""
    faces = mesh.get_faceset(name)
    if len(faces) == 0:
        return np.array([], dtype=np.int64)
    ends = mesh.EToV[faces[:, 0][:, None], EDGE_VERTICES[faces[:, 1]]]
    return np.unique(ends)


@dataclass(frozen=True, eq=False)
class ConstraintSet:
    """Prescribed values for a set of global DOFs."""

    dofs: NDArray[np.int64]
    values: NDArray[np.float64]

    def __post_init__(self) -> None:
        dofs = np.asarray(self.dofs, dtype=np.int64)
        values = np.broadcast_to(np.asarray(self.values, dtype=np.float64), dofs.shape)
        if len(np.unique(dofs)) != len(dofs):
            raise ValueError("Constrained DOFs must be unique")
        order = np.argsort(dofs)
        object.__setattr__(self, "dofs", dofs[order])
        object.__setattr__(self, "values", values[order].copy())

    def __len__(self) -> int:
        return len(self.dofs)

    def check_displacement(self, layout: DofLayout) -> None:
        """Reject constraints that touch pressure DOFs."""
        pressure = np.isin(self.dofs, layout.field_dofs("p"))
        if pressure.any():
            raise ValueError(
                f"Constraints may only act on displacement DOFs; pressure DOFs {self.dofs[pressure]} given"
            )


def dirichlet_constraints(
    mesh: Mesh2d,
    layout: DofLayout,
    faceset: str,
    components: Sequence[int] = (0, 1),
    value: float = 0.0,
) -> ConstraintSet:
    """Prescribe ``value`` on the displacement ``components`` of every node of a face set."""
    nodes = faceset_nodes(mesh, faceset)
    dofs = layout.node_dofs("u")[nodes][:, list(components)].ravel()
    constraints = ConstraintSet(dofs=dofs, values=np.full(len(dofs), value))
    log.debug(f"{len(constraints)} constrained DOFs on '{faceset}'")
    return constraints


def apply_constraints(
    K: spmatrix,
    f: NDArray[np.float64],
    constraints: ConstraintSet,
    layout: DofLayout | None = None,
) -> tuple[csr_matrix, NDArray[np.float64]]:
    """
    Enforce prescribed DOF values on a symmetric system, keeping it symmetric.

    The effect of the prescribed values is moved to the right-hand side,
    rows and columns of the constrained DOFs are zeroed, and their diagonal
    is set to the mean absolute diagonal of K so the constrained equations
    read m * u[d] = m * v. K and f are not modified.
    """
    n = K.shape[0]
    d, v = constraints.dofs, constraints.values
    if len(d) and (d[0] < 0 or d[-1] >= n):
        raise ValueError(f"Constrained DOFs must lie in [0, {n})")
    if layout is not None:
        constraints.check_displacement(layout)

    K_csr = csr_matrix(K)
    m = np.mean(np.abs(K_csr.diagonal()))

    # K[:, d] @ v == K @ v_full where v_full is zero except at d
    v_full = np.zeros(n)
    v_full[d] = v
    f_new = np.asarray(f, dtype=np.float64) - K_csr @ v_full
    f_new[d] = m * v

    # Zero constrained rows/cols and put m on their diagonal
    scale = np.ones(n)
    scale[d] = 0.0

    row_scale = np.repeat(scale, np.diff(K_csr.indptr))
    col_scale = scale[K_csr.indices]

    K_new = K_csr.copy()
    K_new.data *= row_scale * col_scale
    diag = K_new.diagonal()
    diag[d] = m
    K_new.setdiag(diag)

    log.debug(f"Applied {len(d)} constraints, diagonal scale m={m:.6e}")
    return K_new, f_new
