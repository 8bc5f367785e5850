"""Global numbering of the displacement and pressure DOFs.

DOFs are distributed element by element: the unnumbered nodes of an element
first receive two consecutive displacement DOFs each, then one pressure DOF
each. Local element DOFs are ordered

    [ux(n0), uy(n0), ux(n1), uy(n1), ux(n2), uy(n2), p(n0), p(n1), p(n2)]
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .datastructures import DIM, N_LOCAL_NODES, Mesh2d

N_U = N_LOCAL_NODES * DIM
N_P = N_LOCAL_NODES
N_LOCAL_DOFS = N_U + N_P

FIELDS = ("u", "p")


@njit
def _distribute_dofs_core(EToV, nonodes):
    u_dofs = np.full((nonodes, 2), -1, dtype=np.int64)
    p_dofs = np.full(nonodes, -1, dtype=np.int64)
    next_dof = 0

    for e in range(EToV.shape[0]):
        for k in range(3):
            n = EToV[e, k]
            if u_dofs[n, 0] < 0:
                u_dofs[n, 0] = next_dof
                u_dofs[n, 1] = next_dof + 1
                next_dof += 2
        for k in range(3):
            n = EToV[e, k]
            if p_dofs[n] < 0:
                p_dofs[n] = next_dof
                next_dof += 1

    return u_dofs, p_dofs, next_dof


@dataclass
class DofLayout:
    """Per-element global DOF map and the lower-triangle CSR pattern."""

    mesh: Mesh2d

    ndofs: int = field(init=False)
    cell_dofs: NDArray[np.int64] = field(init=False, repr=False)

    _u_dofs: NDArray[np.int64] = field(init=False, repr=False)
    _p_dofs: NDArray[np.int64] = field(init=False, repr=False)

    # CSR pattern of the lower triangle (row >= col)
    _csr_indptr: NDArray[np.int64] = field(init=False, repr=False)
    _csr_indices: NDArray[np.int64] = field(init=False, repr=False)
    # Per element entry (i, j): position in the CSR data array, -1 above the diagonal
    _csr_data_map: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._distribute()
        self._compute_assembly_indices()

    def _distribute(self) -> None:
        self._u_dofs, self._p_dofs, self.ndofs = _distribute_dofs_core(
            self.mesh.EToV, self.mesh.nonodes
        )

        nodes = self.mesh.EToV
        self.cell_dofs = np.empty((self.mesh.noelms, N_LOCAL_DOFS), dtype=np.int64)
        self.cell_dofs[:, :N_U] = self._u_dofs[nodes].reshape(-1, N_U)
        self.cell_dofs[:, N_U:] = self._p_dofs[nodes]

    def _compute_assembly_indices(self) -> None:
        """Compute the lower-triangle CSR sparsity pattern for direct assembly."""
        n = N_LOCAL_DOFS
        rows = np.repeat(self.cell_dofs, n, axis=1).ravel()
        cols = np.tile(self.cell_dofs, n).ravel()

        lower = rows >= cols
        lower_pos = np.flatnonzero(lower)
        rows, cols = rows[lower], cols[lower]

        # Sort by (row, col) to group duplicates and build CSR structure
        sort_order = np.lexsort((cols, rows))
        sorted_rows = rows[sort_order]
        sorted_cols = cols[sort_order]

        row_diff = np.diff(sorted_rows, prepend=-1)
        col_diff = np.diff(sorted_cols, prepend=-1)
        is_new_pair = (row_diff != 0) | (col_diff != 0)

        unique_rows = sorted_rows[is_new_pair]
        unique_cols = sorted_cols[is_new_pair]

        self._csr_indptr = np.zeros(self.ndofs + 1, dtype=np.int64)
        np.add.at(self._csr_indptr, unique_rows + 1, 1)
        np.cumsum(self._csr_indptr, out=self._csr_indptr)

        self._csr_indices = unique_cols

        pair_indices = np.cumsum(is_new_pair) - 1
        lower_map = np.empty(len(rows), dtype=np.int64)
        lower_map[sort_order] = pair_indices

        self._csr_data_map = np.full(self.mesh.noelms * n * n, -1, dtype=np.int64)
        self._csr_data_map[lower_pos] = lower_map
        self._csr_data_map = self._csr_data_map.reshape(self.mesh.noelms, n * n)

    @property
    def nnz_lower(self) -> int:
        return len(self._csr_indices)

    def node_dofs(self, field_name: str) -> NDArray[np.int64]:
        """Node -> global DOFs: shape (nonodes, 2) for "u", (nonodes,) for "p"."""
        if field_name == "u":
            return self._u_dofs
        if field_name == "p":
            return self._p_dofs
        raise ValueError(f"Unknown field '{field_name}', expected one of {FIELDS}")

    def field_dofs(self, field_name: str) -> NDArray[np.int64]:
        """Sorted global DOFs of one field."""
        dofs = self.node_dofs(field_name).ravel()
        return np.sort(dofs[dofs >= 0])
