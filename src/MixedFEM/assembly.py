from __future__ import annotations

import logging
import time
from typing import Sequence

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix, diags

from .datastructures import MaterialParameters, Mesh2d
from .dofs import DofLayout
from .elements import element_matrices_all
from .quadrature import reference_data

log = logging.getLogger(__name__)


class SymmetricAssembler:
    """
    Owns the global lower-triangular stiffness data and the force vector.

    The CSR pattern comes from the DofLayout and is fixed before the first
    accumulation. Only element entries with global row >= column are
    scattered; ``finalize`` mirrors the lower triangle.
    """

    def __init__(self, dofs: DofLayout):
        self.dofs = dofs
        self.data = np.zeros(dofs.nnz_lower, dtype=np.float64)
        self.f = np.zeros(dofs.ndofs, dtype=np.float64)

        data_map = dofs._csr_data_map.ravel()
        self._lower_entries = np.flatnonzero(data_map >= 0)
        self._lower_targets = data_map[self._lower_entries]

    def accumulate(self, element: int, Ke: NDArray[np.float64], fe: NDArray[np.float64]) -> None:
        """Scatter-add one element matrix (9, 9) and load (9,)."""
        targets = self.dofs._csr_data_map[element]
        lower = targets >= 0
        np.add.at(self.data, targets[lower], np.asarray(Ke).ravel()[lower])
        np.add.at(self.f, self.dofs.cell_dofs[element], fe)

    def accumulate_all(self, Ke_all: NDArray[np.float64], fe_all: NDArray[np.float64]) -> None:
        """Scatter-add the matrices (noelms, 9, 9) and loads (noelms, 9) of every element."""
        np.add.at(self.data, self._lower_targets, Ke_all.ravel()[self._lower_entries])
        np.add.at(self.f, self.dofs.cell_dofs.ravel(), fe_all.ravel())

    def lower(self) -> csr_matrix:
        n = self.dofs.ndofs
        return csr_matrix(
            (self.data.copy(), self.dofs._csr_indices, self.dofs._csr_indptr),
            shape=(n, n),
        )

    def finalize(self) -> tuple[csr_matrix, NDArray[np.float64]]:
        """Return the full symmetric matrix L + L^T - diag(L) and a copy of f."""
        L = self.lower()
        K = (L + L.T - diags(L.diagonal())).tocsr()
        K.sort_indices()
        return K, self.f.copy()


def assemble_mixed_system(
    mesh: Mesh2d,
    dofs: DofLayout,
    material: MaterialParameters,
    traction: Sequence[float] | None = None,
    traction_set: str | None = None,
    degree: int = 3,
) -> tuple[csr_matrix, NDArray[np.float64]]:
    """
    Assemble the global mixed (u, p) stiffness matrix and force vector.

    Parameters
    ----------
    mesh : Mesh2d
    dofs : DofLayout
        DOF numbering of ``mesh``.
    material : MaterialParameters
    traction : (tx, ty), optional
        Constant traction applied on the faces of ``traction_set``.
    traction_set : str, optional
        Name of the loaded face set.
    degree : int
        Polynomial exactness of the cell and face quadrature.

    Returns
    -------
    K : csr_matrix (ndofs, ndofs)
        Symmetric, indefinite.
    f : ndarray (ndofs,)
    """
    t0 = time.perf_counter()
    ref = reference_data(degree)
    faces = mesh.get_faceset(traction_set) if traction_set is not None else None

    Ke_all, fe_all = element_matrices_all(mesh.element_coords, material, ref, traction, faces)

    assembler = SymmetricAssembler(dofs)
    assembler.accumulate_all(Ke_all, fe_all)
    K, f = assembler.finalize()

    log.debug(
        f"Assembled {mesh.noelms} elements: ndofs={dofs.ndofs}, nnz={K.nnz}, "
        f"time={time.perf_counter() - t0:.3f}s"
    )
    return K, f
