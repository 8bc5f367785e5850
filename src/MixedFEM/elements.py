"""Element kernel for the mixed (u, p) linear elasticity formulation.

Weak form on one element, plane strain, P1 displacement / P1 pressure:

    uu[i, j] = ∫ 2G dev(sym(∇φ_i)) : dev(sym(∇φ_j)) dΩ
    pu[a, j] = -∫ ψ_a div(φ_j) dΩ
    pp[a, b] = -∫ (1/K) ψ_a ψ_b dΩ
    fu[i]    = ∫_Γt φ_i · t dΓ

with dev(A) = A - tr(A)/3 I on the in-plane 2x2 tensor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

import numpy as np
from numba import njit
from numpy.typing import NDArray

from .datastructures import EDGE_VERTICES, MaterialParameters
from .dofs import N_LOCAL_DOFS, N_U
from .quadrature import ReferenceData, map_gradients

U_BLOCK = slice(0, N_U)
P_BLOCK = slice(N_U, N_LOCAL_DOFS)


@dataclass
class LocalBlocks:
    """Element matrix and load vector with named block views."""

    Ke: NDArray[np.float64] = field(default_factory=lambda: np.zeros((N_LOCAL_DOFS, N_LOCAL_DOFS)))
    fe: NDArray[np.float64] = field(default_factory=lambda: np.zeros(N_LOCAL_DOFS))

    @property
    def uu(self) -> NDArray[np.float64]:
        return self.Ke[U_BLOCK, U_BLOCK]

    @property
    def up(self) -> NDArray[np.float64]:
        return self.Ke[U_BLOCK, P_BLOCK]

    @property
    def pu(self) -> NDArray[np.float64]:
        return self.Ke[P_BLOCK, U_BLOCK]

    @property
    def pp(self) -> NDArray[np.float64]:
        return self.Ke[P_BLOCK, P_BLOCK]

    @property
    def fu(self) -> NDArray[np.float64]:
        return self.fe[U_BLOCK]


@njit
def _mixed_element_core(dNdx, N, wts, detJ, G, K, Ke):
    """
    Accumulate one element matrix into the pre-zeroed buffer ``Ke`` (9, 9).

    Only the lower triangle is integrated; it is mirrored at the end.
    """
    nq = wts.shape[0]
    eps_dev = np.empty((6, 2, 2))
    div = np.empty(6)
    inv_K = 1.0 / K

    for q in range(nq):
        dOmega = wts[q] * detJ[q]

        # Displacement basis i = 2 * node + component
        for node in range(3):
            for c in range(2):
                i = 2 * node + c
                g0 = dNdx[q, node, 0]
                g1 = dNdx[q, node, 1]
                gc = g0 if c == 0 else g1
                for a in range(2):
                    for b in range(2):
                        s = 0.0
                        if a == c:
                            s += 0.5 * (g0 if b == 0 else g1)
                        if b == c:
                            s += 0.5 * (g0 if a == 0 else g1)
                        if a == b:
                            s -= gc / 3.0
                        eps_dev[i, a, b] = s
                div[i] = gc

        for i in range(6):
            for j in range(i + 1):
                contraction = 0.0
                for a in range(2):
                    for b in range(2):
                        contraction += eps_dev[i, a, b] * eps_dev[j, a, b]
                Ke[i, j] += 2.0 * G * contraction * dOmega

        for a in range(3):
            psi_a = N[q, a]
            for j in range(6):
                Ke[6 + a, j] += -psi_a * div[j] * dOmega
            for b in range(a + 1):
                Ke[6 + a, 6 + b] += -inv_K * psi_a * N[q, b] * dOmega

    for i in range(9):
        for j in range(i):
            Ke[j, i] = Ke[i, j]


@njit
def _mixed_elements_all(dNdx, N, wts, detJ, G, K):
    noelms = dNdx.shape[0]
    Ke_all = np.zeros((noelms, 9, 9))
    for e in range(noelms):
        _mixed_element_core(dNdx[e], N, wts, detJ[e], G, K, Ke_all[e])
    return Ke_all


def _face_loads(
    coords: NDArray[np.float64],
    faces: NDArray[np.int64],
    traction: NDArray[np.float64],
    ref: ReferenceData,
) -> NDArray[np.float64]:
    """Displacement-block loads (n, 6) of constant traction on (element, face) pairs."""
    elems, local = faces[:, 0], faces[:, 1]
    ends = EDGE_VERTICES[local]
    xa = coords[elems, ends[:, 0]]
    xb = coords[elems, ends[:, 1]]
    length = np.sqrt(np.sum((xb - xa) ** 2, axis=1))

    # sum_q w_q phi_i(s_q) |edge| for each face
    nodal = np.einsum("q,fqn->fn", ref.face_weights, ref.face_N[local]) * length[:, None]
    return (nodal[:, :, None] * traction[None, None, :]).reshape(len(faces), N_U)


def element_matrices(
    coords: NDArray[np.float64],
    material: MaterialParameters,
    ref: ReferenceData,
    traction: Sequence[float] | None = None,
    traction_faces: Sequence[int] = (),
) -> LocalBlocks:
    """
    Local blocks of one element.

    Parameters
    ----------
    coords : ndarray (3, 2)
        Vertex coordinates, counter-clockwise.
    material : MaterialParameters
    ref : ReferenceData
    traction : (tx, ty), optional
        Constant traction on ``traction_faces``.
    traction_faces : sequence of int
        Local faces of this element lying on the loaded boundary.
    """
    coords = np.asarray(coords, dtype=np.float64)[None]
    detJ, dNdx = map_gradients(coords, ref)

    blocks = LocalBlocks()
    _mixed_element_core(dNdx[0], ref.N, ref.weights, detJ[0], material.G, material.K, blocks.Ke)

    if traction is not None and len(traction_faces):
        faces = np.column_stack(
            [np.zeros(len(traction_faces), dtype=np.int64), np.asarray(traction_faces, dtype=np.int64)]
        )
        loads = _face_loads(coords, faces, np.asarray(traction, dtype=np.float64), ref)
        blocks.fe[U_BLOCK] += loads.sum(axis=0)

    return blocks


def element_matrices_all(
    coords: NDArray[np.float64],
    material: MaterialParameters,
    ref: ReferenceData,
    traction: Sequence[float] | None = None,
    traction_faces: NDArray[np.int64] | None = None,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Local matrices and loads of every element.

    Returns
    -------
    Ke_all : ndarray (noelms, 9, 9)
    fe_all : ndarray (noelms, 9)
    """
    detJ, dNdx = map_gradients(coords, ref)
    Ke_all = _mixed_elements_all(dNdx, ref.N, ref.weights, detJ, material.G, material.K)

    fe_all = np.zeros((len(coords), N_LOCAL_DOFS))
    if traction is not None and traction_faces is not None and len(traction_faces):
        loads = _face_loads(coords, traction_faces, np.asarray(traction, dtype=np.float64), ref)
        np.add.at(fe_all[:, U_BLOCK], traction_faces[:, 0], loads)

    return Ke_all, fe_all
