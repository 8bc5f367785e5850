"""Quadrature rules and P1 shape data on the reference triangle.

Reference triangle: (0, 0), (1, 0), (0, 1) with area 1/2. Reference data is
identical for every element and is cached per quadrature degree; only the
physical gradients depend on the element geometry.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import numpy as np
from numpy.polynomial.legendre import leggauss
from numpy.typing import NDArray

from .datastructures import EDGE_VERTICES


class DegenerateElementError(ValueError):
    """Raised when an element has a zero or negative Jacobian determinant."""


# Dunavant rules: (points (n, 2), weights (n,)) with weights summing to 1/2
_TRIANGLE_QUAD = {
    1: (np.array([[1 / 3, 1 / 3]]), np.array([0.5])),
    2: (
        np.array([[1 / 6, 1 / 6], [2 / 3, 1 / 6], [1 / 6, 2 / 3]]),
        np.array([1 / 6, 1 / 6, 1 / 6]),
    ),
    3: (
        np.array([[1 / 3, 1 / 3], [0.2, 0.2], [0.6, 0.2], [0.2, 0.6]]),
        np.array([-27 / 96, 25 / 96, 25 / 96, 25 / 96]),
    ),
}


def triangle_quadrature(degree: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Points and weights on the reference triangle, exact up to ``degree``."""
    if degree not in _TRIANGLE_QUAD:
        raise ValueError(f"Unsupported triangle quadrature degree={degree}. Use 1, 2 or 3.")
    pts, wts = _TRIANGLE_QUAD[degree]
    return pts.copy(), wts.copy()


def line_quadrature(degree: int) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Gauss-Legendre points and weights on [0, 1], exact up to ``degree``."""
    if degree < 0:
        raise ValueError(f"Quadrature degree must be non-negative, got {degree}")
    n = degree // 2 + 1
    pts, wts = leggauss(n)
    return 0.5 * (pts + 1.0), 0.5 * wts


def p1_shape(points: NDArray[np.float64]) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Linear basis on the reference triangle.

    Returns
    -------
    N : ndarray (nq, 3)
        Shape values phi_0 = 1 - xi - eta, phi_1 = xi, phi_2 = eta.
    dN : ndarray (nq, 3, 2)
        Reference gradients (constant).
    """
    points = np.atleast_2d(points)
    xi, eta = points[:, 0], points[:, 1]
    N = np.column_stack([1.0 - xi - eta, xi, eta])
    dN = np.broadcast_to(
        np.array([[-1.0, -1.0], [1.0, 0.0], [0.0, 1.0]]), (len(points), 3, 2)
    ).copy()
    return N, dN


@dataclass(frozen=True, eq=False)
class ReferenceData:
    """Cell and face quadrature with P1 shape data on the reference triangle."""

    degree: int
    points: NDArray[np.float64]
    weights: NDArray[np.float64]
    N: NDArray[np.float64]
    dN: NDArray[np.float64]
    # Face k: shape values (3, nqf, 3) at the face quadrature points
    face_N: NDArray[np.float64]
    face_weights: NDArray[np.float64]

    @property
    def nq(self) -> int:
        return len(self.weights)


@lru_cache(maxsize=None)
def reference_data(degree: int = 3) -> ReferenceData:
    points, weights = triangle_quadrature(degree)
    N, dN = p1_shape(points)

    s, face_weights = line_quadrature(degree)
    face_N = np.zeros((3, len(s), 3))
    for k, (a, b) in enumerate(EDGE_VERTICES):
        face_N[k, :, a] = 1.0 - s
        face_N[k, :, b] = s

    for arr in (points, weights, N, dN, face_N, face_weights):
        arr.flags.writeable = False

    return ReferenceData(
        degree=degree,
        points=points,
        weights=weights,
        N=N,
        dN=dN,
        face_N=face_N,
        face_weights=face_weights,
    )


def map_gradients(
    coords: NDArray[np.float64],
    ref: ReferenceData,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Map reference gradients to physical space for all elements.

    Parameters
    ----------
    coords : ndarray (noelms, 3, 2)
        Vertex coordinates per element.
    ref : ReferenceData

    Returns
    -------
    detJ : ndarray (noelms, nq)
    dNdx : ndarray (noelms, nq, 3, 2)
    """
    # J[e, q, a, b] = d x_a / d xi_b
    J = np.einsum("ena,qnb->eqab", coords, ref.dN)
    detJ = J[..., 0, 0] * J[..., 1, 1] - J[..., 0, 1] * J[..., 1, 0]

    bad = np.flatnonzero((detJ <= 0.0).any(axis=1))
    if len(bad):
        raise DegenerateElementError(
            f"Non-positive Jacobian determinant in {len(bad)} element(s): "
            f"{bad[:10].tolist()}{' ...' if len(bad) > 10 else ''}"
        )

    invJ = np.empty_like(J)
    invJ[..., 0, 0] = J[..., 1, 1] / detJ
    invJ[..., 0, 1] = -J[..., 0, 1] / detJ
    invJ[..., 1, 0] = -J[..., 1, 0] / detJ
    invJ[..., 1, 1] = J[..., 0, 0] / detJ

    # d phi / d x_a = sum_b d phi / d xi_b * d xi_b / d x_a
    dNdx = np.einsum("qnb,eqba->eqna", ref.dN, invJ)
    return np.ascontiguousarray(detJ), np.ascontiguousarray(dNdx)
