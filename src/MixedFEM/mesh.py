from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from .boundary import add_faceset
from .datastructures import BOUNDARY_TOL, Mesh2d

# Cook's membrane corners: lower-left, lower-right, upper-right, upper-left
COOKS_CORNERS = np.array([[0.0, 0.0], [48.0, 44.0], [48.0, 60.0], [0.0, 44.0]])


def quad_tri_mesh(nx: int, ny: int, corners: NDArray[np.float64]) -> Mesh2d:
    """
    Structured triangle mesh of the quadrilateral spanned by ``corners``.

    Nodes are placed by bilinear interpolation of the corners (LL, LR, UR,
    UL), node (i, j) has index ``i + j * (nx + 1)``. Every cell is split
    into a lower-left and an upper-right triangle, both counter-clockwise.

    Parameters
    ----------
    nx, ny : int
        Number of cells along the LL-LR and LL-UL directions.
    corners : ndarray (4, 2)
        Corner coordinates in counter-clockwise order.
    """
    if nx < 1 or ny < 1:
        raise ValueError(f"Need at least one cell per direction, got nx={nx}, ny={ny}")
    LL, LR, UR, UL = np.asarray(corners, dtype=np.float64)

    nonodes1, nonodes2 = nx + 1, ny + 1
    s = np.linspace(0.0, 1.0, nonodes1)[None, :, None]
    t = np.linspace(0.0, 1.0, nonodes2)[:, None, None]

    # Left and right edge points for each row, then interpolate along the row
    left = LL * (1 - t) + UL * t
    right = LR * (1 - t) + UR * t
    points = (left * (1 - s) + right * s).reshape(-1, 2)

    col, row = np.meshgrid(np.arange(nx), np.arange(ny))
    col, row = col.ravel(), row.ravel()

    n00 = col + row * nonodes1
    n10 = n00 + 1
    n01 = n00 + nonodes1
    n11 = n01 + 1

    EToV = np.empty((2 * nx * ny, 3), dtype=np.int64)
    EToV[0::2, 0] = n00
    EToV[0::2, 1] = n10
    EToV[0::2, 2] = n01
    EToV[1::2, 0] = n10
    EToV[1::2, 1] = n11
    EToV[1::2, 2] = n01

    return Mesh2d(VX=points[:, 0], VY=points[:, 1], EToV=EToV)


def cooks_membrane_mesh(nx: int, ny: int, tol: float = BOUNDARY_TOL) -> Mesh2d:
    """Cook's membrane with face sets ``"clamped"`` (x = 0) and ``"right"`` (x = 48)."""
    mesh = quad_tri_mesh(nx, ny, COOKS_CORNERS)
    add_faceset(mesh, "clamped", lambda x, y: np.abs(x) < tol)
    add_faceset(mesh, "right", lambda x, y: np.abs(x - 48.0) < tol)
    return mesh
