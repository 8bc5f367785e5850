"""Data structures for the mixed (u, p) elasticity solver.

Architecture: Params vs Metrics

             Params (input/config)         Metrics (output/results)
             ─────────────────────         ────────────────────────
Geometry     Mesh2d                        -
Material     MaterialParameters            -
Run          Parameters                    Metrics
             nu, E, nx, ny, traction...    max_value, ndofs, wall_time...
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from numpy.typing import NDArray

if TYPE_CHECKING:
    import meshio

# Tolerance for boundary node detection (floating-point comparison)
BOUNDARY_TOL = 1e-10

# Element configuration (P1 triangles)
N_LOCAL_NODES = 3
DIM = 2

# Local face k connects these vertex positions in EToV
EDGE_VERTICES = np.array([[0, 1], [1, 2], [2, 0]])


@dataclass
class Mesh2d:
    """2D triangular mesh with named boundary face sets.

    Connectivity is 0-based and counter-clockwise. ``facesets`` maps a name
    to an ``(n, 2)`` array of ``(element, local face)`` pairs.
    """

    VX: NDArray[np.float64]
    VY: NDArray[np.float64]
    EToV: NDArray[np.int64]
    facesets: dict[str, NDArray[np.int64]] = field(default_factory=dict)

    # Computed mesh properties
    noelms: int = field(init=False)
    nonodes: int = field(init=False)

    # Signed element areas
    delta: NDArray[np.float64] = field(init=False)

    # Internal vertex index arrays
    _v1: NDArray[np.int64] = field(init=False, repr=False)
    _v2: NDArray[np.int64] = field(init=False, repr=False)
    _v3: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.VX = np.ascontiguousarray(self.VX, dtype=np.float64)
        self.VY = np.ascontiguousarray(self.VY, dtype=np.float64)
        self.EToV = np.ascontiguousarray(self.EToV, dtype=np.int64)

        if self.VX.shape != self.VY.shape or self.VX.ndim != 1:
            raise ValueError(
                f"VX and VY must be 1D arrays of equal length, got {self.VX.shape} and {self.VY.shape}"
            )
        if self.EToV.ndim != 2 or self.EToV.shape[1] != N_LOCAL_NODES:
            raise ValueError(f"EToV must have shape (noelms, 3), got {self.EToV.shape}")

        self.nonodes = len(self.VX)
        self.noelms = len(self.EToV)

        if self.noelms and (self.EToV.min() < 0 or self.EToV.max() >= self.nonodes):
            raise ValueError(
                f"EToV references nodes outside [0, {self.nonodes}): "
                f"min={self.EToV.min()}, max={self.EToV.max()}"
            )

        self._v1 = self.EToV[:, 0]
        self._v2 = self.EToV[:, 1]
        self._v3 = self.EToV[:, 2]

        x1, y1, x2, y2, x3, y3 = self.vertex_coords
        self.delta = 0.5 * (x1 * (y2 - y3) + x2 * (y3 - y1) + x3 * (y1 - y2))

    @classmethod
    def from_meshio(cls, mesh: meshio.Mesh | str | Path) -> Mesh2d:
        """
        Create Mesh2d from a meshio mesh or mesh file.

        Line cells tagged with gmsh physical groups become face sets, named
        after the entries of ``field_data`` (or ``"tag_<n>"`` when unnamed).

        Parameters
        ----------
        mesh : meshio.Mesh or str or Path
            Either a meshio Mesh object or path to a mesh file.

        Returns
        -------
        Mesh2d
        """
        import meshio as mio

        if isinstance(mesh, (str, Path)):
            mesh = mio.read(mesh)

        points = mesh.points[:, :2]

        EToV = None
        for cell_block in mesh.cells:
            if cell_block.type == "triangle":
                EToV = cell_block.data.astype(np.int64)
                break

        if EToV is None:
            raise ValueError("No triangle cells found in mesh")

        instance = cls(VX=points[:, 0], VY=points[:, 1], EToV=EToV)

        degenerate = np.flatnonzero(instance.delta == 0.0)
        if len(degenerate):
            raise ValueError(
                f"{len(degenerate)} zero-area triangle(s) in mesh: {degenerate[:10].tolist()}"
            )

        # Reorder clockwise triangles so every element is counter-clockwise
        clockwise = instance.delta < 0.0
        if clockwise.any():
            EToV = EToV.copy()
            EToV[clockwise] = EToV[clockwise][:, [0, 2, 1]]
            instance = cls(VX=points[:, 0], VY=points[:, 1], EToV=EToV)

        if "line" in mesh.cells_dict and "gmsh:physical" in mesh.cell_data_dict:
            line_tags = mesh.cell_data_dict["gmsh:physical"].get("line")
            if line_tags is not None:
                tag_names = {
                    int(data[0]): name
                    for name, data in mesh.field_data.items()
                    if len(data) > 1 and int(data[1]) == 1
                }
                instance._facesets_from_tags(mesh.cells_dict["line"], line_tags, tag_names)

        return instance

    def _facesets_from_tags(
        self,
        line_cells: NDArray[np.int64],
        line_tags: NDArray[np.int64],
        tag_names: dict[int, str],
    ) -> None:
        """Match tagged line cells to element faces."""
        edge_to_tag = {}
        for (n1, n2), tag in zip(line_cells, line_tags):
            edge_to_tag[(min(n1, n2), max(n1, n2))] = int(tag)

        faces: dict[str, list[list[int]]] = {}
        for elem in range(self.noelms):
            vertices = self.EToV[elem]
            for k in range(3):
                va, vb = vertices[EDGE_VERTICES[k]]
                tag = edge_to_tag.get((min(va, vb), max(va, vb)))
                if tag is not None:
                    name = tag_names.get(tag, f"tag_{tag}")
                    faces.setdefault(name, []).append([elem, k])

        for name, pairs in faces.items():
            self.facesets[name] = np.array(pairs, dtype=np.int64)

    @property
    def vertex_coords(
        self,
    ) -> tuple[
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
    ]:
        """Return (x1, y1, x2, y2, x3, y3) coordinates for all elements."""
        return (
            self.VX[self._v1],
            self.VY[self._v1],
            self.VX[self._v2],
            self.VY[self._v2],
            self.VX[self._v3],
            self.VY[self._v3],
        )

    @property
    def element_coords(self) -> NDArray[np.float64]:
        """Vertex coordinates per element, shape (noelms, 3, 2)."""
        coords = np.empty((self.noelms, N_LOCAL_NODES, DIM), dtype=np.float64)
        coords[:, :, 0] = self.VX[self.EToV]
        coords[:, :, 1] = self.VY[self.EToV]
        return coords

    def get_faceset(self, name: str) -> NDArray[np.int64]:
        try:
            return self.facesets[name]
        except KeyError:
            raise KeyError(
                f"Unknown face set '{name}', available: {sorted(self.facesets)}"
            ) from None


@dataclass(frozen=True)
class MaterialParameters:
    """Shear modulus G and the volumetric modulus K of the mixed formulation.

    K = E nu / ((1 + nu)(1 - 2 nu)) grows without bound as nu -> 0.5; the
    pressure block only ever sees 1/K.
    """

    G: float
    K: float

    @classmethod
    def from_young_poisson(cls, E: float, nu: float) -> MaterialParameters:
        if not np.isfinite(E) or E <= 0.0:
            raise ValueError(f"Young's modulus must be positive and finite, got E={E}")
        if not 0.0 < nu < 0.5:
            raise ValueError(f"Poisson ratio must lie in (0, 0.5), got nu={nu}")

        G = E / (2.0 * (1.0 + nu))
        K = E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
        if not np.isfinite(K):
            raise ValueError(f"Poisson ratio nu={nu} gives a non-finite modulus K={K}")
        return cls(G=G, K=K)


# ============================================================================
# Parameters (Input Configuration)
# ============================================================================


@dataclass
class Parameters:
    """Run parameters for one Cook's membrane solve."""

    name: str = "cooks_membrane"
    nu: float = 0.3
    E: float = 1.0
    nx: int = 50
    ny: int = 50
    traction_x: float = 0.0
    traction_y: float = 1.0 / 16.0
    solver: str = "lu"
    export: bool = False

    def to_dict(self) -> dict:
        """Convert to a flat dict (bools as int)."""
        return {
            k: (int(v) if isinstance(v, bool) else v) for k, v in self.__dict__.items()
        }

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self.to_dict()])


# ============================================================================
# Metrics (Output Results)
# ============================================================================


@dataclass
class Metrics:
    """Solve metrics computed after the linear solve."""

    ndofs: int = 0
    nnz: int = 0
    n_constrained: int = 0
    max_value: float = float("nan")
    tip_displacement_x: float = float("nan")
    tip_displacement_y: float = float("nan")
    pressure_min: float = float("nan")
    pressure_max: float = float("nan")
    residual: float = float("inf")
    wall_time_seconds: float = 0.0

    def to_dict(self) -> dict:
        """Convert to a flat dict, skipping unset values."""
        return {
            k: v
            for k, v in self.__dict__.items()
            if v != float("inf")
        }

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self.to_dict()])
