from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import meshio
import numpy as np
from matplotlib.tri import Triangulation
from numpy.typing import NDArray

from .datastructures import Mesh2d
from .plot_style import save_figure, setup_style
from .solvers import Solution

log = logging.getLogger(__name__)


def split_solution(solution: Solution) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Nodal displacement (nonodes, 2) and pressure (nonodes,) from the DOF vector."""
    u = solution.u
    displacement = u[solution.dofs.node_dofs("u")]
    pressure = u[solution.dofs.node_dofs("p")]
    return displacement, pressure


def write_vtk(
    filepath: str | Path,
    mesh: Mesh2d,
    displacement: NDArray[np.float64],
    pressure: NDArray[np.float64],
) -> Path:
    """Write nodal displacement and pressure to a VTK file."""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    points = np.column_stack([mesh.VX, mesh.VY, np.zeros(mesh.nonodes)])
    cells = [("triangle", mesh.EToV)]
    meshio.write(
        filepath,
        meshio.Mesh(
            points,
            cells,
            point_data={
                "displacement": np.column_stack([displacement, np.zeros(mesh.nonodes)]),
                "pressure": pressure,
            },
        ),
    )
    log.info(f"Saved {filepath}")
    return filepath


def plot_pressure(
    mesh: Mesh2d,
    displacement: NDArray[np.float64],
    pressure: NDArray[np.float64],
    filename: str | Path,
    scale: float = 1.0,
    title: str = "",
):
    """Pressure on the deformed configuration, undeformed outline in grey."""
    setup_style()
    fig, ax = plt.subplots(figsize=(6, 6))

    undeformed = Triangulation(mesh.VX, mesh.VY, mesh.EToV)
    deformed = Triangulation(
        mesh.VX + scale * displacement[:, 0],
        mesh.VY + scale * displacement[:, 1],
        mesh.EToV,
    )

    ax.triplot(undeformed, color="0.8", linewidth=0.3)
    cs = ax.tripcolor(deformed, pressure, shading="gouraud", cmap="RdBu_r")
    fig.colorbar(cs, ax=ax, label=r"$p$")
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_aspect("equal")
    if title:
        ax.set_title(title)

    return save_figure(fig, filename)
