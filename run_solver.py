"""
Cook's membrane driver using Hydra for configuration.

Usage:
    uv run python run_solver.py
    uv run python run_solver.py material.nu=0.4999 mesh.nx=32 mesh.ny=32
    uv run python run_solver.py -m material.nu=0.3,0.45,0.4999,0.4999999
"""

import logging
import time
from pathlib import Path

import hydra
import numpy as np
import pandas as pd
from hydra.core.hydra_config import HydraConfig
from omegaconf import DictConfig, OmegaConf

from MixedFEM import Metrics, Parameters, solve_cooks_membrane
from MixedFEM.export import plot_pressure, split_solution, write_vtk
from MixedFEM.mesh import COOKS_CORNERS

log = logging.getLogger(__name__)


def build_parameters(cfg: DictConfig) -> Parameters:
    tx, ty = cfg.load.traction
    return Parameters(
        name=cfg.name,
        nu=float(cfg.material.nu),
        E=float(cfg.material.E),
        nx=int(cfg.mesh.nx),
        ny=int(cfg.mesh.ny),
        traction_x=float(tx),
        traction_y=float(ty),
        solver=cfg.solver.method,
        export=bool(cfg.export.enabled),
    )


def compute_metrics(solution, displacement, pressure, wall_time: float) -> Metrics:
    """Summary values of one solve; the tip is the upper-right corner (48, 60)."""
    mesh = solution.mesh
    tip_x, tip_y = COOKS_CORNERS[2]
    tip = int(np.argmin((mesh.VX - tip_x) ** 2 + (mesh.VY - tip_y) ** 2))

    return Metrics(
        ndofs=solution.dofs.ndofs,
        nnz=solution.K.nnz,
        n_constrained=len(solution.constraints),
        max_value=float(np.max(solution.u)),
        tip_displacement_x=float(displacement[tip, 0]),
        tip_displacement_y=float(displacement[tip, 1]),
        pressure_min=float(pressure.min()),
        pressure_max=float(pressure.max()),
        residual=solution.residual,
        wall_time_seconds=wall_time,
    )


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> float:
    output_dir = Path(HydraConfig.get().runtime.output_dir)
    OmegaConf.save(cfg, output_dir / "config_resolved.yaml")

    params = build_parameters(cfg)
    log.info(f"Solving {params.name}: nu={params.nu}, N={params.nx}x{params.ny}, solver={params.solver}")

    start = time.perf_counter()
    solution = solve_cooks_membrane(
        params.nu,
        nx=params.nx,
        ny=params.ny,
        E=params.E,
        traction=(params.traction_x, params.traction_y),
        method=params.solver,
    )
    wall_time = time.perf_counter() - start

    displacement, pressure = split_solution(solution)
    metrics = compute_metrics(solution, displacement, pressure, wall_time)
    log.info(
        f"Done: max={metrics.max_value:.10f}, tip u_y={metrics.tip_displacement_y:.6f}, "
        f"p in [{metrics.pressure_min:.4e}, {metrics.pressure_max:.4e}], time={wall_time:.2f}s"
    )

    summary = pd.concat([params.to_dataframe(), metrics.to_dataframe()], axis=1)
    summary.to_csv(output_dir / "metrics.csv", index=False)

    if cfg.export.enabled:
        write_vtk(output_dir / cfg.export.vtk_name, solution.mesh, displacement, pressure)
    if cfg.export.plot:
        plot_pressure(
            solution.mesh,
            displacement,
            pressure,
            output_dir / cfg.export.plot_name,
            scale=cfg.export.scale,
            title=rf"Cook's membrane, $\nu$={params.nu}",
        )

    return metrics.max_value


if __name__ == "__main__":
    main()
