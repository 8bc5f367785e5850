"""Mixed (u, p) finite elements for nearly incompressible linear elasticity.

This package implements P1/P1 (linear displacement, linear pressure)
triangular elements in plane strain and the Cook's membrane benchmark.

Main components:
- Mesh2d, quad_tri_mesh, cooks_membrane_mesh: triangle meshes with face sets
- DofLayout: interleaved displacement/pressure DOF numbering
- reference_data, map_gradients: quadrature and P1 shape data
- element_matrices: mixed element kernel
- SymmetricAssembler, assemble_mixed_system: lower-triangle global assembly
- apply_constraints: symmetric Dirichlet constraints
- solve_symmetric, solve_mixed_elasticity, solve_cooks_membrane: solvers
"""

from .datastructures import (
    Mesh2d,
    MaterialParameters,
    Parameters,
    Metrics,
    BOUNDARY_TOL,
    EDGE_VERTICES,
)
from .mesh import quad_tri_mesh, cooks_membrane_mesh, COOKS_CORNERS
from .boundary import (
    ConstraintSet,
    boundary_faces,
    add_faceset,
    faceset_nodes,
    dirichlet_constraints,
    apply_constraints,
)
from .dofs import DofLayout
from .quadrature import (
    DegenerateElementError,
    ReferenceData,
    triangle_quadrature,
    line_quadrature,
    p1_shape,
    reference_data,
    map_gradients,
)
from .elements import LocalBlocks, element_matrices, element_matrices_all
from .assembly import SymmetricAssembler, assemble_mixed_system
from .solvers import (
    SingularSystemError,
    Solution,
    solve_symmetric,
    solve_mixed_elasticity,
    solve_cooks_membrane,
)
from .export import split_solution, write_vtk, plot_pressure

__all__ = [
    # Data structures
    "Mesh2d",
    "MaterialParameters",
    "Parameters",
    "Metrics",
    "BOUNDARY_TOL",
    "EDGE_VERTICES",
    # Mesh
    "quad_tri_mesh",
    "cooks_membrane_mesh",
    "COOKS_CORNERS",
    # Boundary conditions
    "ConstraintSet",
    "boundary_faces",
    "add_faceset",
    "faceset_nodes",
    "dirichlet_constraints",
    "apply_constraints",
    # DOFs
    "DofLayout",
    # Quadrature
    "DegenerateElementError",
    "ReferenceData",
    "triangle_quadrature",
    "line_quadrature",
    "p1_shape",
    "reference_data",
    "map_gradients",
    # Elements and assembly
    "LocalBlocks",
    "element_matrices",
    "element_matrices_all",
    "SymmetricAssembler",
    "assemble_mixed_system",
    # Solvers
    "SingularSystemError",
    "Solution",
    "solve_symmetric",
    "solve_mixed_elasticity",
    "solve_cooks_membrane",
    # Export
    "split_solution",
    "write_vtk",
    "plot_pressure",
]
