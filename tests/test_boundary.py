"""Tests for meshes, face sets and Dirichlet constraints.

Run with: uv run pytest tests/test_boundary.py -v
"""

import meshio
import numpy as np
import pytest

from MixedFEM import (
    ConstraintSet,
    DofLayout,
    MaterialParameters,
    Mesh2d,
    add_faceset,
    apply_constraints,
    assemble_mixed_system,
    boundary_faces,
    cooks_membrane_mesh,
    dirichlet_constraints,
    faceset_nodes,
    quad_tri_mesh,
)
from MixedFEM.mesh import COOKS_CORNERS


class TestMesh:
    """Structured triangle meshes."""

    def test_cooks_membrane_area(self):
        mesh = cooks_membrane_mesh(6, 5)
        assert np.all(mesh.delta > 0)
        assert np.isclose(mesh.delta.sum(), 1440.0)

    def test_sizes_and_corners(self):
        nx, ny = 4, 3
        mesh = cooks_membrane_mesh(nx, ny)
        assert mesh.nonodes == (nx + 1) * (ny + 1)
        assert mesh.noelms == 2 * nx * ny
        corner_nodes = [0, nx, mesh.nonodes - 1, ny * (nx + 1)]
        coords = np.column_stack([mesh.VX, mesh.VY])[corner_nodes]
        assert np.allclose(coords, COOKS_CORNERS)

    def test_invalid_resolution(self):
        with pytest.raises(ValueError):
            quad_tri_mesh(0, 3, COOKS_CORNERS)

    def test_invalid_connectivity(self):
        with pytest.raises(ValueError, match="outside"):
            Mesh2d(VX=np.array([0.0, 1.0, 0.0]), VY=np.array([0.0, 0.0, 1.0]), EToV=np.array([[0, 1, 3]]))

    def test_invalid_connectivity_shape(self):
        with pytest.raises(ValueError, match="shape"):
            Mesh2d(VX=np.array([0.0, 1.0]), VY=np.array([0.0, 0.0]), EToV=np.array([[0, 1]]))

    def test_element_coords(self):
        mesh = quad_tri_mesh(2, 2, np.array([[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 1.0]]))
        coords = mesh.element_coords
        assert coords.shape == (mesh.noelms, 3, 2)
        assert np.allclose(coords[0], [[0.0, 0.0], [0.5, 0.0], [0.0, 0.5]])


class TestFaceSets:
    """Boundary faces and named face sets."""

    def test_boundary_face_count(self):
        nx, ny = 5, 4
        mesh = cooks_membrane_mesh(nx, ny)
        assert len(boundary_faces(mesh)) == 2 * (nx + ny)

    def test_cooks_face_sets(self):
        nx, ny = 5, 4
        mesh = cooks_membrane_mesh(nx, ny)
        assert len(mesh.get_faceset("clamped")) == ny
        assert len(mesh.get_faceset("right")) == ny

        clamped = faceset_nodes(mesh, "clamped")
        right = faceset_nodes(mesh, "right")
        assert len(clamped) == ny + 1
        assert len(right) == ny + 1
        assert np.allclose(mesh.VX[clamped], 0.0)
        assert np.allclose(mesh.VX[right], 48.0)

    def test_empty_face_set_raises(self):
        mesh = cooks_membrane_mesh(3, 3)
        with pytest.raises(ValueError, match="empty"):
            add_faceset(mesh, "nowhere", lambda x, y: x > 100.0)

    def test_unknown_face_set(self):
        mesh = cooks_membrane_mesh(3, 3)
        with pytest.raises(KeyError, match="available"):
            mesh.get_faceset("top")

    def test_from_meshio_tagged_lines(self):
        """gmsh physical line tags become face sets."""
        points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]])
        cells = [("triangle", np.array([[0, 1, 3], [1, 2, 3]])), ("line", np.array([[3, 0], [1, 2]]))]
        source = meshio.Mesh(
            points,
            cells,
            cell_data={"gmsh:physical": [np.array([10, 10]), np.array([1, 5])]},
            field_data={"left": np.array([1, 1]), "domain": np.array([10, 2])},
        )

        mesh = Mesh2d.from_meshio(source)

        assert mesh.noelms == 2
        assert np.array_equal(mesh.get_faceset("left"), [[0, 2]])
        assert np.array_equal(mesh.get_faceset("tag_5"), [[1, 0]])

    def test_from_meshio_reorders_clockwise_triangles(self):
        points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0]])
        source = meshio.Mesh(points, [("triangle", np.array([[0, 3, 1], [1, 2, 3]]))])

        mesh = Mesh2d.from_meshio(source)

        assert np.array_equal(mesh.EToV[0], [0, 1, 3])
        assert np.array_equal(mesh.EToV[1], [1, 2, 3])
        assert np.all(mesh.delta > 0)
        assert np.isclose(mesh.delta.sum(), 1.0)

    def test_from_meshio_zero_area_triangle(self):
        points = np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0], [2.0, 2.0, 0.0]])
        source = meshio.Mesh(points, [("triangle", np.array([[0, 1, 2]]))])
        with pytest.raises(ValueError, match="zero-area"):
            Mesh2d.from_meshio(source)

    def test_from_meshio_without_triangles(self):
        source = meshio.Mesh(np.zeros((2, 3)), [("line", np.array([[0, 1]]))])
        with pytest.raises(ValueError, match="No triangle"):
            Mesh2d.from_meshio(source)


@pytest.fixture
def system():
    mesh = cooks_membrane_mesh(4, 4)
    dofs = DofLayout(mesh)
    material = MaterialParameters.from_young_poisson(1.0, 0.3)
    K, f = assemble_mixed_system(mesh, dofs, material, (0.0, 1 / 16), "right")
    return mesh, dofs, K, f


def _reduced_solution(K, f, constraints):
    """Eliminate the constrained DOFs and solve the remaining system densely."""
    K = K.toarray()
    n = len(f)
    d, v = constraints.dofs, constraints.values
    free = np.setdiff1d(np.arange(n), d)
    u = np.zeros(n)
    u[d] = v
    u[free] = np.linalg.solve(K[np.ix_(free, free)], f[free] - K[np.ix_(free, d)] @ v)
    return u


class TestConstraints:
    """Symmetric application of prescribed DOF values."""

    def test_dirichlet_dofs(self, system):
        mesh, dofs, _, _ = system
        constraints = dirichlet_constraints(mesh, dofs, "clamped")
        assert len(constraints) == 2 * (4 + 1)
        assert np.all(np.isin(constraints.dofs, dofs.field_dofs("u")))
        assert np.all(np.diff(constraints.dofs) > 0)

    def test_single_component(self, system):
        mesh, dofs, _, _ = system
        constraints = dirichlet_constraints(mesh, dofs, "clamped", components=(1,), value=0.5)
        nodes = faceset_nodes(mesh, "clamped")
        assert np.array_equal(constraints.dofs, np.sort(dofs.node_dofs("u")[nodes, 1]))
        assert np.allclose(constraints.values, 0.5)

    def test_duplicate_dofs_rejected(self):
        with pytest.raises(ValueError, match="unique"):
            ConstraintSet(dofs=np.array([3, 3]), values=np.zeros(2))

    def test_symmetry_and_diagonal(self, system):
        mesh, dofs, K, f = system
        constraints = dirichlet_constraints(mesh, dofs, "clamped")
        K_c, f_c = apply_constraints(K, f, constraints, layout=dofs)

        m = np.mean(np.abs(K.diagonal()))
        dense = K_c.toarray()
        assert np.array_equal(dense, dense.T)
        for d in constraints.dofs:
            assert dense[d, d] == m
            assert np.count_nonzero(dense[d]) == 1
            assert np.count_nonzero(dense[:, d]) == 1
        assert np.allclose(f_c[constraints.dofs], 0.0)

    def test_inputs_not_modified(self, system):
        mesh, dofs, K, f = system
        K_before, f_before = K.toarray(), f.copy()
        apply_constraints(K, f, dirichlet_constraints(mesh, dofs, "clamped"))
        assert np.array_equal(K.toarray(), K_before)
        assert np.array_equal(f, f_before)

    def test_pressure_dof_rejected(self, system):
        _, dofs, K, f = system
        p = dofs.field_dofs("p")[:1]
        with pytest.raises(ValueError, match="pressure"):
            apply_constraints(K, f, ConstraintSet(dofs=p, values=np.zeros(1)), layout=dofs)

    def test_out_of_range_dof_rejected(self, system):
        _, _, K, f = system
        with pytest.raises(ValueError):
            apply_constraints(K, f, ConstraintSet(dofs=np.array([len(f)]), values=np.zeros(1)))

    @pytest.mark.parametrize("value", [0.0, 0.1])
    def test_matches_reduced_system(self, system, value):
        mesh, dofs, K, f = system
        constraints = dirichlet_constraints(mesh, dofs, "clamped", value=value)
        K_c, f_c = apply_constraints(K, f, constraints, layout=dofs)

        u = np.linalg.solve(K_c.toarray(), f_c)
        u_ref = _reduced_solution(K, f, constraints)
        assert np.allclose(u[constraints.dofs], value)
        assert np.allclose(u, u_ref, rtol=1e-9, atol=1e-12)
