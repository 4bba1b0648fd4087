"""End-to-end behaviour of copy_mirror_merge."""
from __future__ import annotations

import logging

import numpy as np
import pytest

from meshmirror import copy_mirror_merge
from meshmirror.errors import (
    InconsistentSideNumber,
    InvalidAxis,
    InvalidMesh,
    InvalidTolerance,
    UnsupportedTopology,
)
from meshmirror.model.axis import Axis
from meshmirror.model.mesh import Block, MeshModel, SideSet, VariableKind
from meshmirror.model.topology import Topology, element_orientations
from meshmirror.transform.fields import VectorDetectionConfig

from conftest import single_element_mesh


def _axes_for(mesh: MeshModel) -> list[Axis]:
    return list(Axis)[:mesh.num_dim]


# --- Geometry ---

def test_single_hex_with_face_on_plane(single_hex) -> None:
    result = copy_mirror_merge(single_hex, Axis.X, 1e-6)

    assert result.num_nodes == 12
    assert result.num_elements == 2
    for block in result.blocks:
        orientation = element_orientations(result.coordinates, block.connectivity, Topology.HEX8)
        assert np.all(orientation > 0.0)


def test_mirrored_coordinates(unit_mesh) -> None:
    for axis in _axes_for(unit_mesh):
        tolerance = 1e-9
        result = copy_mirror_merge(unit_mesh, axis, tolerance)

        original = unit_mesh.coordinates
        off_plane = np.abs(original[:, axis.index]) > tolerance
        mirrored = result.coordinates[unit_mesh.num_nodes:]

        np.testing.assert_array_equal(result.coordinates[:unit_mesh.num_nodes], original)
        np.testing.assert_array_equal(mirrored[:, axis.index], -original[off_plane, axis.index])
        others = [i for i in range(unit_mesh.num_dim) if i != axis.index]
        np.testing.assert_array_equal(mirrored[:, others], original[off_plane][:, others])


def test_node_count_invariant(unit_mesh) -> None:
    for axis in _axes_for(unit_mesh):
        for tolerance in (0.0, 1e-6, 0.6):
            result = copy_mirror_merge(unit_mesh, axis, tolerance)
            off_plane = np.count_nonzero(np.abs(unit_mesh.coordinates[:, axis.index]) > tolerance)
            assert result.num_nodes == unit_mesh.num_nodes + off_plane


def test_mirrored_elements_keep_orientation(unit_mesh, topology) -> None:
    for axis in _axes_for(unit_mesh):
        result = copy_mirror_merge(unit_mesh, axis, 1e-6)
        original, mirrored = result.blocks
        sign = np.sign(element_orientations(result.coordinates, original.connectivity, topology))
        mirrored_sign = np.sign(element_orientations(result.coordinates, mirrored.connectivity, topology))
        np.testing.assert_array_equal(mirrored_sign, sign)
        assert np.all(mirrored_sign > 0)


def test_mirrored_element_is_reflection_of_source(unit_mesh, topology) -> None:
    for axis in _axes_for(unit_mesh):
        result = copy_mirror_merge(unit_mesh, axis, 1e-6)
        source = result.coordinates[result.blocks[0].connectivity[0]]
        image = result.coordinates[result.blocks[1].connectivity[0]]
        reflected = source.copy()
        reflected[:, axis.index] *= -1.0
        # Same point set, different local order
        assert sorted(map(tuple, image)) == sorted(map(tuple, reflected))


def test_input_is_not_modified(hex_mesh) -> None:
    coordinates = hex_mesh.coordinates.copy()
    connectivity = hex_mesh.blocks[0].connectivity.copy()
    velocity = hex_mesh.get_variable("velocity_x").values.copy()

    copy_mirror_merge(hex_mesh, Axis.X)

    np.testing.assert_array_equal(hex_mesh.coordinates, coordinates)
    np.testing.assert_array_equal(hex_mesh.blocks[0].connectivity, connectivity)
    np.testing.assert_array_equal(hex_mesh.get_variable("velocity_x").values, velocity)
    assert len(hex_mesh.blocks) == 2


def test_output_is_deterministic(hex_mesh) -> None:
    first = copy_mirror_merge(hex_mesh, Axis.X)
    second = copy_mirror_merge(hex_mesh, Axis.X)

    np.testing.assert_array_equal(first.coordinates, second.coordinates)
    for a, b in zip(first.blocks, second.blocks):
        assert (a.id, a.name) == (b.id, b.name)
        np.testing.assert_array_equal(a.connectivity, b.connectivity)
    for a, b in zip(first.variables, second.variables):
        np.testing.assert_array_equal(a.values, b.values)


# --- Blocks and sets ---

def test_blocks_get_mirror_copies(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)

    assert [b.id for b in result.blocks] == [1, 2, 3, 4]
    assert [b.name for b in result.blocks] == ["lower", None, "lower_mirror", "block_2_mirror"]
    assert result.num_nodes == 18 + 12
    assert result.num_elements == 8
    np.testing.assert_array_equal(result.blocks[2].attributes, [[1.0], [2.0]])
    assert result.blocks[2].attribute_names == ["thickness"]
    assert result.blocks[3].topology == "hex"
    result.validate()


def test_block_name_collision_uses_new_id() -> None:
    mesh = single_element_mesh(Topology.QUAD4)
    mesh.blocks.append(Block(id=7, topology="QUAD4", connectivity=[[0, 1, 2, 3]], name="block_1_mirror"))
    result = copy_mirror_merge(mesh, Axis.X)
    assert [b.name for b in result.blocks[2:]] == ["block_1_mirror_8", "block_1_mirror_mirror"]


def test_block_name_collision_fallback_is_unique() -> None:
    mesh = single_element_mesh(Topology.QUAD4)
    mesh.blocks.append(Block(id=7, topology="QUAD4", connectivity=[[0, 1, 2, 3]], name="block_1_mirror"))
    mesh.blocks.append(Block(id=3, topology="QUAD4", connectivity=[[0, 1, 2, 3]], name="block_1_mirror_8"))
    result = copy_mirror_merge(mesh, Axis.X)

    names = [b.name for b in result.blocks]
    assert names[3:] == ["block_1_mirror_8_2", "block_1_mirror_mirror", "block_1_mirror_8_mirror"]
    assert len(set(names[1:])) == len(names) - 1


def test_seam_nodes_are_shared_by_both_halves(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    seam = np.flatnonzero(hex_mesh.coordinates[:, 0] == 0.0)
    mirrored_nodes = np.unique(np.concatenate([b.connectivity.ravel() for b in result.blocks[2:]]))
    assert set(seam) <= set(mirrored_nodes)
    assert not np.any(np.isin(result.blocks[0].connectivity, np.arange(18, 30)))


def test_node_sets(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    by_name = {ns.display_name: ns for ns in result.node_sets}

    symmetry, far = hex_mesh.node_sets
    # Seam members map to themselves
    np.testing.assert_array_equal(by_name["symmetry_mirror"].nodes, symmetry.nodes)
    mirrored_far = by_name["nodeset_20_mirror"]
    assert np.all(mirrored_far.nodes >= 18)
    np.testing.assert_array_equal(result.coordinates[mirrored_far.nodes, 0], -2.0)
    np.testing.assert_array_equal(mirrored_far.distribution_factors, far.distribution_factors)
    assert [ns.id for ns in result.node_sets] == [10, 20, 21, 22]


def test_side_sets(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    outlet, bottom, outlet_mirror, bottom_mirror = result.side_sets

    assert (outlet_mirror.id, outlet_mirror.name) == (3, "outlet_mirror")
    assert (bottom_mirror.id, bottom_mirror.name) == (4, "sideset_2_mirror")
    np.testing.assert_array_equal(outlet_mirror.elements, [5, 7])
    np.testing.assert_array_equal(outlet_mirror.sides, [4, 4])
    np.testing.assert_array_equal(outlet_mirror.distribution_factors, [1, 4, 3, 2, 5, 8, 7, 6])
    np.testing.assert_array_equal(bottom_mirror.elements, [4, 5])
    np.testing.assert_array_equal(bottom_mirror.sides, [1, 1])
    np.testing.assert_array_equal(bottom_mirror.distribution_factors, [0.5, 0.25])


def test_mirrored_side_is_the_mirrored_face(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    topologies = result.element_topologies()
    connectivity = np.vstack([b.connectivity for b in result.blocks])
    original, mirror = result.side_sets[0], result.side_sets[2]

    for (e0, s0), (e1, s1) in zip(zip(original.elements, original.sides), zip(mirror.elements, mirror.sides)):
        face = result.coordinates[connectivity[e0][list(topologies[e0].sides[s0])]]
        image = result.coordinates[connectivity[e1][list(topologies[e1].sides[s1])]]
        face[:, 0] *= -1.0
        assert sorted(map(tuple, face)) == sorted(map(tuple, image))


def test_element_sets(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    inner, inner_mirror = result.element_sets
    np.testing.assert_array_equal(inner.elements, [0, 2])
    np.testing.assert_array_equal(inner_mirror.elements, [4, 6])
    assert (inner_mirror.id, inner_mirror.name) == (6, "inner_mirror")


# --- Variables ---

def test_vector_sign_law(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    off_plane = hex_mesh.coordinates[:, 0] != 0.0

    for name, flips in (("velocity_x", True), ("velocity_y", False), ("velocity_z", False), ("temperature", False)):
        source = hex_mesh.get_variable(name).values
        values = result.get_variable(name).values
        assert values.shape == (2, 30)
        np.testing.assert_array_equal(values[:, :18], source)
        expected = -source[:, off_plane] if flips else source[:, off_plane]
        np.testing.assert_array_equal(values[:, 18:], expected)


def test_false_positive_guard(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    source = hex_mesh.get_variable("max_x").values
    values = result.get_variable("max_x").values
    assert np.all(values[:, 18:] > 0)
    np.testing.assert_array_equal(values[:, 18:], source[:, hex_mesh.coordinates[:, 0] != 0.0])


def test_element_variables(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X)
    stress = result.get_variable("stress_x").values
    np.testing.assert_array_equal(stress, [[1, 2, 3, 4, -1, -2, -3, -4], [5, 6, 7, 8, -5, -6, -7, -8]])

    pressure = result.get_variable("pressure").values
    np.testing.assert_array_equal(np.isnan(pressure[0]), [False, False, True, True] * 2)
    np.testing.assert_array_equal(pressure[:, 4:6], [[1.0, 1.5], [2.0, 2.5]])


def test_mirror_about_y_leaves_x_components(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.Y)
    off_plane = hex_mesh.coordinates[:, 1] != 0.0
    source = hex_mesh.get_variable("velocity_x").values
    np.testing.assert_array_equal(result.get_variable("velocity_x").values[:, 18:], source[:, off_plane])
    np.testing.assert_array_equal(
        result.get_variable("velocity_y").values[:, 18:],
        -hex_mesh.get_variable("velocity_y").values[:, off_plane],
    )
    np.testing.assert_array_equal(result.get_variable("stress_x").values[:, 4:], [[1, 2, 3, 4], [5, 6, 7, 8]])


def test_scalar_override(hex_mesh) -> None:
    config = VectorDetectionConfig(scalar_fields=["velocity_x"])
    result = copy_mirror_merge(hex_mesh, Axis.X, vector_config=config)
    assert np.all(result.get_variable("velocity_x").values[:, 18:] > 0)


def test_global_variables_copied_with_warning(hex_mesh, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="meshmirror"):
        result = copy_mirror_merge(hex_mesh, Axis.X)
    np.testing.assert_array_equal(result.get_variable("total_mass").values, [[10.0], [10.0]])
    assert "total mass" in caplog.text
    assert result.get_variable("total_mass").kind == VariableKind.GLOBAL
    np.testing.assert_array_equal(result.times, hex_mesh.times)


# --- Combined halves ---

def test_combine_halves_extends_blocks_and_sets(hex_mesh) -> None:
    result = copy_mirror_merge(hex_mesh, Axis.X, combine_halves=True)
    result.validate()

    assert [(b.id, b.name, b.num_elements) for b in result.blocks] == [(1, "lower", 4), (2, None, 4)]
    np.testing.assert_array_equal(result.blocks[0].attributes, [[1.0], [2.0], [1.0], [2.0]])

    symmetry, far = result.node_sets
    # Seam members are not repeated
    np.testing.assert_array_equal(symmetry.nodes, hex_mesh.node_sets[0].nodes)
    assert len(far.nodes) == 12
    assert len(far.distribution_factors) == 12

    outlet = result.side_sets[0]
    # Block 1 holds global elements 0-3 (originals 0, 1; mirrors 2, 3), block 2 holds 4-7
    np.testing.assert_array_equal(outlet.elements, [1, 5, 3, 7])
    np.testing.assert_array_equal(outlet.sides, [2, 2, 4, 4])
    np.testing.assert_array_equal(outlet.distribution_factors, [1, 2, 3, 4, 5, 6, 7, 8, 1, 4, 3, 2, 5, 8, 7, 6])

    np.testing.assert_array_equal(result.element_sets[0].elements, [0, 4, 2, 6])

    stress = result.get_variable("stress_x").values
    np.testing.assert_array_equal(stress[0], [1, 2, -1, -2, 3, 4, -3, -4])


# --- 2-D ---

def test_quad_mesh_about_x(quad_mesh) -> None:
    result = copy_mirror_merge(quad_mesh, "x")

    assert result.num_dim == 2
    assert result.num_nodes == 10
    assert result.num_elements == 4
    np.testing.assert_array_equal(result.get_variable("u").values[0, 6:], [-1.0, -2.0, -1.0, -2.0])
    np.testing.assert_array_equal(result.get_variable("v").values[0, 6:], [0.0, 0.0, 1.0, 1.0])
    bottom_mirror = result.side_sets[1]
    np.testing.assert_array_equal(bottom_mirror.sides, [1, 1])


def test_quad_mesh_about_y(quad_mesh) -> None:
    result = copy_mirror_merge(quad_mesh, Axis.Y)
    assert result.num_nodes == 9
    np.testing.assert_array_equal(result.side_sets[1].sides, [3, 3])
    np.testing.assert_array_equal(result.node_sets[1].nodes, [0, 6])


# --- Failures ---

def test_z_axis_on_2d_mesh(quad_mesh) -> None:
    with pytest.raises(InvalidAxis):
        copy_mirror_merge(quad_mesh, Axis.Z)


def test_invalid_axis_name(hex_mesh) -> None:
    with pytest.raises(InvalidAxis):
        copy_mirror_merge(hex_mesh, "r")


def test_negative_tolerance(hex_mesh) -> None:
    with pytest.raises(InvalidTolerance):
        copy_mirror_merge(hex_mesh, Axis.X, -1.0)


def test_unsupported_topology(hex_mesh) -> None:
    hex_mesh.blocks.append(Block(id=9, topology="HEX20", connectivity=np.zeros((1, 20), dtype=np.int64)))
    with pytest.raises(UnsupportedTopology) as excinfo:
        copy_mirror_merge(hex_mesh, Axis.X)
    assert excinfo.value.block_id == 9
    assert excinfo.value.topology == "HEX20"
    assert "HEX20" in str(excinfo.value)


def test_inconsistent_side_number(hex_mesh) -> None:
    hex_mesh.side_sets.append(SideSet(id=9, elements=[2], sides=[7]))
    with pytest.raises(InconsistentSideNumber) as excinfo:
        copy_mirror_merge(hex_mesh, Axis.X)
    assert (excinfo.value.element_id, excinfo.value.side) == (2, 7)


@pytest.mark.parametrize("side", [0, -1])
def test_non_positive_side_number(hex_mesh, side) -> None:
    hex_mesh.side_sets.append(SideSet(id=9, elements=[2], sides=[side]))
    with pytest.raises(InconsistentSideNumber) as excinfo:
        copy_mirror_merge(hex_mesh, Axis.X)
    assert (excinfo.value.element_id, excinfo.value.side) == (2, side)


def test_out_of_range_reference(hex_mesh) -> None:
    hex_mesh.element_sets[0].elements = np.array([0, 4])
    with pytest.raises(InvalidMesh):
        copy_mirror_merge(hex_mesh, Axis.X)


def test_mesh_without_blocks() -> None:
    mesh = MeshModel(num_dim=3, coordinates=np.zeros((1, 3)))
    with pytest.raises(InvalidMesh, match="No element blocks"):
        copy_mirror_merge(mesh, Axis.X)


def test_memory_warning_does_not_block(hex_mesh, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="meshmirror"):
        result = copy_mirror_merge(hex_mesh, Axis.X, memory_threshold=1)
    assert "warning threshold" in caplog.text
    assert result.num_elements == 8
