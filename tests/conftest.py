from __future__ import annotations

import logging

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from meshmirror.model.mesh import (
    Block,
    ElementSet,
    MeshModel,
    NodeSet,
    SideSet,
    Variable,
    VariableKind,
)
from meshmirror.model.topology import Topology

# Reference elements with node 0 at the origin, positively oriented
UNIT_ELEMENTS: dict[Topology, list[tuple[float, ...]]] = {
    Topology.HEX8: [
        (0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0),
        (0, 0, 1), (1, 0, 1), (1, 1, 1), (0, 1, 1),
    ],
    Topology.TET4: [(0, 0, 0), (1, 0, 0), (0, 1, 0), (0, 0, 1)],
    Topology.WEDGE6: [(0, 0, 0), (1, 0, 0), (0, 1, 0), (0, 0, 1), (1, 0, 1), (0, 1, 1)],
    Topology.PYRAMID5: [(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0), (0.5, 0.5, 1)],
    Topology.QUAD4: [(0, 0), (1, 0), (1, 1), (0, 1)],
    Topology.TRI3: [(0, 0), (1, 0), (0, 1)],
}


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Remove handlers attached by setup_logging so they do not outlive a test's captured streams."""
    yield
    logger = logging.getLogger("meshmirror")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)


def single_element_mesh(topology: Topology) -> MeshModel:
    coordinates = np.array(UNIT_ELEMENTS[topology], dtype=np.float64)
    return MeshModel(
        num_dim=coordinates.shape[1],
        coordinates=coordinates,
        blocks=[Block(id=1, topology=str(topology), connectivity=np.arange(topology.num_nodes)[np.newaxis, :])],
    )


@pytest.fixture(params=list(Topology), ids=str)
def topology(request) -> Topology:
    return request.param


@pytest.fixture
def unit_mesh(topology: Topology) -> MeshModel:
    return single_element_mesh(topology)


@pytest.fixture
def single_hex() -> MeshModel:
    return single_element_mesh(Topology.HEX8)


def _grid_index(i: int, j: int, k: int) -> int:
    return i + 3 * j + 9 * k


def _hex_nodes(ei: int, ej: int) -> list[int]:
    bottom = [_grid_index(ei, ej, 0), _grid_index(ei + 1, ej, 0), _grid_index(ei + 1, ej + 1, 0), _grid_index(ei, ej + 1, 0)]
    top = [n + 9 for n in bottom]
    return bottom + top


@pytest.fixture
def hex_mesh() -> MeshModel:
    """
    2 x 2 x 1 HEX8 mesh on [0, 2] x [0, 2] x [0, 1], nodes on a 3 x 3 x 2 grid.

    Block 1 ("lower") holds the elements with y in [0, 1], block 2 (unnamed)
    the ones with y in [1, 2]; global element e = ei + 2 * ej.
    """
    coordinates = np.array(
        [(i, j, k) for k in range(2) for j in range(3) for i in range(3)],
        dtype=np.float64,
    )
    blocks = [
        Block(id=1, topology="HEX8", connectivity=[_hex_nodes(0, 0), _hex_nodes(1, 0)], name="lower",
              attributes=[[1.0], [2.0]], attribute_names=["thickness"]),
        Block(id=2, topology="hex", connectivity=[_hex_nodes(0, 1), _hex_nodes(1, 1)]),
    ]

    seam_face = [n for n in range(18) if coordinates[n, 0] == 0.0]
    far_face = [n for n in range(18) if coordinates[n, 0] == 2.0]
    node_sets = [
        NodeSet(id=10, nodes=seam_face, name="symmetry"),
        NodeSet(id=20, nodes=far_face, distribution_factors=np.linspace(1.0, 2.0, len(far_face))),
    ]
    side_sets = [
        # +X faces of the two outer elements, one factor per face node
        SideSet(id=1, elements=[1, 3], sides=[2, 2], distribution_factors=[1, 2, 3, 4, 5, 6, 7, 8], name="outlet"),
        # -Y face of the lower elements, one factor per member
        SideSet(id=2, elements=[0, 1], sides=[1, 1], distribution_factors=[0.5, 0.25]),
    ]
    element_sets = [ElementSet(id=5, elements=[0, 2], name="inner")]

    num_steps = 2
    node_values = np.vstack([(t + 1) * np.arange(1, 19, dtype=np.float64) for t in range(num_steps)])
    element_values = np.array([[1.0, 2.0, 3.0, 4.0], [5.0, 6.0, 7.0, 8.0]])
    pressure = np.array([[1.0, 1.5, np.nan, np.nan], [2.0, 2.5, np.nan, np.nan]])
    variables = [
        Variable("velocity_x", VariableKind.NODAL, node_values),
        Variable("velocity_y", VariableKind.NODAL, 2 * node_values),
        Variable("velocity_z", VariableKind.NODAL, 3 * node_values),
        Variable("temperature", VariableKind.NODAL, node_values + 300.0),
        Variable("max_x", VariableKind.NODAL, node_values),
        Variable("stress_x", VariableKind.ELEMENTAL, element_values),
        Variable("pressure", VariableKind.ELEMENTAL, pressure),
        Variable("total_mass", VariableKind.GLOBAL, [[10.0], [10.0]]),
    ]
    return MeshModel(
        num_dim=3,
        coordinates=coordinates,
        blocks=blocks,
        node_sets=node_sets,
        side_sets=side_sets,
        element_sets=element_sets,
        variables=variables,
        times=[0.5, 1.0],
        title="half model",
    )


@pytest.fixture
def quad_mesh() -> MeshModel:
    """Two QUAD4 elements on [0, 2] x [0, 1]."""
    coordinates = np.array([(0, 0), (1, 0), (2, 0), (0, 1), (1, 1), (2, 1)], dtype=np.float64)
    return MeshModel(
        num_dim=2,
        coordinates=coordinates,
        blocks=[Block(id=1, topology="QUAD4", connectivity=[[0, 1, 4, 3], [1, 2, 5, 4]], name="plate")],
        node_sets=[NodeSet(id=1, nodes=[0, 3], name="left")],
        side_sets=[SideSet(id=1, elements=[0, 1], sides=[1, 1], name="bottom")],
        variables=[
            Variable("u", VariableKind.NODAL, [[0.0, 1.0, 2.0, 0.0, 1.0, 2.0]]),
            Variable("v", VariableKind.NODAL, [[0.0, 0.0, 0.0, 1.0, 1.0, 1.0]]),
        ],
        times=[0.0],
    )
