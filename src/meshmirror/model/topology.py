r"""
Element Topologies
==================
Closed set of element shapes supported by copy-mirror-merge, together with
the constant per-topology data the mirror needs.

Node and side numbering follow the Exodus II convention:

    HEX8                 WEDGE6               PYRAMID5
        7-------6            5                    4 (apex)
       /|      /|           /|\                  /|\
      4-------5 |          3-+-4                / | \
      | 3-----|-2          | 2 |               3--+--2
      |/      |/           |/ \|               |     |
      0-------1            0---1               0-----1

Sides are 1-based, local nodes 0-based.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING

import numpy as np

from meshmirror.model.axis import Axis

if TYPE_CHECKING:
    import numpy.typing as npt


class Topology(StrEnum):
    HEX8 = "HEX8"
    TET4 = "TET4"
    WEDGE6 = "WEDGE6"
    PYRAMID5 = "PYRAMID5"
    QUAD4 = "QUAD4"
    TRI3 = "TRI3"

    @classmethod
    def from_name(cls, name: str) -> Topology | None:
        """Resolve a topology from an Exodus or meshio element name; None if unsupported."""
        return TOPOLOGY_ALIASES.get(name.strip().upper())

    @property
    def info(self) -> TopologyInfo:
        return TOPOLOGY_INFO[self]

    @property
    def num_nodes(self) -> int:
        return self.info.num_nodes

    @property
    def dimension(self) -> int:
        """Parametric dimension of the element (3 for solids, 2 for faces)."""
        return self.info.dimension

    @property
    def sides(self) -> dict[int, tuple[int, ...]]:
        return self.info.sides

    @property
    def meshio_type(self) -> str:
        return self.info.meshio_type


@dataclass(frozen=True)
class TopologyInfo:
    """
    Constant description of one topology.

    Attributes:
        num_nodes: Nodes per element.
        dimension: Parametric dimension.
        sides: 1-based side number -> ordered local node positions.
        corner: (base vertex, spanning vertices) whose edge vectors give the
            orientation sign at the base corner.
        meshio_type: Cell type name used by meshio.
    """
    num_nodes: int
    dimension: int
    sides: dict[int, tuple[int, ...]]
    corner: tuple[int, tuple[int, ...]]
    meshio_type: str


TOPOLOGY_INFO: dict[Topology, TopologyInfo] = {
    Topology.HEX8: TopologyInfo(
        num_nodes=8,
        dimension=3,
        sides={
            1: (0, 1, 5, 4),  # -Y
            2: (1, 2, 6, 5),  # +X
            3: (2, 3, 7, 6),  # +Y
            4: (0, 4, 7, 3),  # -X
            5: (0, 3, 2, 1),  # -Z
            6: (4, 5, 6, 7),  # +Z
        },
        corner=(0, (1, 3, 4)),
        meshio_type="hexahedron",
    ),
    Topology.TET4: TopologyInfo(
        num_nodes=4,
        dimension=3,
        sides={
            1: (0, 1, 3),
            2: (1, 2, 3),
            3: (0, 3, 2),
            4: (0, 2, 1),
        },
        corner=(0, (1, 2, 3)),
        meshio_type="tetra",
    ),
    Topology.WEDGE6: TopologyInfo(
        num_nodes=6,
        dimension=3,
        sides={
            1: (0, 1, 4, 3),
            2: (1, 2, 5, 4),
            3: (0, 3, 5, 2),
            4: (0, 2, 1),
            5: (3, 4, 5),
        },
        corner=(0, (1, 2, 3)),
        meshio_type="wedge",
    ),
    Topology.PYRAMID5: TopologyInfo(
        num_nodes=5,
        dimension=3,
        sides={
            1: (0, 1, 4),
            2: (1, 2, 4),
            3: (2, 3, 4),
            4: (0, 4, 3),
            5: (0, 3, 2, 1),
        },
        corner=(0, (1, 3, 4)),
        meshio_type="pyramid",
    ),
    Topology.QUAD4: TopologyInfo(
        num_nodes=4,
        dimension=2,
        sides={
            1: (0, 1),
            2: (1, 2),
            3: (2, 3),
            4: (3, 0),
        },
        corner=(0, (1, 3)),
        meshio_type="quad",
    ),
    Topology.TRI3: TopologyInfo(
        num_nodes=3,
        dimension=2,
        sides={
            1: (0, 1),
            2: (1, 2),
            3: (2, 0),
        },
        corner=(0, (1, 2)),
        meshio_type="triangle",
    ),
}

TOPOLOGY_ALIASES: dict[str, Topology] = {
    "HEX": Topology.HEX8,
    "HEX8": Topology.HEX8,
    "HEXAHEDRON": Topology.HEX8,
    "TET": Topology.TET4,
    "TET4": Topology.TET4,
    "TETRA": Topology.TET4,
    "TETRA4": Topology.TET4,
    "WEDGE": Topology.WEDGE6,
    "WEDGE6": Topology.WEDGE6,
    "PYRAMID": Topology.PYRAMID5,
    "PYRAMID5": Topology.PYRAMID5,
    "QUAD": Topology.QUAD4,
    "QUAD4": Topology.QUAD4,
    "TRI": Topology.TRI3,
    "TRI3": Topology.TRI3,
    "TRIANGLE": Topology.TRI3,
}

# Connectivity permutation applied to a mirrored element: new[i] = old[perm[i]].
# Every entry is a reflection of the reference element, which cancels the
# orientation flip of the geometric mirror.
MIRROR_PERMUTATIONS: dict[Topology, dict[Axis, tuple[int, ...]]] = {
    Topology.HEX8: {
        Axis.X: (1, 0, 3, 2, 5, 4, 7, 6),
        Axis.Y: (3, 2, 1, 0, 7, 6, 5, 4),
        Axis.Z: (4, 5, 6, 7, 0, 1, 2, 3),
    },
    Topology.TET4: {
        Axis.X: (0, 2, 1, 3),
        Axis.Y: (0, 2, 1, 3),
        Axis.Z: (0, 2, 1, 3),
    },
    Topology.WEDGE6: {
        Axis.X: (1, 0, 2, 4, 3, 5),
        Axis.Y: (2, 1, 0, 5, 4, 3),
        Axis.Z: (3, 4, 5, 0, 1, 2),
    },
    Topology.PYRAMID5: {
        Axis.X: (1, 0, 3, 2, 4),
        Axis.Y: (3, 2, 1, 0, 4),
        Axis.Z: (0, 3, 2, 1, 4),
    },
    Topology.QUAD4: {
        Axis.X: (1, 0, 3, 2),
        Axis.Y: (3, 2, 1, 0),
        Axis.Z: (0, 3, 2, 1),
    },
    Topology.TRI3: {
        Axis.X: (1, 0, 2),
        Axis.Y: (2, 1, 0),
        Axis.Z: (0, 2, 1),
    },
}

# Old side -> new side of the mirrored element, consistent with MIRROR_PERMUTATIONS.
SIDE_MAPS: dict[Topology, dict[Axis, dict[int, int]]] = {
    Topology.HEX8: {
        Axis.X: {1: 1, 2: 4, 3: 3, 4: 2, 5: 5, 6: 6},
        Axis.Y: {1: 3, 2: 2, 3: 1, 4: 4, 5: 5, 6: 6},
        Axis.Z: {1: 1, 2: 2, 3: 3, 4: 4, 5: 6, 6: 5},
    },
    Topology.TET4: {
        Axis.X: {1: 3, 2: 2, 3: 1, 4: 4},
        Axis.Y: {1: 3, 2: 2, 3: 1, 4: 4},
        Axis.Z: {1: 3, 2: 2, 3: 1, 4: 4},
    },
    Topology.WEDGE6: {
        Axis.X: {1: 1, 2: 3, 3: 2, 4: 4, 5: 5},
        Axis.Y: {1: 2, 2: 1, 3: 3, 4: 4, 5: 5},
        Axis.Z: {1: 1, 2: 2, 3: 3, 4: 5, 5: 4},
    },
    Topology.PYRAMID5: {
        Axis.X: {1: 1, 2: 4, 3: 3, 4: 2, 5: 5},
        Axis.Y: {1: 3, 2: 2, 3: 1, 4: 4, 5: 5},
        Axis.Z: {1: 4, 2: 3, 3: 2, 4: 1, 5: 5},
    },
    Topology.QUAD4: {
        Axis.X: {1: 1, 2: 4, 3: 3, 4: 2},
        Axis.Y: {1: 3, 2: 2, 3: 1, 4: 4},
        Axis.Z: {1: 4, 2: 3, 3: 2, 4: 1},
    },
    Topology.TRI3: {
        Axis.X: {1: 1, 2: 3, 3: 2},
        Axis.Y: {1: 2, 2: 1, 3: 3},
        Axis.Z: {1: 3, 2: 2, 3: 1},
    },
}


def mirror_permutation(topology: Topology, axis: Axis) -> tuple[int, ...]:
    """Return the connectivity permutation for a mirrored element."""
    return MIRROR_PERMUTATIONS[topology][axis]


def side_map(topology: Topology, axis: Axis) -> dict[int, int]:
    """Return the old -> new side number table for a mirrored element."""
    return SIDE_MAPS[topology][axis]


@cache
def face_factor_permutation(topology: Topology, axis: Axis, side: int) -> tuple[int, ...]:
    """
    Reorder the per-node values of a side so they follow the mirrored face.

    A side set can carry one distribution factor per face node, listed in the
    face's canonical node order. After mirroring, the same physical face is a
    different local side whose canonical order starts elsewhere. The returned
    tuple ``p`` gives the new factor list as ``[old[p[0]], old[p[1]], ...]``.

    Args:
        topology: Element topology.
        axis: Mirror axis.
        side: Original 1-based side number.

    Returns:
        Positions into the original face's factor list.
    """
    perm = mirror_permutation(topology, axis)
    old_face = topology.sides[side]
    new_face = topology.sides[side_map(topology, axis)[side]]
    return tuple(old_face.index(perm[local]) for local in new_face)


def element_orientations(
    coordinates: npt.NDArray[np.float64],
    connectivity: npt.NDArray[np.int64],
    topology: Topology,
) -> npt.NDArray[np.float64]:
    """
    Signed corner Jacobian determinant of every element.

    Uses the edge vectors from the topology's base corner, so the value is the
    signed volume (3-D) or signed area (2-D) of the corner simplex, scaled.
    Positive values mean the element follows the right-hand convention.

    Args:
        coordinates: Node coordinates, shape (num_nodes, num_dim).
        connectivity: Element connectivity, shape (num_elements, nodes_per_element).
        topology: Topology of every element in ``connectivity``.

    Returns:
        One signed value per element.
    """
    base, spanning = topology.info.corner
    if coordinates.shape[1] != topology.dimension:
        raise ValueError(
            f"Orientation of {topology} elements needs {topology.dimension}-D coordinates, "
            f"got {coordinates.shape[1]}-D."
        )

    base_coords = coordinates[connectivity[:, base]]
    # (num_elements, dim, dim): one spanning vector per row
    edges = np.stack([coordinates[connectivity[:, s]] - base_coords for s in spanning], axis=1)
    return np.linalg.det(edges)
