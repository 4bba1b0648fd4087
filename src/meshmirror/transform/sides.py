"""
Side-set remapping for mirrored elements.

A mirrored element has its nodes permuted, so the local side that covers a
given physical face changes number. The tables live in
``meshmirror.model.topology``; this module applies them to whole side sets.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np

from meshmirror.errors import InconsistentSideNumber, InvalidMesh
from meshmirror.model.axis import Axis
from meshmirror.model.mesh import SideSet
from meshmirror.model.topology import Topology, face_factor_permutation, side_map

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


class TopologySideMapper:
    """
    Maps (topology, side) pairs of original elements to the side numbers of
    their mirrored copies for one mirror axis.
    """

    def __init__(self, axis: Axis) -> None:
        self.axis = axis

    def map_side(self, topology: Topology, side: int, element_id: int = -1) -> int:
        """
        Return the mirrored side number.

        Raises:
            InconsistentSideNumber: If ``side`` does not exist on ``topology``.
        """
        try:
            return side_map(topology, self.axis)[int(side)]
        except KeyError:
            raise InconsistentSideNumber(element_id, int(side), str(topology)) from None

    def check_sides(
        self,
        side_set: SideSet,
        element_topologies: Sequence[Optional[Topology]],
    ) -> None:
        """
        Verify every side number of a side set against its element's topology,
        and the number of distribution factors.

        Raises:
            InconsistentSideNumber: For the first invalid (element, side) pair.
            InvalidMesh: If the factor count fits neither layout.
        """
        num_face_nodes = 0
        for element, side in zip(side_set.elements, side_set.sides):
            topology = element_topologies[element]
            if topology is None or int(side) not in topology.sides:
                raise InconsistentSideNumber(int(element), int(side), str(topology) if topology else None)
            num_face_nodes += len(topology.sides[int(side)])

        factors = side_set.distribution_factors
        if factors is not None and len(factors) not in (len(side_set.elements), num_face_nodes):
            raise InvalidMesh(
                f"Side set {side_set.id}: {len(factors)} distribution factors match neither "
                f"the {len(side_set.elements)} members nor the {num_face_nodes} face nodes."
            )

    def mirror_side_set(
        self,
        side_set: SideSet,
        element_topologies: Sequence[Optional[Topology]],
        mirror_element_map: npt.NDArray[np.int64],
    ) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64], Optional[npt.NDArray[np.float64]]]:
        """
        Elements, sides and distribution factors of the mirrored copy of a side set.

        Args:
            side_set: Side set of the original half.
            element_topologies: Topology of every original element, by global index.
            mirror_element_map: Original element index -> index of its mirrored copy.

        Returns:
            (elements, sides, distribution_factors) of the mirrored entries.
        """
        elements = mirror_element_map[side_set.elements]
        sides = np.array(
            [
                self.map_side(element_topologies[element], side, int(element))
                for element, side in zip(side_set.elements, side_set.sides)
            ],
            dtype=np.int64,
        )
        factors = self._mirror_factors(side_set, element_topologies)
        return elements, sides, factors

    def _mirror_factors(
        self,
        side_set: SideSet,
        element_topologies: Sequence[Optional[Topology]],
    ) -> Optional[npt.NDArray[np.float64]]:
        factors = side_set.distribution_factors
        if factors is None:
            return None
        num_members = len(side_set.elements)
        if len(factors) == num_members:
            return factors.copy()

        face_sizes = [
            len(element_topologies[element].sides[int(side)])
            for element, side in zip(side_set.elements, side_set.sides)
        ]
        if len(factors) != sum(face_sizes):
            raise InvalidMesh(
                f"Side set {side_set.id}: {len(factors)} distribution factors match neither "
                f"the {num_members} members nor the {sum(face_sizes)} face nodes."
            )

        # One factor per face node: follow the mirrored face's node order
        mirrored = np.empty_like(factors)
        start = 0
        for element, side, size in zip(side_set.elements, side_set.sides, face_sizes):
            order = face_factor_permutation(element_topologies[element], self.axis, int(side))
            mirrored[start:start + size] = factors[start:start + size][list(order)]
            start += size
        return mirrored
