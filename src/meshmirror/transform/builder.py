"""
Mirror Builder
==============
Assembles the merged mesh from the original half and its reflection.

Why is this file needed?
------------------------
The mirrored half is never stored on its own. Every part of the output
(coordinates, blocks, sets, variables) is built directly in merged form from
two index maps:

* ``node_map``: original node -> its mirror image (itself on the seam).
* ``original_element_map`` / ``mirror_element_map``: original element ->
  its position in the output, for the original and for the mirrored copy.

Classes:
    MirrorBuilder: Builds one merged MeshModel.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import numpy as np
from tqdm.auto import tqdm

from meshmirror.config import MIRROR_SUFFIX
from meshmirror.model.axis import Axis
from meshmirror.model.mesh import (
    Block,
    ElementSet,
    MeshModel,
    NodeSet,
    SideSet,
    Variable,
    VariableKind,
)
from meshmirror.model.topology import element_orientations, mirror_permutation
from meshmirror.transform.fields import VectorFieldClassifier, mirror_values
from meshmirror.transform.sides import TopologySideMapper
from meshmirror.transform.symmetry import build_node_map, mirror_coordinates

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


def _mirror_name(base: str, taken: set[str], new_id: int) -> str:
    name = f"{base}{MIRROR_SUFFIX}"
    if name in taken:
        candidate = f"{name}_{new_id}"
        suffix = 2
        while candidate in taken:
            candidate = f"{name}_{new_id}_{suffix}"
            suffix += 1
        name = candidate
    taken.add(name)
    return name


class MirrorBuilder:
    """
    Builds the merged mesh for one mirror operation.

    All inputs must already be validated: every block topology is supported,
    every side number exists, the axis exists on the mesh.

    Args:
        mesh: The original half.
        axis: Mirror axis.
        seam: Boolean mask of nodes on the symmetry plane.
        classifier: Vector field classifier for the variables.
        combine_halves: Put mirrored elements into the original blocks and
            sets instead of separate ``_mirror`` blocks and sets.
        show_progress: Show a progress bar while copying variables.
    """

    def __init__(
        self,
        mesh: MeshModel,
        axis: Axis,
        seam: npt.NDArray[np.bool_],
        classifier: VectorFieldClassifier,
        combine_halves: bool = False,
        show_progress: bool = False,
    ) -> None:
        self.mesh = mesh
        self.axis = axis
        self.seam = seam
        self.classifier = classifier
        self.combine_halves = combine_halves
        self.show_progress = show_progress

        self.side_mapper = TopologySideMapper(axis)
        self.node_map = build_node_map(seam)
        self.original_element_map, self.mirror_element_map = self._build_element_maps()
        self.element_topologies = mesh.element_topologies()

    @property
    def num_output_nodes(self) -> int:
        return self.mesh.num_nodes + int(np.count_nonzero(~self.seam))

    @property
    def num_output_elements(self) -> int:
        return 2 * self.mesh.num_elements

    def _build_element_maps(self) -> tuple[npt.NDArray[np.int64], npt.NDArray[np.int64]]:
        num_elements = self.mesh.num_elements
        if not self.combine_halves:
            original = np.arange(num_elements, dtype=np.int64)
            return original, original + num_elements

        # Block b (offset o, size n) becomes [originals | mirrors] at 2*o
        original = np.empty(num_elements, dtype=np.int64)
        mirror = np.empty(num_elements, dtype=np.int64)
        for offset, block in zip(self.mesh.block_offsets, self.mesh.blocks):
            local = np.arange(block.num_elements, dtype=np.int64)
            original[offset:offset + block.num_elements] = 2 * offset + local
            mirror[offset:offset + block.num_elements] = 2 * offset + block.num_elements + local
        return original, mirror

    # --- Build ---

    def build(self) -> MeshModel:
        mesh = self.mesh
        logger.info(
            f"Mirroring about {self.axis.upper()}: {mesh.num_nodes} -> {self.num_output_nodes} nodes, "
            f"{mesh.num_elements} -> {self.num_output_elements} elements."
        )

        coordinates = mirror_coordinates(mesh.coordinates, self.seam, self.axis)
        blocks = self._build_blocks(coordinates)
        node_sets = self._build_node_sets()
        side_sets = self._build_side_sets()
        element_sets = self._build_element_sets()
        variables = self._build_variables()

        return MeshModel(
            num_dim=mesh.num_dim,
            coordinates=coordinates,
            blocks=blocks,
            node_sets=node_sets,
            side_sets=side_sets,
            element_sets=element_sets,
            variables=variables,
            times=mesh.times.copy(),
            title=mesh.title,
        )

    # --- Blocks ---

    def mirror_connectivity(self, block: Block) -> npt.NDArray[np.int64]:
        """Connectivity of the mirrored copy of a block, re-wound to keep its orientation."""
        if block.num_elements == 0:
            return block.connectivity.copy()
        perm = list(mirror_permutation(block.resolved_topology, self.axis))
        return self.node_map[block.connectivity[:, perm]]

    def _build_blocks(self, coordinates: npt.NDArray[np.float64]) -> list[Block]:
        mirrored = []
        for block in self.mesh.blocks:
            connectivity = self.mirror_connectivity(block)
            self._check_orientation(block, connectivity, coordinates)
            mirrored.append(connectivity)

        if self.combine_halves:
            return [
                Block(
                    id=block.id,
                    topology=block.topology,
                    connectivity=np.vstack((block.connectivity, connectivity)),
                    name=block.name,
                    attributes=None if block.attributes is None else np.vstack((block.attributes, block.attributes)),
                    attribute_names=list(block.attribute_names),
                )
                for block, connectivity in zip(self.mesh.blocks, mirrored)
            ]

        blocks = [
            Block(
                id=block.id,
                topology=block.topology,
                connectivity=block.connectivity.copy(),
                name=block.name,
                attributes=None if block.attributes is None else block.attributes.copy(),
                attribute_names=list(block.attribute_names),
            )
            for block in self.mesh.blocks
        ]
        taken = {block.name for block in self.mesh.blocks if block.name}
        next_id = max((block.id for block in self.mesh.blocks), default=0) + 1
        for k, (block, connectivity) in enumerate(zip(self.mesh.blocks, mirrored)):
            new_id = next_id + k
            blocks.append(Block(
                id=new_id,
                topology=block.topology,
                connectivity=connectivity,
                name=_mirror_name(block.display_name, taken, new_id),
                attributes=None if block.attributes is None else block.attributes.copy(),
                attribute_names=list(block.attribute_names),
            ))
            logger.debug(f"Block {block.id} ({block.topology}): mirrored as block {new_id}.")
        return blocks

    def _check_orientation(
        self,
        block: Block,
        mirrored: npt.NDArray[np.int64],
        coordinates: npt.NDArray[np.float64],
    ) -> None:
        topology = block.resolved_topology
        if not logger.isEnabledFor(logging.DEBUG) or block.num_elements == 0:
            return
        if topology.dimension != self.mesh.num_dim:
            return
        original_sign = np.sign(element_orientations(coordinates, block.connectivity, topology))
        mirrored_sign = np.sign(element_orientations(coordinates, mirrored, topology))
        flipped = np.flatnonzero(original_sign != mirrored_sign)
        if len(flipped):
            logger.debug(
                f"Block {block.id}: {len(flipped)} mirrored element(s) change orientation sign "
                f"(first local index {flipped[0]})."
            )

    # --- Sets ---

    def _build_node_sets(self) -> list[NodeSet]:
        node_sets = [
            NodeSet(
                id=ns.id,
                nodes=ns.nodes.copy(),
                distribution_factors=None if ns.distribution_factors is None else ns.distribution_factors.copy(),
                name=ns.name,
            )
            for ns in self.mesh.node_sets
        ]

        if self.combine_halves:
            for combined, ns in zip(node_sets, self.mesh.node_sets):
                # Seam members are already in the set
                off_plane = ~self.seam[ns.nodes]
                combined.nodes = np.concatenate((ns.nodes, self.node_map[ns.nodes[off_plane]]))
                if ns.distribution_factors is not None:
                    combined.distribution_factors = np.concatenate(
                        (ns.distribution_factors, ns.distribution_factors[off_plane])
                    )
            return node_sets

        taken = {ns.name for ns in self.mesh.node_sets if ns.name}
        next_id = max((ns.id for ns in self.mesh.node_sets), default=0) + 1
        for k, ns in enumerate(self.mesh.node_sets):
            new_id = next_id + k
            node_sets.append(NodeSet(
                id=new_id,
                nodes=self.node_map[ns.nodes],
                distribution_factors=None if ns.distribution_factors is None else ns.distribution_factors.copy(),
                name=_mirror_name(ns.display_name, taken, new_id),
            ))
        return node_sets

    def _build_side_sets(self) -> list[SideSet]:
        side_sets = []
        mirrored_sets = []
        for ss in self.mesh.side_sets:
            elements, sides, factors = self.side_mapper.mirror_side_set(
                ss, self.element_topologies, self.mirror_element_map
            )
            mirrored_sets.append((ss, elements, sides, factors))
            side_sets.append(SideSet(
                id=ss.id,
                elements=self.original_element_map[ss.elements],
                sides=ss.sides.copy(),
                distribution_factors=None if ss.distribution_factors is None else ss.distribution_factors.copy(),
                name=ss.name,
            ))

        if self.combine_halves:
            for combined, (ss, elements, sides, factors) in zip(side_sets, mirrored_sets):
                combined.elements = np.concatenate((combined.elements, elements))
                combined.sides = np.concatenate((combined.sides, sides))
                if factors is not None:
                    combined.distribution_factors = np.concatenate((combined.distribution_factors, factors))
            return side_sets

        taken = {ss.name for ss in self.mesh.side_sets if ss.name}
        next_id = max((ss.id for ss in self.mesh.side_sets), default=0) + 1
        for k, (ss, elements, sides, factors) in enumerate(mirrored_sets):
            new_id = next_id + k
            side_sets.append(SideSet(
                id=new_id,
                elements=elements,
                sides=sides,
                distribution_factors=factors,
                name=_mirror_name(ss.display_name, taken, new_id),
            ))
        return side_sets

    def _build_element_sets(self) -> list[ElementSet]:
        element_sets = []
        for es in self.mesh.element_sets:
            factors = es.distribution_factors
            original = self.original_element_map[es.elements]
            mirrored = self.mirror_element_map[es.elements]
            if self.combine_halves:
                element_sets.append(ElementSet(
                    id=es.id,
                    elements=np.concatenate((original, mirrored)),
                    distribution_factors=None if factors is None else np.concatenate((factors, factors)),
                    name=es.name,
                ))
            else:
                element_sets.append(ElementSet(
                    id=es.id,
                    elements=original,
                    distribution_factors=None if factors is None else factors.copy(),
                    name=es.name,
                ))

        if self.combine_halves:
            return element_sets

        taken = {es.name for es in self.mesh.element_sets if es.name}
        next_id = max((es.id for es in self.mesh.element_sets), default=0) + 1
        for k, es in enumerate(self.mesh.element_sets):
            new_id = next_id + k
            element_sets.append(ElementSet(
                id=new_id,
                elements=self.mirror_element_map[es.elements],
                distribution_factors=None if es.distribution_factors is None else es.distribution_factors.copy(),
                name=_mirror_name(es.display_name, taken, new_id),
            ))
        return element_sets

    # --- Variables ---

    def _build_variables(self) -> list[Variable]:
        mesh = self.mesh
        # Pass 1: resolve every name once
        field_variables = [var for var in mesh.variables if var.kind != VariableKind.GLOBAL]
        kinds = self.classifier.classify_all([var.name for var in field_variables], mesh.num_dim)
        flipped = [name for name, kind in kinds.items() if kind.flips_under(self.axis)]
        if flipped:
            logger.info(f"Negating {len(flipped)} vector component(s) along {self.axis.upper()}: {', '.join(flipped)}")

        if mesh.global_variables:
            logger.warning(
                f"{len(mesh.global_variables)} global variable(s) copied unchanged; totals over the "
                "whole model (e.g. total mass) may need manual adjustment."
            )

        # Pass 2: apply the resolved kinds to all time steps at once
        variables = []
        off_plane = ~self.seam
        with tqdm(
            total=len(mesh.variables),
            desc="Mirroring variables",
            unit="var",
            disable=not self.show_progress,
        ) as pbar:
            for var in mesh.variables:
                if var.kind == VariableKind.NODAL:
                    mirrored = mirror_values(var.values[:, off_plane], kinds[var.name], self.axis)
                    values = np.hstack((var.values, mirrored))
                elif var.kind == VariableKind.ELEMENTAL:
                    values = np.empty((var.values.shape[0], self.num_output_elements), dtype=np.float64)
                    values[:, self.original_element_map] = var.values
                    values[:, self.mirror_element_map] = mirror_values(var.values, kinds[var.name], self.axis)
                else:
                    values = var.values.copy()
                variables.append(Variable(name=var.name, kind=var.kind, values=values))
                pbar.update(1)
        return variables
