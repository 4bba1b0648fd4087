"""
Mesh Model
==========
In-memory representation of a finite-element mesh with its sets and results.

Why is this file needed?
------------------------
1. Single source of truth: The transform reads one MeshModel and returns a
   new one; file formats are converted to and from this model at the I/O
   boundary only.
2. Validation: Structural invariants (reference ranges, array shapes) are
   checked here once instead of inside every algorithm.

Classes:
    Block: Elements of one topology.
    NodeSet, SideSet, ElementSet: Named entity groups.
    Variable: Time-dependent result field.
    MeshModel: The main container class.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Optional

import numpy as np

from meshmirror.errors import InvalidMesh
from meshmirror.model.topology import Topology

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


def _as_float_array(values, ndim: int) -> npt.NDArray[np.float64]:
    array = np.asarray(values, dtype=np.float64)
    if array.ndim != ndim:
        raise InvalidMesh(f"Expected a {ndim}-D array, got shape {array.shape}.")
    return array


def _as_index_array(values) -> npt.NDArray[np.int64]:
    return np.asarray(values, dtype=np.int64).reshape(-1)


def _as_optional_factors(values) -> Optional[npt.NDArray[np.float64]]:
    if values is None:
        return None
    return np.asarray(values, dtype=np.float64).reshape(-1)


@dataclass
class Block:
    """
    A group of elements sharing one topology.

    Attributes:
        id: Block identifier, unique among blocks.
        topology: Element type name as found in the source file (e.g. "HEX8").
        connectivity: 0-based node indices, shape (num_elements, nodes_per_element).
        name: Optional block name.
        attributes: Optional per-element attributes, shape (num_elements, num_attributes).
        attribute_names: Optional names of the attribute columns.
    """
    id: int
    topology: str
    connectivity: npt.NDArray[np.int64]
    name: Optional[str] = None
    attributes: Optional[npt.NDArray[np.float64]] = None
    attribute_names: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.connectivity = np.asarray(self.connectivity, dtype=np.int64)
        if self.connectivity.ndim == 1 and self.connectivity.size == 0:
            self.connectivity = self.connectivity.reshape(0, 0)
        if self.connectivity.ndim != 2:
            raise InvalidMesh(
                f"Block {self.id}: connectivity must be 2-D, got shape {self.connectivity.shape}."
            )
        if self.attributes is not None:
            self.attributes = np.asarray(self.attributes, dtype=np.float64)
            if self.attributes.ndim == 1:
                self.attributes = self.attributes.reshape(-1, 1)

    @property
    def num_elements(self) -> int:
        return self.connectivity.shape[0]

    @property
    def nodes_per_element(self) -> int:
        return self.connectivity.shape[1]

    @property
    def resolved_topology(self) -> Optional[Topology]:
        """The supported topology for this block, or None if unsupported."""
        return Topology.from_name(self.topology)

    @property
    def display_name(self) -> str:
        return self.name or f"block_{self.id}"


@dataclass
class NodeSet:
    id: int
    nodes: npt.NDArray[np.int64]
    distribution_factors: Optional[npt.NDArray[np.float64]] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        self.nodes = _as_index_array(self.nodes)
        self.distribution_factors = _as_optional_factors(self.distribution_factors)

    @property
    def display_name(self) -> str:
        return self.name or f"nodeset_{self.id}"


@dataclass
class SideSet:
    """
    Element faces, given as (element, side) pairs.

    Distribution factors are either one per member, or one per face node with
    each face's values listed in the face's canonical node order.
    """
    id: int
    elements: npt.NDArray[np.int64]
    sides: npt.NDArray[np.int64]
    distribution_factors: Optional[npt.NDArray[np.float64]] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        self.elements = _as_index_array(self.elements)
        self.sides = _as_index_array(self.sides)
        self.distribution_factors = _as_optional_factors(self.distribution_factors)
        if len(self.elements) != len(self.sides):
            raise InvalidMesh(
                f"Side set {self.id}: {len(self.elements)} elements but {len(self.sides)} sides."
            )

    @property
    def display_name(self) -> str:
        return self.name or f"sideset_{self.id}"


@dataclass
class ElementSet:
    id: int
    elements: npt.NDArray[np.int64]
    distribution_factors: Optional[npt.NDArray[np.float64]] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        self.elements = _as_index_array(self.elements)
        self.distribution_factors = _as_optional_factors(self.distribution_factors)

    @property
    def display_name(self) -> str:
        return self.name or f"elemset_{self.id}"


class VariableKind(StrEnum):
    NODAL = "nodal"
    ELEMENTAL = "elemental"
    GLOBAL = "global"


@dataclass
class Variable:
    """
    A result field sampled at every time step.

    ``values`` has shape (num_time_steps, num_entities). Elemental variables
    are indexed by global element index and hold NaN where undefined.
    """
    name: str
    kind: VariableKind
    values: npt.NDArray[np.float64]

    def __post_init__(self) -> None:
        self.kind = VariableKind(self.kind)
        self.values = _as_float_array(self.values, ndim=2)


@dataclass
class MeshModel:
    """
    Complete mesh: geometry, element blocks, sets and result variables.

    The model is treated as immutable by the transform; every operation
    returns a new instance.
    """
    num_dim: int
    coordinates: npt.NDArray[np.float64]
    blocks: list[Block] = field(default_factory=list)
    node_sets: list[NodeSet] = field(default_factory=list)
    side_sets: list[SideSet] = field(default_factory=list)
    element_sets: list[ElementSet] = field(default_factory=list)
    variables: list[Variable] = field(default_factory=list)
    times: npt.NDArray[np.float64] = field(default_factory=lambda: np.empty(0, dtype=np.float64))
    title: str = ""

    def __post_init__(self) -> None:
        if self.num_dim not in (2, 3):
            raise InvalidMesh(f"num_dim must be 2 or 3, got {self.num_dim}.")
        coordinates = np.asarray(self.coordinates, dtype=np.float64)
        if coordinates.size == 0:
            coordinates = coordinates.reshape(0, self.num_dim)
        if coordinates.ndim != 2 or coordinates.shape[1] != self.num_dim:
            raise InvalidMesh(
                f"Coordinates must have shape (num_nodes, {self.num_dim}), got {coordinates.shape}."
            )
        self.coordinates = coordinates
        self.times = np.asarray(self.times, dtype=np.float64).reshape(-1)

    # --- Derived sizes ---

    @property
    def num_nodes(self) -> int:
        return self.coordinates.shape[0]

    @property
    def num_elements(self) -> int:
        return sum(block.num_elements for block in self.blocks)

    @property
    def num_time_steps(self) -> int:
        return len(self.times)

    @property
    def block_offsets(self) -> npt.NDArray[np.int64]:
        """Global index of the first element of every block."""
        counts = np.array([block.num_elements for block in self.blocks], dtype=np.int64)
        return np.cumsum(counts) - counts

    def element_topologies(self) -> list[Optional[Topology]]:
        """Resolved topology of every element, by global index."""
        result: list[Optional[Topology]] = []
        for block in self.blocks:
            result.extend([block.resolved_topology] * block.num_elements)
        return result

    def block_of_elements(self, elements: npt.NDArray[np.int64]) -> npt.NDArray[np.int64]:
        """Position in ``blocks`` of the block owning each global element index."""
        ends = np.cumsum([block.num_elements for block in self.blocks], dtype=np.int64)
        return np.searchsorted(ends, elements, side="right")

    # --- Variables ---

    def _variables_of(self, kind: VariableKind) -> list[Variable]:
        return [var for var in self.variables if var.kind == kind]

    @property
    def nodal_variables(self) -> list[Variable]:
        return self._variables_of(VariableKind.NODAL)

    @property
    def element_variables(self) -> list[Variable]:
        return self._variables_of(VariableKind.ELEMENTAL)

    @property
    def global_variables(self) -> list[Variable]:
        return self._variables_of(VariableKind.GLOBAL)

    def get_variable(self, name: str, kind: Optional[VariableKind] = None) -> Variable:
        for var in self.variables:
            if var.name == name and (kind is None or var.kind == kind):
                return var
        raise KeyError(f"No variable named '{name}'.")

    def _entity_count(self, kind: VariableKind) -> int:
        if kind == VariableKind.NODAL:
            return self.num_nodes
        if kind == VariableKind.ELEMENTAL:
            return self.num_elements
        return 1

    # --- Validation ---

    def validate(self) -> None:
        """
        Check the structural invariants of the model.

        Side numbers are not checked here; they depend on the element
        topology, which may be unsupported and is reported by the transform.

        Raises:
            InvalidMesh: If any reference is out of range or an array has the wrong shape.
        """
        num_nodes = self.num_nodes
        num_elements = self.num_elements

        block_ids = [block.id for block in self.blocks]
        if len(set(block_ids)) != len(block_ids):
            raise InvalidMesh(f"Duplicate block ids: {block_ids}.")

        for block in self.blocks:
            topology = block.resolved_topology
            if block.num_elements == 0:
                continue
            if topology is not None and block.nodes_per_element != topology.num_nodes:
                raise InvalidMesh(
                    f"Block {block.id}: {topology} needs {topology.num_nodes} nodes per element, "
                    f"got {block.nodes_per_element}."
                )
            if block.connectivity.min() < 0 or block.connectivity.max() >= num_nodes:
                raise InvalidMesh(f"Block {block.id}: connectivity references a node outside 0..{num_nodes - 1}.")
            if block.attributes is not None and len(block.attributes) != block.num_elements:
                raise InvalidMesh(f"Block {block.id}: attribute rows do not match the element count.")

        for node_set in self.node_sets:
            self._check_range(node_set.nodes, num_nodes, f"Node set {node_set.id}", "node")
            self._check_factors(node_set.distribution_factors, len(node_set.nodes), f"Node set {node_set.id}")

        for element_set in self.element_sets:
            self._check_range(element_set.elements, num_elements, f"Element set {element_set.id}", "element")
            self._check_factors(
                element_set.distribution_factors, len(element_set.elements), f"Element set {element_set.id}"
            )

        for side_set in self.side_sets:
            self._check_range(side_set.elements, num_elements, f"Side set {side_set.id}", "element")

        num_steps = self.num_time_steps
        for var in self.variables:
            expected = (num_steps, self._entity_count(var.kind))
            if var.values.shape != expected:
                raise InvalidMesh(
                    f"Variable '{var.name}' ({var.kind}): expected shape {expected}, got {var.values.shape}."
                )

    @staticmethod
    def _check_range(indices: npt.NDArray[np.int64], count: int, owner: str, entity: str) -> None:
        if indices.size and (indices.min() < 0 or indices.max() >= count):
            raise InvalidMesh(f"{owner}: references a {entity} outside 0..{count - 1}.")

    @staticmethod
    def _check_factors(factors: Optional[npt.NDArray[np.float64]], count: int, owner: str) -> None:
        if factors is not None and len(factors) != count:
            raise InvalidMesh(f"{owner}: expected {count} distribution factors, got {len(factors)}.")

    # --- Copies ---

    def with_zero_time(self) -> MeshModel:
        """Return a copy whose first time value is 0; later time values are unchanged."""
        if self.num_time_steps == 0:
            logger.warning("Mesh has no time steps, --zero-time has no effect.")
            return replace(self)
        times = self.times.copy()
        logger.info(f"Setting first time value {times[0]} to 0.")
        times[0] = 0.0
        return replace(self, times=times)

    def summary(self) -> str:
        return (
            f"{self.num_dim}-D mesh: {self.num_nodes} nodes, {self.num_elements} elements, "
            f"{len(self.blocks)} blocks, {len(self.node_sets)} node sets, "
            f"{len(self.side_sets)} side sets, {len(self.element_sets)} element sets, "
            f"{len(self.variables)} variables, {self.num_time_steps} time steps"
        )
