"""
Copy-mirror-merge: rebuild a full model from one symmetric half.
"""
from __future__ import annotations

import logging
from typing import Optional

from meshmirror.config import DEFAULT_MERGE_TOLERANCE
from meshmirror.errors import InvalidMesh, UnsupportedTopology
from meshmirror.model.axis import Axis
from meshmirror.model.mesh import MeshModel
from meshmirror.transform.builder import MirrorBuilder
from meshmirror.transform.fields import VectorDetectionConfig, VectorFieldClassifier
from meshmirror.transform.memory import MemoryBudgetAdvisor
from meshmirror.transform.sides import TopologySideMapper
from meshmirror.transform.symmetry import check_axis, detect_seam

logger = logging.getLogger(__name__)


def validate_for_mirror(mesh: MeshModel, axis: Axis) -> None:
    """
    Run every fatal check before any output is built.

    Raises:
        InvalidMesh: If the mesh has no blocks or breaks a structural invariant.
        UnsupportedTopology: For the first block with an unsupported element type.
        InconsistentSideNumber: For the first side-set entry with an invalid side.
    """
    if not mesh.blocks:
        raise InvalidMesh("No element blocks found in mesh.")
    for block in mesh.blocks:
        if block.resolved_topology is None:
            raise UnsupportedTopology(block.id, block.topology)

    mesh.validate()

    mapper = TopologySideMapper(axis)
    element_topologies = mesh.element_topologies()
    for side_set in mesh.side_sets:
        mapper.check_sides(side_set, element_topologies)


def copy_mirror_merge(
    mesh: MeshModel,
    axis: Axis | str,
    tolerance: float = DEFAULT_MERGE_TOLERANCE,
    vector_config: Optional[VectorDetectionConfig] = None,
    *,
    combine_halves: bool = False,
    memory_threshold: Optional[int] = None,
    show_progress: bool = False,
) -> MeshModel:
    """
    Mirror a half model about the plane ``coord[axis] == 0`` and merge both halves.

    Nodes within ``tolerance`` of the plane are shared by both halves; every
    other node, every element, every set entry and every field value gets a
    mirrored copy. The input mesh is not modified.

    Args:
        mesh: The half model.
        axis: Axis normal to the symmetry plane ("x", "y", "z" or an Axis).
        tolerance: Distance from the plane within which nodes are merged.
        vector_config: Overrides for vector field detection.
        combine_halves: Keep the mirrored elements and set entries in the
            original blocks and sets instead of new ``_mirror`` ones.
        memory_threshold: Bytes above which the memory estimate is logged as
            a warning; defaults to the configured threshold.
        show_progress: Show a progress bar while copying variables.

    Returns:
        The merged full model.

    Raises:
        InvalidAxis: If the axis is unknown or not present on the mesh.
        InvalidTolerance: If the tolerance is negative or not finite.
        InvalidMesh: If the mesh is structurally invalid.
        UnsupportedTopology: If a block has an element type that cannot be mirrored.
        InconsistentSideNumber: If a side set references a side its element does not have.
    """
    axis = check_axis(axis, mesh.num_dim)
    validate_for_mirror(mesh, axis)
    seam = detect_seam(mesh.coordinates, axis, tolerance)

    MemoryBudgetAdvisor(memory_threshold).check(mesh)

    classifier = VectorFieldClassifier(vector_config)
    builder = MirrorBuilder(
        mesh,
        axis,
        seam,
        classifier,
        combine_halves=combine_halves,
        show_progress=show_progress,
    )
    result = builder.build()

    logger.info(f"Copy-mirror-merge complete: {result.summary()}.")
    return result
