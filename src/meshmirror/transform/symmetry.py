"""
Symmetry plane detection and the node-index map of the mirrored half.
"""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

import numpy as np

from meshmirror.errors import InvalidAxis, InvalidTolerance
from meshmirror.model.axis import Axis

if TYPE_CHECKING:
    import numpy.typing as npt

logger = logging.getLogger(__name__)


def check_tolerance(tolerance: float) -> float:
    """
    Validate a merge tolerance.

    Raises:
        InvalidTolerance: If the tolerance is negative, NaN or infinite.
    """
    try:
        value = float(tolerance)
    except (TypeError, ValueError) as e:
        raise InvalidTolerance(tolerance) from e
    if not math.isfinite(value) or value < 0.0:
        raise InvalidTolerance(tolerance)
    if value == 0.0:
        logger.warning(
            "Merge tolerance is 0: only nodes exactly on the symmetry plane are merged, "
            "round-off in the input coordinates can leave the halves disconnected."
        )
    return value


def check_axis(axis: Axis | str, num_dim: int) -> Axis:
    """Resolve the axis and make sure the mesh has that coordinate."""
    axis = Axis.parse(axis)
    if axis.index >= num_dim:
        raise InvalidAxis(axis, f"Cannot mirror about {axis.upper()} on a {num_dim}-D mesh.")
    return axis


def detect_seam(
    coordinates: npt.NDArray[np.float64],
    axis: Axis | str,
    tolerance: float,
) -> npt.NDArray[np.bool_]:
    """
    Find the nodes lying on the symmetry plane ``coord[axis] == 0``.

    Args:
        coordinates: Node coordinates, shape (num_nodes, num_dim).
        axis: Axis normal to the symmetry plane.
        tolerance: Maximum distance from the plane, inclusive.

    Returns:
        Boolean mask, True for seam nodes.
    """
    tolerance = check_tolerance(tolerance)
    axis = check_axis(axis, coordinates.shape[1])

    seam = np.abs(coordinates[:, axis.index]) <= tolerance
    num_seam = int(np.count_nonzero(seam))
    logger.info(f"Found {num_seam} nodes on the symmetry plane ({axis.upper()}=0, tolerance {tolerance}).")
    if num_seam == 0 and len(coordinates):
        logger.warning(
            f"No nodes found on the symmetry plane {axis.upper()}=0 within tolerance {tolerance}; "
            "node merging will be skipped and the halves will not be connected."
        )
    return seam


def build_node_map(seam: npt.NDArray[np.bool_]) -> npt.NDArray[np.int64]:
    """
    Index of every original node's mirror image in the merged mesh.

    Seam nodes map to themselves. Off-plane nodes get new indices appended
    after the originals, in original order.
    """
    num_nodes = len(seam)
    node_map = np.arange(num_nodes, dtype=np.int64)
    off_plane = ~seam
    node_map[off_plane] = num_nodes + np.arange(np.count_nonzero(off_plane), dtype=np.int64)
    return node_map


def mirror_coordinates(
    coordinates: npt.NDArray[np.float64],
    seam: npt.NDArray[np.bool_],
    axis: Axis,
) -> npt.NDArray[np.float64]:
    """Original coordinates followed by the reflected off-plane nodes."""
    mirrored = coordinates[~seam].copy()
    mirrored[:, axis.index] *= -1.0
    return np.vstack((coordinates, mirrored))
