"""
Memory budget estimate for copy-mirror-merge.

The merged mesh is built fully in memory, so the result variables dominate:
every nodal and elemental value exists twice (original and mirrored half).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from meshmirror.config import BYTES_PER_VALUE, GIB, MEMORY_WARNING_THRESHOLD_BYTES
from meshmirror.model.mesh import MeshModel

logger = logging.getLogger(__name__)

_INDEX_BYTES = 8


@dataclass(frozen=True)
class MemoryEstimate:
    variable_bytes: int
    mesh_bytes: int
    threshold: int

    @property
    def total(self) -> int:
        return self.variable_bytes + self.mesh_bytes

    @property
    def exceeded(self) -> bool:
        return self.total > self.threshold

    def __str__(self) -> str:
        return (
            f"{self.total / GIB:.2f} GiB "
            f"(variables {self.variable_bytes / GIB:.2f} GiB, mesh {self.mesh_bytes / GIB:.2f} GiB)"
        )


class MemoryBudgetAdvisor:
    """
    Estimates the memory of the merged result and warns above a threshold.

    The estimate never blocks the operation.
    """

    def __init__(self, threshold_bytes: Optional[int] = None) -> None:
        self.threshold = MEMORY_WARNING_THRESHOLD_BYTES if threshold_bytes is None else int(threshold_bytes)

    def estimate(self, mesh: MeshModel) -> MemoryEstimate:
        num_steps = mesh.num_time_steps
        variable_values = num_steps * (
            mesh.num_nodes * len(mesh.nodal_variables)
            + mesh.num_elements * len(mesh.element_variables)
        )
        variable_bytes = 2 * BYTES_PER_VALUE * variable_values

        connectivity_entries = sum(block.connectivity.size for block in mesh.blocks)
        mesh_bytes = 2 * (
            BYTES_PER_VALUE * mesh.coordinates.size
            + _INDEX_BYTES * connectivity_entries
        )
        return MemoryEstimate(variable_bytes=variable_bytes, mesh_bytes=mesh_bytes, threshold=self.threshold)

    def check(self, mesh: MeshModel) -> MemoryEstimate:
        """Estimate and log; logs a warning if the threshold is exceeded."""
        estimate = self.estimate(mesh)
        if estimate.exceeded:
            logger.warning(
                f"Estimated memory for the merged mesh is {estimate}, above the "
                f"{self.threshold / GIB:.2f} GiB warning threshold. The full result is held in memory; "
                "consider reducing time steps or variables before mirroring."
            )
        else:
            logger.debug(f"Estimated memory for the merged mesh: {estimate}.")
        return estimate
