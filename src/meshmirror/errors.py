"""
Error types raised by the copy-mirror-merge engine and the mesh I/O layer.

Every fatal condition is detected before an output mesh is assembled, so a
raised error never leaves a partially built result behind.
"""
from __future__ import annotations


class TransformError(Exception):
    """Base class for all mesh transformation errors."""


class UnsupportedTopology(TransformError):
    def __init__(self, block_id: int, topology: str) -> None:
        self.block_id = block_id
        self.topology = topology
        super().__init__(
            f"Unsupported element topology '{topology}' in block {block_id} for copy-mirror-merge. "
            "Supported: HEX8, TET4, WEDGE6, PYRAMID5, QUAD4, TRI3"
        )


class InconsistentSideNumber(TransformError):
    def __init__(self, element_id: int, side: int, topology: str | None = None) -> None:
        self.element_id = element_id
        self.side = side
        self.topology = topology
        detail = f" (topology {topology})" if topology else ""
        super().__init__(f"Invalid side number {side} for element {element_id}{detail}.")


class InvalidAxis(TransformError, ValueError):
    def __init__(self, value: object, reason: str | None = None) -> None:
        self.value = value
        super().__init__(reason or f"Invalid axis '{value}', must be x, y, or z")


class InvalidTolerance(TransformError, ValueError):
    def __init__(self, tolerance: float) -> None:
        self.tolerance = tolerance
        super().__init__(f"Merge tolerance must be a finite, non-negative number, got {tolerance}.")


class InvalidMesh(TransformError, ValueError):
    """The mesh model violates one of its structural invariants."""


class MeshFormatError(TransformError, ValueError):
    """A mesh file could not be read or written."""
