"""Rebuild full finite-element models from one symmetric half."""
from meshmirror.errors import (
    InconsistentSideNumber,
    InvalidAxis,
    InvalidMesh,
    InvalidTolerance,
    MeshFormatError,
    TransformError,
    UnsupportedTopology,
)
from meshmirror.model import (
    Axis,
    Block,
    ElementSet,
    MeshModel,
    NodeSet,
    SideSet,
    Topology,
    Variable,
    VariableKind,
)
from meshmirror.model.io import load_mesh, write_mesh
from meshmirror.transform import (
    FieldKind,
    VectorDetectionConfig,
    VectorFieldClassifier,
    copy_mirror_merge,
)

__all__ = [
    "Axis",
    "Block",
    "ElementSet",
    "FieldKind",
    "InconsistentSideNumber",
    "InvalidAxis",
    "InvalidMesh",
    "InvalidTolerance",
    "MeshFormatError",
    "MeshModel",
    "NodeSet",
    "SideSet",
    "Topology",
    "TransformError",
    "UnsupportedTopology",
    "Variable",
    "VariableKind",
    "VectorDetectionConfig",
    "VectorFieldClassifier",
    "copy_mirror_merge",
    "load_mesh",
    "write_mesh",
]
