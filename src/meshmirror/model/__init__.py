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
from meshmirror.model.topology import Topology

__all__ = [
    "Axis",
    "Block",
    "ElementSet",
    "MeshModel",
    "NodeSet",
    "SideSet",
    "Topology",
    "Variable",
    "VariableKind",
]
