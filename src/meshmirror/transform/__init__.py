from meshmirror.transform.fields import FieldKind, VectorDetectionConfig, VectorFieldClassifier
from meshmirror.transform.memory import MemoryBudgetAdvisor, MemoryEstimate
from meshmirror.transform.merge import copy_mirror_merge
from meshmirror.transform.sides import TopologySideMapper
from meshmirror.transform.symmetry import build_node_map, detect_seam

__all__ = [
    "FieldKind",
    "MemoryBudgetAdvisor",
    "MemoryEstimate",
    "TopologySideMapper",
    "VectorDetectionConfig",
    "VectorFieldClassifier",
    "build_node_map",
    "copy_mirror_merge",
    "detect_seam",
]
