"""
Configuration & Defaults
========================
This module is the central registry for constants and tunable defaults.

Why is this file needed?
------------------------
1. Abstraction: Tolerances, name suffixes and memory thresholds are not
   scattered as literals throughout the transform code.
2. Deployment: Cluster jobs and login nodes need different HDF5 chunk-cache
   settings; the defaults are resolved here from the environment.

Exports:
    DEFAULT_MERGE_TOLERANCE (float): Default seam tolerance.
    MIRROR_SUFFIX (str): Suffix appended to the names of mirrored entities.
    SCALAR_QUALIFIERS (tuple): Base-name endings that are never vector fields.
    MEMORY_WARNING_THRESHOLD_BYTES (int): Memory estimate above which a warning is logged.
    PerformanceOptions: HDF5 chunk-cache and chunking configuration.
"""
from __future__ import annotations

import math
import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Mapping, Optional

# Global Constants
DEFAULT_MERGE_TOLERANCE: float = 1e-3
MIRROR_SUFFIX: str = "_mirror"
BYTES_PER_VALUE: int = 8

# Base-name endings that mark statistics, not vector components ("max_x", "index_x")
SCALAR_QUALIFIERS: tuple[str, ...] = ("max", "min", "index", "idx", "avg", "mean", "sum", "count")

MEMORY_WARNING_ENV_VAR: str = "MESHMIRROR_MEMORY_WARNING_GB"
DEFAULT_MEMORY_WARNING_GB: float = 4.0

GIB: int = 1024 ** 3
MIB: int = 1024 ** 2


def get_memory_warning_threshold(environ: Optional[Mapping[str, str]] = None) -> int:
    """
    Resolve the memory warning threshold in bytes.

    The environment variable ``MESHMIRROR_MEMORY_WARNING_GB`` overrides the default.
    Unparsable or non-positive values are ignored.
    """
    environ = os.environ if environ is None else environ
    raw = environ.get(MEMORY_WARNING_ENV_VAR)
    if raw:
        try:
            value = float(raw)
        except ValueError:
            value = 0.0
        if value > 0.0 and math.isfinite(value):
            return int(value * GIB)
    return int(DEFAULT_MEMORY_WARNING_GB * GIB)


MEMORY_WARNING_THRESHOLD_BYTES: int = get_memory_warning_threshold()


class NodeType(StrEnum):
    COMPUTE = "compute"
    LOGIN = "login"
    UNKNOWN = "unknown"


_JOB_ENV_VARS = ("SLURM_JOB_ID", "FLUX_URI", "PBS_JOBID", "LSB_JOBID")
_SCHEDULER_ENV_VARS = ("SLURM_CONF", "FLUX_EXEC_PATH", "PBS_SERVER", "LSF_ENVDIR")

# (cache bytes, chunk size) per node type
_NODE_TYPE_DEFAULTS: dict[NodeType, tuple[int, int]] = {
    NodeType.COMPUTE: (128 * MIB, 10_000),
    NodeType.LOGIN: (4 * MIB, 1_000),
    NodeType.UNKNOWN: (16 * MIB, 5_000),
}


def detect_node_type(environ: Optional[Mapping[str, str]] = None) -> NodeType:
    """Detect whether we run inside a scheduler job, on a login node, or elsewhere."""
    environ = os.environ if environ is None else environ
    if any(name in environ for name in _JOB_ENV_VARS):
        return NodeType.COMPUTE
    if any(name in environ for name in _SCHEDULER_ENV_VARS):
        return NodeType.LOGIN
    return NodeType.UNKNOWN


def _is_prime(n: int) -> bool:
    if n <= 1:
        return False
    if n <= 3:
        return True
    if n % 2 == 0 or n % 3 == 0:
        return False
    i = 5
    while i * i <= n:
        if n % i == 0 or n % (i + 2) == 0:
            return False
        i += 6
    return True


def next_prime(n: int) -> int:
    """Return the smallest prime >= n."""
    if n <= 2:
        return 2
    candidate = n if n % 2 else n + 1
    while not _is_prime(candidate):
        candidate += 2
    return candidate


@dataclass
class PerformanceOptions:
    """
    HDF5 chunk-cache and chunking configuration used by the mesh I/O layer.

    The cache values are passed to ``h5py.File`` (``rdcc_nbytes``, ``rdcc_w0``,
    ``rdcc_nslots``); the chunk sizes shape the datasets written to disk.
    """
    cache_size: int
    num_slots: int
    preemption: float = 0.75
    node_chunk_size: int = 5_000
    element_chunk_size: int = 5_000
    time_chunk_size: int = 0  # 0 = one time step per chunk

    @classmethod
    def from_options(
        cls,
        cache_size_mb: Optional[int] = None,
        preemption: Optional[float] = None,
        node_chunk: Optional[int] = None,
        element_chunk: Optional[int] = None,
        time_chunk: Optional[int] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> PerformanceOptions:
        """
        Build the options from (optional) user values, falling back to
        defaults picked from the detected node type.
        """
        default_cache, default_chunk = _NODE_TYPE_DEFAULTS[detect_node_type(environ)]

        cache_size = cache_size_mb * MIB if cache_size_mb is not None else default_cache
        preemption = 0.75 if preemption is None else min(max(preemption, 0.0), 1.0)

        # Target ~100 hash slots per chunk that fits in the cache (1 MB typical chunk)
        chunks_in_cache = cache_size // MIB
        num_slots = next_prime(max(chunks_in_cache * 100, 521))

        return cls(
            cache_size=cache_size,
            num_slots=num_slots,
            preemption=preemption,
            node_chunk_size=node_chunk if node_chunk is not None else default_chunk,
            element_chunk_size=element_chunk if element_chunk is not None else default_chunk,
            time_chunk_size=time_chunk if time_chunk is not None else 0,
        )

    def h5py_kwargs(self) -> dict[str, float | int]:
        """Keyword arguments for ``h5py.File`` configuring the raw data chunk cache."""
        return {
            "rdcc_nbytes": self.cache_size,
            "rdcc_w0": self.preemption,
            "rdcc_nslots": self.num_slots,
        }

    def describe(self, environ: Optional[Mapping[str, str]] = None) -> str:
        lines = [
            "HDF5 Performance Configuration:",
            f"  Node type: {detect_node_type(environ)}",
            f"  Cache size: {self.cache_size // MIB} MB ({self.cache_size} bytes)",
            f"  Cache slots: {self.num_slots} (auto-calculated)",
            f"  Preemption: {self.preemption:.2f}",
            f"  Node chunk size: {self.node_chunk_size} nodes",
            f"  Element chunk size: {self.element_chunk_size} elements",
        ]
        time_line = f"  Time chunk size: {self.time_chunk_size} steps"
        if self.time_chunk_size == 0:
            time_line += " (no time chunking)"
        lines.append(time_line)
        return "\n".join(lines)
