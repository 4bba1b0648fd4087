from __future__ import annotations

import logging

import pytest

from meshmirror.config import (
    GIB,
    MIB,
    NodeType,
    PerformanceOptions,
    detect_node_type,
    get_memory_warning_threshold,
    next_prime,
)
from meshmirror.logging_config import level_from_verbosity, setup_logging


@pytest.mark.parametrize(
    "environ, expected",
    [
        ({"SLURM_JOB_ID": "42"}, NodeType.COMPUTE),
        ({"FLUX_URI": "local://"}, NodeType.COMPUTE),
        ({"PBS_JOBID": "1.server"}, NodeType.COMPUTE),
        ({"LSB_JOBID": "7"}, NodeType.COMPUTE),
        ({"SLURM_CONF": "/etc/slurm.conf"}, NodeType.LOGIN),
        ({"SLURM_CONF": "/etc/slurm.conf", "SLURM_JOB_ID": "1"}, NodeType.COMPUTE),
        ({}, NodeType.UNKNOWN),
    ],
)
def test_detect_node_type(environ, expected) -> None:
    assert detect_node_type(environ) is expected


@pytest.mark.parametrize("n, expected", [(0, 2), (2, 2), (4, 5), (521, 521), (522, 523), (1600, 1601)])
def test_next_prime(n, expected) -> None:
    assert next_prime(n) == expected


def test_performance_defaults_per_node_type() -> None:
    compute = PerformanceOptions.from_options(environ={"SLURM_JOB_ID": "1"})
    assert compute.cache_size == 128 * MIB
    assert compute.node_chunk_size == 10_000
    assert compute.num_slots == next_prime(12_800)

    login = PerformanceOptions.from_options(environ={"PBS_SERVER": "head"})
    assert login.cache_size == 4 * MIB
    assert login.element_chunk_size == 1_000
    assert login.num_slots == 521

    unknown = PerformanceOptions.from_options(environ={})
    assert unknown.cache_size == 16 * MIB
    assert unknown.node_chunk_size == 5_000
    assert unknown.time_chunk_size == 0


def test_performance_user_values_and_clamping() -> None:
    options = PerformanceOptions.from_options(
        cache_size_mb=64, preemption=1.5, node_chunk=100, element_chunk=200, time_chunk=3, environ={}
    )
    assert options.cache_size == 64 * MIB
    assert options.preemption == 1.0
    assert (options.node_chunk_size, options.element_chunk_size, options.time_chunk_size) == (100, 200, 3)
    assert options.h5py_kwargs() == {"rdcc_nbytes": 64 * MIB, "rdcc_w0": 1.0, "rdcc_nslots": next_prime(6400)}

    assert PerformanceOptions.from_options(preemption=-0.5, environ={}).preemption == 0.0


def test_describe_mentions_node_type() -> None:
    text = PerformanceOptions.from_options(environ={}).describe(environ={})
    assert "Node type: unknown" in text
    assert "(no time chunking)" in text


@pytest.mark.parametrize(
    "environ, expected",
    [
        ({}, 4 * GIB),
        ({"MESHMIRROR_MEMORY_WARNING_GB": "0.5"}, GIB // 2),
        ({"MESHMIRROR_MEMORY_WARNING_GB": "lots"}, 4 * GIB),
        ({"MESHMIRROR_MEMORY_WARNING_GB": "-1"}, 4 * GIB),
    ],
)
def test_memory_warning_threshold(environ, expected) -> None:
    assert get_memory_warning_threshold(environ) == expected


def test_setup_logging_replaces_handlers(tmp_path) -> None:
    log_file = tmp_path / "run.log"
    setup_logging(level_from_verbosity(True), log_file=str(log_file))
    logger = setup_logging(level_from_verbosity(False))

    assert logger.name == "meshmirror"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
