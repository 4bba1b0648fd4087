"""Command-line interface."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional, Sequence

import matplotlib.pyplot as plt

from meshmirror.config import DEFAULT_MERGE_TOLERANCE, GIB, PerformanceOptions
from meshmirror.errors import TransformError
from meshmirror.logging_config import level_from_verbosity, setup_logging
from meshmirror.model.axis import Axis
from meshmirror.model.io import load_mesh, write_mesh
from meshmirror.model.plot import plot_mesh
from meshmirror.transform.fields import VectorDetectionConfig
from meshmirror.transform.merge import copy_mirror_merge

logger = logging.getLogger("meshmirror.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meshmirror",
        description="Rebuild a full finite-element model from one symmetric half "
                    "(copy, mirror about a coordinate plane, merge).",
    )
    parser.add_argument("input", nargs="?", help="Input mesh (.h5/.hdf5/.mmh5 or any meshio format)")
    parser.add_argument("output", nargs="?", help="Output mesh (format from the extension)")

    cmm = parser.add_argument_group("copy-mirror-merge")
    cmm.add_argument(
        "--copy-mirror-merge", metavar="AXIS", type=str.lower, choices=[a.value for a in Axis],
        help="Mirror about the plane AXIS=0 and merge both halves",
    )
    cmm.add_argument(
        "--merge-tolerance", type=float, default=DEFAULT_MERGE_TOLERANCE,
        help=f"Distance from the plane within which nodes are merged (default {DEFAULT_MERGE_TOLERANCE})",
    )
    cmm.add_argument(
        "--vector-fields", default=None,
        help="Comma-separated base names always treated as vectors, e.g. 'velocity,disp'",
    )
    cmm.add_argument(
        "--scalar-fields", default=None,
        help="Comma-separated variable names always treated as scalars",
    )
    cmm.add_argument(
        "--no-auto-vector-detection", action="store_true",
        help="Only negate fields listed in --vector-fields",
    )
    cmm.add_argument(
        "--combine-halves", action="store_true",
        help="Keep mirrored elements in the original blocks and sets instead of new '_mirror' ones",
    )
    cmm.add_argument(
        "--memory-threshold", type=float, default=None, metavar="GB",
        help="Warn if the estimated memory of the result exceeds this many GiB",
    )

    out = parser.add_argument_group("output")
    out.add_argument("--zero-time", action="store_true", help="Set the first time value of the output to 0")
    out.add_argument("--plot", metavar="PNG", default=None, help="Save a preview plot of the output mesh")

    perf = parser.add_argument_group("HDF5 performance")
    perf.add_argument("--cache-size", type=int, default=None, metavar="MB", help="HDF5 chunk cache size")
    perf.add_argument("--preemption", type=float, default=None, help="HDF5 chunk cache preemption (0.0-1.0)")
    perf.add_argument("--node-chunk", type=int, default=None, metavar="N", help="Nodes per chunk")
    perf.add_argument("--element-chunk", type=int, default=None, metavar="N", help="Elements per chunk")
    perf.add_argument("--time-chunk", type=int, default=None, metavar="N", help="Time steps per chunk (0 = 1)")
    perf.add_argument(
        "--show-perf-config", action="store_true",
        help="Print the performance configuration and exit",
    )

    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging and progress bars")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file")
    return parser


def _plot_plane(num_dim: int, axis: Optional[Axis]) -> tuple[int, int]:
    # Show the mirror axis horizontally when it is known
    if num_dim == 2 or axis is None:
        return 0, 1
    return tuple(sorted((axis.index, (axis.index + 1) % 3)))


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    performance = PerformanceOptions.from_options(
        cache_size_mb=args.cache_size,
        preemption=args.preemption,
        node_chunk=args.node_chunk,
        element_chunk=args.element_chunk,
        time_chunk=args.time_chunk,
    )
    if args.show_perf_config:
        print(performance.describe())
        return 0
    if not args.input or not args.output:
        parser.error("the following arguments are required: input, output")

    setup_logging(level=level_from_verbosity(args.verbose), log_file=args.log_file)
    logger.info(f"Input:  {args.input}")
    logger.info(f"Output: {args.output}")
    if args.verbose:
        logger.debug(performance.describe())

    axis = Axis.parse(args.copy_mirror_merge) if args.copy_mirror_merge else None
    try:
        mesh = load_mesh(args.input, performance)
        logger.info(f"Loaded {mesh.summary()}")

        if axis is not None:
            vector_config = VectorDetectionConfig.from_cli_options(
                args.vector_fields,
                args.scalar_fields,
                args.no_auto_vector_detection,
            )
            threshold = int(args.memory_threshold * GIB) if args.memory_threshold is not None else None
            mesh = copy_mirror_merge(
                mesh,
                axis,
                args.merge_tolerance,
                vector_config,
                combine_halves=args.combine_halves,
                memory_threshold=threshold,
                show_progress=args.verbose,
            )
        else:
            logger.info("No --copy-mirror-merge given, converting only.")

        if args.zero_time:
            mesh = mesh.with_zero_time()

        write_mesh(args.output, mesh, performance)

        if args.plot:
            plane = _plot_plane(mesh.num_dim, axis)
            seam = None
            if axis is not None:
                seam = abs(mesh.coordinates[:, axis.index]) <= args.merge_tolerance
            fig = plot_mesh(mesh, args.plot, plane=plane, highlight_nodes=seam)
            plt.close(fig)

    except TransformError as e:
        logger.error(f"Error: {e}")
        return 1

    logger.info("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
