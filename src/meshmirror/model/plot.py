"""
Mesh preview plot rendered with matplotlib.

3-D meshes are projected onto a coordinate plane; every element side is drawn
as a polygon outline, so the preview of a solid shows its projected faces.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import numpy as np

from meshmirror.model.mesh import MeshModel

if TYPE_CHECKING:
    import numpy.typing as npt
    from matplotlib.figure import Figure

logger = logging.getLogger(__name__)

_AXIS_LABELS = ("X", "Y", "Z")


def plot_mesh(
    mesh: MeshModel,
    filepath: Optional[str] = None,
    plane: tuple[int, int] = (0, 1),
    highlight_nodes: Optional[npt.NDArray[np.bool_]] = None,
    show_ids: bool = False,
) -> Figure:
    """
    Plot the mesh outline, one color per block.

    Args:
        mesh: Mesh to plot.
        filepath: If given, the figure is saved there (format from the extension).
        plane: Coordinate columns used as the horizontal and vertical axis.
        highlight_nodes: Optional boolean mask of nodes drawn as red markers
            (e.g. the nodes on the symmetry plane).
        show_ids: Print element indices at their centroids.

    Returns:
        The matplotlib figure.
    """
    if max(plane) >= mesh.num_dim:
        raise ValueError(f"Plot plane {plane} is not available on a {mesh.num_dim}-D mesh.")

    fig, ax = plt.subplots(constrained_layout=True)
    ax.set_aspect("equal")

    cmap = plt.get_cmap("gist_rainbow", max(len(mesh.blocks), 1))
    coords = mesh.coordinates[:, list(plane)]

    element_index = 0
    for i, block in enumerate(mesh.blocks):
        color = cmap(i % cmap.N)
        topology = block.resolved_topology
        faces = list(topology.sides.values()) if topology is not None and topology.dimension == 3 else [None]

        label = block.display_name
        for connectivity in block.connectivity:
            for face in faces:
                local = connectivity if face is None else connectivity[list(face)]
                polygon = coords[local]
                polygon = np.vstack((polygon, polygon[0]))  # Close the polygon
                if face is None:
                    ax.fill(polygon[:, 0], polygon[:, 1], color=color, alpha=0.1, label=label)
                    label = "_nolegend_"
                ax.plot(polygon[:, 0], polygon[:, 1], color="black", lw=0.5)

            if show_ids:
                centroid = coords[connectivity].mean(axis=0)
                ax.text(centroid[0], centroid[1], str(element_index), fontsize=8, color=color,
                        ha="center", va="center")
            element_index += 1

    ax.plot(coords[:, 0], coords[:, 1], "k.", markersize=2)
    if highlight_nodes is not None and np.any(highlight_nodes):
        seam = coords[highlight_nodes]
        ax.plot(seam[:, 0], seam[:, 1], "ro", markersize=4, label="symmetry plane")

    ax.grid(visible=True, which="major", linestyle="-", color="gray", lw=0.5)
    ax.set_title(mesh.title or f"{mesh.num_nodes} nodes, {mesh.num_elements} elements")
    ax.set_xlabel(f"{_AXIS_LABELS[plane[0]]} Coordinate")
    ax.set_ylabel(f"{_AXIS_LABELS[plane[1]]} Coordinate")
    if ax.get_legend_handles_labels()[0]:
        ax.legend(loc="best")

    if filepath:
        fig.savefig(filepath)
        logger.info(f"Mesh plot saved to: {filepath}")
    return fig
