"""
Input/Output Manager
Converts mesh files to and from MeshModel.

Two backends:
    * Native HDF5 layout (.h5, .hdf5, .mmh5) written with h5py. Keeps every
      part of the model: blocks, all set types, distribution factors and
      the full time history of every variable.
    * Any format meshio understands (.exo, .vtu, .msh, .xdmf, ...). meshio has
      no side sets and a single time step, so those parts are reduced on write.
"""
from __future__ import annotations

import logging
import os
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Optional

import h5py
import meshio
import numpy as np

from meshmirror.config import PerformanceOptions
from meshmirror.errors import MeshFormatError
from meshmirror.model.mesh import (
    Block,
    ElementSet,
    MeshModel,
    NodeSet,
    SideSet,
    Variable,
    VariableKind,
)

if TYPE_CHECKING:
    import numpy.typing as npt

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("meshmirror")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

NATIVE_EXTENSIONS: tuple[str, ...] = (".h5", ".hdf5", ".mmh5")
FORMAT_TAG = "meshmirror"

# meshio point/cell data with these many columns is split into components
_COMPONENT_SUFFIXES = {2: ("_x", "_y"), 3: ("_x", "_y", "_z")}
_PLANAR_CELL_TYPES = {"quad", "triangle", "line", "vertex"}


def is_native_path(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in NATIVE_EXTENSIONS


def _decode(value) -> str:
    # HDF5 may hand back bytes or numpy scalars
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _entry_key(position: int) -> str:
    return f"{position:06d}"


class IOManager:

    # --- NATIVE HDF5 ---

    @staticmethod
    def write_hdf5(mesh: MeshModel, filepath: str, performance: Optional[PerformanceOptions] = None) -> None:
        """
        Save the mesh to the native HDF5 layout.

        Layout::

            /coordinates            (num_nodes, num_dim)
            /times                  (num_time_steps,)
            /blocks/000000          connectivity [, attributes]; attrs id, topology, name
            /node_sets/000000       nodes [, distribution_factors]; attrs id, name
            /side_sets/000000       elements, sides [, distribution_factors]; attrs id, name
            /element_sets/000000    elements [, distribution_factors]; attrs id, name
            /variables/<kind>/000000  values (num_time_steps, num_entities); attrs name
        """
        performance = performance or PerformanceOptions.from_options()
        logger.info(f"Writing mesh to: {filepath}")
        try:
            with h5py.File(filepath, "w", **performance.h5py_kwargs()) as f:
                f.attrs["format"] = FORMAT_TAG
                f.attrs["version"] = APP_VERSION
                f.attrs["title"] = mesh.title
                f.attrs["num_dim"] = mesh.num_dim

                f.create_dataset(
                    "coordinates",
                    data=mesh.coordinates,
                    chunks=IOManager._chunks(mesh.coordinates.shape, (performance.node_chunk_size, mesh.num_dim)),
                )
                f.create_dataset("times", data=mesh.times)

                # --- 1. BLOCKS ---
                grp_blocks = f.create_group("blocks")
                for i, block in enumerate(mesh.blocks):
                    grp = grp_blocks.create_group(_entry_key(i))
                    grp.attrs["id"] = block.id
                    grp.attrs["topology"] = block.topology
                    if block.name is not None:
                        grp.attrs["name"] = block.name
                    grp.create_dataset(
                        "connectivity",
                        data=block.connectivity,
                        chunks=IOManager._chunks(
                            block.connectivity.shape, (performance.element_chunk_size, block.nodes_per_element)
                        ),
                    )
                    if block.attributes is not None:
                        grp.create_dataset("attributes", data=block.attributes)
                        grp.attrs["attribute_names"] = list(block.attribute_names)

                # --- 2. SETS ---
                IOManager._write_sets(f.create_group("node_sets"), mesh.node_sets, ("nodes",))
                IOManager._write_sets(f.create_group("side_sets"), mesh.side_sets, ("elements", "sides"))
                IOManager._write_sets(f.create_group("element_sets"), mesh.element_sets, ("elements",))

                # --- 3. VARIABLES ---
                grp_vars = f.create_group("variables")
                time_chunk = performance.time_chunk_size or 1
                for kind in VariableKind:
                    grp_kind = grp_vars.create_group(kind.value)
                    entity_chunk = (
                        performance.node_chunk_size if kind == VariableKind.NODAL
                        else performance.element_chunk_size
                    )
                    for i, var in enumerate(v for v in mesh.variables if v.kind == kind):
                        dset = grp_kind.create_dataset(
                            _entry_key(i),
                            data=var.values,
                            chunks=IOManager._chunks(var.values.shape, (time_chunk, entity_chunk)),
                        )
                        dset.attrs["name"] = var.name

            logger.debug(f"Wrote {mesh.summary()}.")

        except (OSError, TypeError, ValueError) as e:
            logger.exception(f"Failed to write mesh: {e}")
            raise MeshFormatError(f"Could not write '{filepath}': {e}") from e

    @staticmethod
    def read_hdf5(filepath: str, performance: Optional[PerformanceOptions] = None) -> MeshModel:
        performance = performance or PerformanceOptions.from_options()
        logger.info(f"Reading mesh from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise MeshFormatError(msg)

        try:
            with h5py.File(filepath, "r", **performance.h5py_kwargs()) as f:
                if _decode(f.attrs.get("format", "")) != FORMAT_TAG:
                    raise MeshFormatError(f"File '{filepath}' is not a {FORMAT_TAG} HDF5 mesh.")

                num_dim = int(f.attrs["num_dim"])
                blocks = []
                for key in sorted(f["blocks"].keys()):
                    grp = f["blocks"][key]
                    attributes = grp["attributes"][:] if "attributes" in grp else None
                    blocks.append(Block(
                        id=int(grp.attrs["id"]),
                        topology=_decode(grp.attrs["topology"]),
                        connectivity=grp["connectivity"][:],
                        name=_decode(grp.attrs["name"]) if "name" in grp.attrs else None,
                        attributes=attributes,
                        attribute_names=[_decode(n) for n in grp.attrs.get("attribute_names", [])],
                    ))

                node_sets = [
                    NodeSet(id=id_, nodes=data["nodes"], distribution_factors=df, name=name)
                    for id_, name, data, df in IOManager._read_sets(f["node_sets"], ("nodes",))
                ]
                side_sets = [
                    SideSet(id=id_, elements=data["elements"], sides=data["sides"], distribution_factors=df, name=name)
                    for id_, name, data, df in IOManager._read_sets(f["side_sets"], ("elements", "sides"))
                ]
                element_sets = [
                    ElementSet(id=id_, elements=data["elements"], distribution_factors=df, name=name)
                    for id_, name, data, df in IOManager._read_sets(f["element_sets"], ("elements",))
                ]

                variables = []
                for kind in VariableKind:
                    grp_kind = f["variables"].get(kind.value)
                    if grp_kind is None:
                        continue
                    for key in sorted(grp_kind.keys()):
                        dset = grp_kind[key]
                        variables.append(Variable(name=_decode(dset.attrs["name"]), kind=kind, values=dset[:]))

                mesh = MeshModel(
                    num_dim=num_dim,
                    coordinates=f["coordinates"][:],
                    blocks=blocks,
                    node_sets=node_sets,
                    side_sets=side_sets,
                    element_sets=element_sets,
                    variables=variables,
                    times=f["times"][:],
                    title=_decode(f.attrs.get("title", "")),
                )

        except KeyError as e:
            logger.exception(f"Failed to read mesh: {e}")
            raise MeshFormatError(f"File '{filepath}' is missing required data: {e}") from e
        except OSError as e:
            logger.exception(f"Failed to read mesh: {e}")
            raise MeshFormatError(f"Could not read '{filepath}': {e}") from e

        logger.debug(f"Read {mesh.summary()}.")
        return mesh

    @staticmethod
    def _chunks(shape: tuple[int, ...], target: tuple[int, ...]) -> Optional[tuple[int, ...]]:
        """Chunk shape clipped to the dataset shape; None (contiguous) for empty datasets."""
        if 0 in shape:
            return None
        return tuple(max(1, min(dim, want)) for dim, want in zip(shape, target))

    @staticmethod
    def _write_sets(group: h5py.Group, sets: list, fields: tuple[str, ...]) -> None:
        for i, entity_set in enumerate(sets):
            grp = group.create_group(_entry_key(i))
            grp.attrs["id"] = entity_set.id
            if entity_set.name is not None:
                grp.attrs["name"] = entity_set.name
            for field_name in fields:
                grp.create_dataset(field_name, data=getattr(entity_set, field_name))
            if entity_set.distribution_factors is not None:
                grp.create_dataset("distribution_factors", data=entity_set.distribution_factors)

    @staticmethod
    def _read_sets(group: h5py.Group, fields: tuple[str, ...]):
        for key in sorted(group.keys()):
            grp = group[key]
            name = _decode(grp.attrs["name"]) if "name" in grp.attrs else None
            data = {field_name: grp[field_name][:] for field_name in fields}
            df = grp["distribution_factors"][:] if "distribution_factors" in grp else None
            yield int(grp.attrs["id"]), name, data, df

    # --- MESHIO ---

    @staticmethod
    def read_meshio(filepath: str) -> MeshModel:
        logger.info(f"Reading mesh from: {filepath}")
        try:
            mesh = meshio.read(filepath)
        except meshio.ReadError as e:
            raise MeshFormatError(f"Could not read '{filepath}': {e}") from e
        return from_meshio(mesh)

    @staticmethod
    def write_meshio(mesh: MeshModel, filepath: str) -> None:
        logger.info(f"Writing mesh to: {filepath}")
        try:
            meshio.write(filepath, to_meshio(mesh))
        except (meshio.ReadError, meshio.WriteError) as e:
            # meshio reports an unknown extension as ReadError on write as well
            raise MeshFormatError(f"Could not write '{filepath}': {e}") from e


def from_meshio(mesh: meshio.Mesh) -> MeshModel:
    """
    Build a MeshModel from a meshio mesh.

    Planar meshes (2-D cells only, all z == 0) become 2-D models. Point and
    cell data become variables at a single time step 0.0; multi-column data
    is split into ``<name>_x``/``_y``/``_z`` components. Point sets become node
    sets and cell sets become element sets.
    """
    points = np.asarray(mesh.points, dtype=np.float64)
    cell_types = {cell_block.type for cell_block in mesh.cells}

    num_dim = points.shape[1]
    if num_dim == 3 and cell_types <= _PLANAR_CELL_TYPES and np.all(points[:, 2] == 0.0):
        num_dim = 2
        points = points[:, :2]
    if num_dim not in (2, 3):
        raise MeshFormatError(f"Unsupported point dimension {points.shape[1]}.")

    blocks = [
        Block(id=i + 1, topology=cell_block.type, connectivity=cell_block.data)
        for i, cell_block in enumerate(mesh.cells)
    ]
    block_sizes = [len(cell_block.data) for cell_block in mesh.cells]
    offsets = np.concatenate(([0], np.cumsum(block_sizes)[:-1])).astype(np.int64) if block_sizes else []

    variables: list[Variable] = []
    for name, data in mesh.point_data.items():
        variables.extend(_split_components(name, np.asarray(data, dtype=np.float64), VariableKind.NODAL))
    for name, per_block in mesh.cell_data.items():
        data = np.concatenate([np.asarray(d, dtype=np.float64) for d in per_block])
        variables.extend(_split_components(name, data, VariableKind.ELEMENTAL))

    node_sets = [
        NodeSet(id=i + 1, nodes=np.asarray(members), name=name)
        for i, (name, members) in enumerate(mesh.point_sets.items())
    ]
    element_sets = []
    for i, (name, per_block) in enumerate(mesh.cell_sets.items()):
        members = [
            offsets[b] + np.asarray(local, dtype=np.int64)
            for b, local in enumerate(per_block)
            if local is not None and len(local)
        ]
        elements = np.concatenate(members) if members else np.empty(0, dtype=np.int64)
        element_sets.append(ElementSet(id=i + 1, elements=elements, name=name))

    return MeshModel(
        num_dim=num_dim,
        coordinates=points,
        blocks=blocks,
        node_sets=node_sets,
        element_sets=element_sets,
        variables=variables,
        times=np.array([0.0]) if variables else np.empty(0),
    )


def _split_components(name: str, data: npt.NDArray[np.float64], kind: VariableKind) -> list[Variable]:
    if data.ndim == 1:
        return [Variable(name=name, kind=kind, values=data[np.newaxis, :])]
    columns = data.reshape(len(data), -1)
    suffixes = _COMPONENT_SUFFIXES.get(columns.shape[1]) or tuple(f"_{j}" for j in range(columns.shape[1]))
    return [
        Variable(name=f"{name}{suffix}", kind=kind, values=columns[:, j][np.newaxis, :])
        for j, suffix in enumerate(suffixes)
    ]


def to_meshio(mesh: MeshModel, step: int = -1) -> meshio.Mesh:
    """
    Build a meshio mesh from a MeshModel.

    Exports the variables at time step ``step`` (the last one by default).
    Side sets and global variables have no meshio counterpart and are dropped
    with a warning.
    """
    cells = []
    for block in mesh.blocks:
        topology = block.resolved_topology
        cell_type = topology.meshio_type if topology is not None else block.topology.lower()
        cells.append((cell_type, block.connectivity))

    point_data = {}
    cell_data = {}
    if mesh.num_time_steps:
        if mesh.num_time_steps > 1:
            logger.info(f"Exporting time step {step} of {mesh.num_time_steps} (time {mesh.times[step]}).")
        for var in mesh.nodal_variables:
            point_data[var.name] = var.values[step]
        offsets = mesh.block_offsets
        for var in mesh.element_variables:
            cell_data[var.name] = [
                var.values[step, offset:offset + block.num_elements]
                for offset, block in zip(offsets, mesh.blocks)
            ]

    if mesh.side_sets:
        logger.warning(f"{len(mesh.side_sets)} side set(s) cannot be stored through meshio and are dropped.")
    if mesh.global_variables:
        logger.warning(
            f"{len(mesh.global_variables)} global variable(s) cannot be stored through meshio and are dropped."
        )

    point_sets = {node_set.display_name: node_set.nodes for node_set in mesh.node_sets}
    cell_sets = {}
    if mesh.element_sets:
        owners = [mesh.block_of_elements(es.elements) for es in mesh.element_sets]
        for element_set, owner in zip(mesh.element_sets, owners):
            cell_sets[element_set.display_name] = [
                element_set.elements[owner == b] - offset
                for b, offset in enumerate(mesh.block_offsets)
            ]

    return meshio.Mesh(
        points=mesh.coordinates,
        cells=cells,
        point_data=point_data,
        cell_data=cell_data,
        point_sets=point_sets,
        cell_sets=cell_sets,
    )


def load_mesh(filepath: str, performance: Optional[PerformanceOptions] = None) -> MeshModel:
    """
    Read a mesh file, choosing the backend from the extension.

    Raises:
        MeshFormatError: If the file is missing or cannot be parsed.
    """
    if not os.path.exists(filepath):
        raise MeshFormatError(f"Mesh file not found: {filepath}")
    if is_native_path(filepath):
        mesh = IOManager.read_hdf5(filepath, performance)
    else:
        mesh = IOManager.read_meshio(filepath)
    mesh.validate()
    return mesh


def write_mesh(filepath: str, mesh: MeshModel, performance: Optional[PerformanceOptions] = None) -> None:
    if is_native_path(filepath):
        IOManager.write_hdf5(mesh, filepath, performance)
    else:
        IOManager.write_meshio(mesh, filepath)
    logger.info(f"Mesh written to: {filepath}")


__all__ = [
    "IOManager",
    "from_meshio",
    "is_native_path",
    "load_mesh",
    "to_meshio",
    "write_mesh",
]
