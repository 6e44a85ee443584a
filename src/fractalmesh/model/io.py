"""
Input/Output Manager
Saves escape-time fields to HDF5 checkpoints and exports rank meshes for ParaView.
"""
import logging
import os

import h5py
import numpy as np

from fractalmesh import __version__
from fractalmesh.model.bounds import Bounds
from fractalmesh.model.field import EscapeTimeField
from fractalmesh.model.mesh import MeshAccumulator

# Get module logger
logger = logging.getLogger(__name__)

APP_VERSION = __version__

MESH_FILENAME = "fractal_r{rank}.vtu"
COLLECTION_FILENAME = "fractal.pvd"


class IOManager:
    @staticmethod
    def save_fields(filepath: str, fields: list[EscapeTimeField]) -> None:
        """
        Write every field (resolution, bounds, state and step counts) to one
        HDF5 file, one group per field in list order.
        """
        logger.info(f"Saving {len(fields)} fields to: {filepath}")
        try:
            with h5py.File(filepath, "w") as f:
                f.attrs["version"] = APP_VERSION
                f.attrs["n_fields"] = len(fields)

                for i, field in enumerate(fields):
                    grp = f.create_group(f"field_{i:04d}")
                    grp.attrs["shape"] = np.array(field.shape, dtype=np.int64)
                    grp.attrs["bounds"] = np.array(field.bounds.as_tuple(), dtype=np.float64)
                    grp.create_dataset("state", data=field.state, compression="gzip")
                    grp.create_dataset("nsteps", data=field.nsteps, compression="gzip")

            logger.info(f"Fields saved to: {filepath}")

        except Exception as e:
            logger.exception(f"Failed to save fields: {e}")
            raise e

    @staticmethod
    def load_fields(filepath: str) -> list[EscapeTimeField]:
        """Read fields written by :meth:`save_fields`, in the saved order."""
        logger.info(f"Loading fields from: {filepath}")
        if not h5py.is_hdf5(filepath):
            msg = f"File '{filepath}' is not a valid HDF5 file."
            logger.error(msg)
            raise ValueError(msg)

        fields = []
        try:
            with h5py.File(filepath, "r") as f:
                saved_version = f.attrs.get("version", "unknown")
                if saved_version != APP_VERSION:
                    logger.debug(f"Checkpoint written by version {saved_version}, running {APP_VERSION}.")

                # Group names are zero-padded to 4 digits only, so look them up by index
                for i in range(int(f.attrs["n_fields"])):
                    grp = f[f"field_{i:04d}"]
                    nx, ny, nz = (int(v) for v in grp.attrs["shape"])
                    bounds = Bounds.from_tuple(grp.attrs["bounds"])
                    fields.append(EscapeTimeField.from_arrays(
                        nx, ny, nz, bounds,
                        state=grp["state"][()],
                        nsteps=grp["nsteps"][()],
                    ))

            logger.debug(f"Loaded {len(fields)} fields.")
            return fields

        except Exception as e:
            logger.exception(f"Failed to load fields: {e}")
            raise e

    @staticmethod
    def export_rank_mesh(mesh: MeshAccumulator, output_dir: str, rank: int) -> str:
        """
        Save one rank's mesh as ``fractal_r{rank}.vtu`` in ``output_dir``.

        Returns:
            Path of the written file.
        """
        os.makedirs(output_dir, exist_ok=True)
        filepath = os.path.join(output_dir, MESH_FILENAME.format(rank=rank))

        grid = mesh.to_pyvista()
        grid.save(filepath)

        logger.info(f"Rank {rank} mesh exported to: {filepath} ({mesh.n_cells} cells)")
        return filepath

    @staticmethod
    def write_collection(output_dir: str, world_size: int) -> str:
        """
        Write a .pvd file that links every rank's .vtu piece, so the whole
        volume opens as one dataset in ParaView.
        """
        os.makedirs(output_dir, exist_ok=True)

        # PVD Header
        pvd_lines = [
            '<?xml version="1.0"?>',
            '<VTKFile type="Collection" version="0.1" byte_order="LittleEndian">',
            '  <Collection>'
        ]

        for rank in range(world_size):
            filename = MESH_FILENAME.format(rank=rank)
            pvd_lines.append(f'    <DataSet timestep="0" group="" part="{rank}" file="{filename}"/>')

        # Close PVD
        pvd_lines.append('  </Collection>')
        pvd_lines.append('</VTKFile>')

        pvd_path = os.path.join(output_dir, COLLECTION_FILENAME)
        with open(pvd_path, "w") as f:
            f.write("\n".join(pvd_lines))

        logger.info(f"Export complete. Load '{pvd_path}' in ParaView.")
        return pvd_path
