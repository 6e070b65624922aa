# m3d1d/visualization.py
from __future__ import annotations

import logging
import os
from typing import Dict, Sequence

import numpy as np
import pandas as pd
import pyvista as pv

from m3d1d.data_structures import FieldDomain
from m3d1d.exceptions import ExportError

logger = logging.getLogger(__name__)


class VTKExportSink:
    """
    Writes named dof fields of a domain to VTK files for ParaView.

    Each call to write() produces one file holding the domain geometry and one
    point-data array per field.
    """

    def __init__(self, output_dir: str):
        self.output_dir = str(output_dir)

    def _path(self, filename: str) -> str:
        return os.path.join(self.output_dir, filename)

    def _check_fields(self, domain: FieldDomain, fields: Dict[str, Sequence[float]]) -> Dict[str, np.ndarray]:
        n_dofs = domain.degree_of_freedom_count()
        checked = {}
        for name, values in fields.items():
            values = np.asarray(values, dtype=float)
            if values.shape != (n_dofs,):
                raise ExportError(f"Field '{name}' has shape {values.shape}, domain has {n_dofs} dofs.")
            checked[name] = values
        return checked

    def write(self, domain: FieldDomain, fields: Dict[str, Sequence[float]], filename: str) -> str:
        """
        Writes the domain and its point fields to output_dir/filename.

        Returns:
            str: Path of the written file.

        Raises:
            ExportError: If the fields do not match the domain or writing fails.
        """
        checked = self._check_fields(domain, fields)
        filepath = self._path(filename)
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            poly = domain.to_polydata()
            for name, values in checked.items():
                poly.point_data[name] = values
            poly.save(filepath)
        except Exception as e:
            logger.error(f"Error exporting fields {list(checked)} to {filepath}: {e}")
            raise ExportError(f"Error exporting fields to {filepath}") from e
        logger.info(f"Exported fields {list(checked)} to {filepath}")
        return filepath

    def write_table(self, domain: FieldDomain, fields: Dict[str, Sequence[float]], filename: str) -> str:
        """Writes dof coordinates and fields as CSV columns (x, y, z, <field>...)."""
        checked = self._check_fields(domain, fields)
        filepath = self._path(filename)
        df = pd.DataFrame(domain.points, columns=['x', 'y', 'z'])
        for name, values in checked.items():
            df[name] = values
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            df.to_csv(filepath, index_label='dof')
        except Exception as e:
            logger.error(f"Error saving parameter table to {filepath}: {e}")
            raise ExportError(f"Error saving parameter table to {filepath}") from e
        logger.info(f"Saved parameter table to {filepath}")
        return filepath


def read_vtk_field(filepath: str, name: str) -> np.ndarray:
    """Reads back a point-data array written by VTKExportSink."""
    mesh = pv.read(filepath)
    if name not in mesh.point_data:
        raise KeyError(f"Field '{name}' not found in {filepath}.")
    return np.asarray(mesh.point_data[name])
