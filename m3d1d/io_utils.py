# m3d1d/io_utils.py
import numpy as np
import pyvista as pv
import os
import logging
import yaml
from typing import Any, Dict, List, Optional, Tuple

from m3d1d import config_manager, constants
from m3d1d.data_structures import FieldDomain
from m3d1d.exceptions import RadiusImportError

logger = logging.getLogger(__name__)

_VTK_EXTENSIONS = ('.vtp', '.vtk')
_LIST_MARKERS = {'BEGIN_LIST', 'END_LIST'}


def _read_radius_txt(filepath: str) -> List[Tuple[Optional[int], float]]:
    """
    Reads a radius list from a text file.
    Each data line: radius  or  branch_id radius.
    '#' comments, blank lines and BEGIN_LIST/END_LIST markers are skipped.
    """
    entries: List[Tuple[Optional[int], float]] = []
    try:
        with open(filepath, 'r') as f:
            lines = f.readlines()
    except OSError as e:
        logger.error(f"Impossible to read from file {filepath}: {e}")
        raise RadiusImportError(f"Impossible to read from file {filepath}") from e

    for line_num, line in enumerate(lines):
        line = line.split('#', 1)[0].strip()
        if not line or line in _LIST_MARKERS:
            continue
        parts = line.split()
        try:
            if len(parts) == 1:
                entries.append((None, float(parts[0])))
            elif len(parts) == 2:
                entries.append((int(parts[0]), float(parts[1])))
            else:
                raise ValueError(f"expected 1 or 2 columns, got {len(parts)}")
        except ValueError as e:
            logger.error(f"Malformed line {line_num+1} in {filepath}: {line}")
            raise RadiusImportError(f"Malformed line {line_num+1} in radius file {filepath}: {e}") from e

    if not entries:
        logger.error(f"No radius values found in file: {filepath}")
        raise RadiusImportError(f"No radius values found in file: {filepath}")
    with_ids = sum(branch_id is not None for branch_id, _ in entries)
    if 0 < with_ids < len(entries):
        raise RadiusImportError(f"Radius file {filepath} mixes lines with and without branch ids.")
    return entries


def _assign_radius_by_branch(entries: List[Tuple[Optional[int], float]], domain: FieldDomain) -> np.ndarray:
    radius = np.full(domain.degree_of_freedom_count(), np.nan)
    if entries[0][0] is None:
        # Branch values are listed in region order
        branch_values = zip(domain.region_ids(), (value for _, value in entries))
    else:
        branch_values = entries
    for region_id, value in branch_values:
        if region_id not in domain.regions:
            raise RadiusImportError(f"Radius given for branch {region_id}, which is not in the vessel mesh.")
        radius[domain.dofs_on_region(region_id)] = value
    return radius


def load_network_radius(filepath: str, domain: FieldDomain) -> np.ndarray:
    """
    Imports the vessel radius profile matched against the vessel dof layout.

    Text files hold one value per network branch (assigned to every dof of the
    branch) or one value per dof in domain order. VTK files must carry a
    'radius' point array with one value per dof.

    Args:
        filepath (str): Path to the radius file.
        domain (FieldDomain): Vessel domain the profile refers to.

    Returns:
        np.ndarray: Radius per vessel dof.

    Raises:
        RadiusImportError: If the file cannot be read or does not fit the domain.
    """
    filepath = str(filepath)
    n_dofs = domain.degree_of_freedom_count()
    if not os.path.exists(filepath):
        logger.error(f"Impossible to read from file {filepath}: file not found.")
        raise RadiusImportError(f"Radius file not found: {filepath}")

    if filepath.lower().endswith(_VTK_EXTENSIONS):
        try:
            mesh = pv.read(filepath)
        except Exception as e:
            logger.error(f"Error loading VTK radius file {filepath}: {e}")
            raise RadiusImportError(f"Error loading VTK radius file {filepath}") from e
        if constants.RADIUS_ARRAY_NAME not in mesh.point_data:
            raise RadiusImportError(f"VTK file {filepath} does not contain '{constants.RADIUS_ARRAY_NAME}' point data.")
        radius = np.asarray(mesh.point_data[constants.RADIUS_ARRAY_NAME], dtype=float).ravel()
        if radius.shape[0] != n_dofs:
            raise RadiusImportError(f"VTK radius has {radius.shape[0]} values, vessel mesh has {n_dofs} dofs.")
    else:
        entries = _read_radius_txt(filepath)
        n_regions = len(domain.regions)
        if entries[0][0] is not None or (n_regions > 0 and len(entries) == n_regions):
            radius = _assign_radius_by_branch(entries, domain)
        elif len(entries) == n_dofs:
            radius = np.array([value for _, value in entries], dtype=float)
        else:
            raise RadiusImportError(
                f"Radius file {filepath} has {len(entries)} values; expected {n_regions} (one per branch) "
                f"or {n_dofs} (one per dof)."
            )

    if np.any(np.isnan(radius)):
        missing = int(np.sum(np.isnan(radius)))
        raise RadiusImportError(f"Radius file {filepath} leaves {missing} vessel dofs without a value.")
    if not np.all(np.isfinite(radius)) or np.any(radius <= 0):
        raise RadiusImportError(f"Radius file {filepath} contains non-positive or non-finite values.")

    logger.info(f"Loaded {n_dofs} radius values from: {filepath}")
    return radius


def load_vessel_network_txt(filepath: str) -> FieldDomain:
    """
    Loads a vessel network from a TXT file.
    Expected format, one point per line:  x y z [branch]
    Consecutive points of the same branch are connected; a missing branch column
    means branch 0. Points of different branches are not shared.
    """
    points = []
    branches = []
    with open(filepath, 'r') as f:
        for line_num, line in enumerate(f):
            line = line.split('#', 1)[0].strip()
            if not line:
                continue
            parts = line.split()
            if len(parts) not in (3, 4):
                raise ValueError(f"Malformed line {line_num+1} in {filepath}: {line}")
            points.append([float(p) for p in parts[:3]])
            branches.append(int(parts[3]) if len(parts) == 4 else 0)

    if not points:
        raise ValueError(f"No valid points found in TXT file: {filepath}")

    segments = []
    regions: Dict[int, List[int]] = {}
    for i in range(1, len(points)):
        if branches[i] == branches[i - 1]:
            regions.setdefault(branches[i], []).append(len(segments))
            segments.append((i - 1, i))

    logger.info(f"Loaded vessel network from TXT: {filepath}, {len(points)} points, {len(regions)} branches.")
    return FieldDomain(points, segments, regions, name="vessel")


def load_vessel_domain(filepath: str) -> FieldDomain:
    """Loads the vessel domain from a .vtp/.vtk polyline file or a TXT point list."""
    filepath = str(filepath)
    if not os.path.exists(filepath):
        logger.error(f"Vessel network file not found: {filepath}")
        raise FileNotFoundError(f"Vessel network file not found: {filepath}")
    if filepath.lower().endswith(_VTK_EXTENSIONS):
        poly = pv.read(filepath)
        logger.info(f"Loaded vessel network from VTK: {filepath}")
        return FieldDomain.from_polydata(poly)
    return load_vessel_network_txt(filepath)


def load_tissue_domain(config: Dict[str, Any]) -> FieldDomain:
    """Builds the tissue domain from the 'tissue_grid' section of the config."""
    shape = config_manager.get_param(config, "tissue_grid.shape", [11, 11, 11])
    spacing = config_manager.get_param(config, "tissue_grid.spacing", [0.1, 0.1, 0.1])
    origin = config_manager.get_param(config, "tissue_grid.origin", [0.0, 0.0, 0.0])
    domain = FieldDomain.uniform_grid(shape, spacing, origin)
    logger.info(f"Tissue domain: grid {tuple(shape)}, {domain.degree_of_freedom_count()} dofs.")
    return domain


def save_simulation_parameters(config: dict, filepath: str):
    """Saves the simulation configuration to a YAML file."""
    try:
        with open(filepath, 'w') as f:
            yaml.dump(config, f, sort_keys=False, indent=4)
        logger.info(f"Saved simulation parameters to: {filepath}")
    except Exception as e:
        logger.error(f"Error saving simulation parameters to {filepath}: {e}")
        raise
