# m3d1d/utils.py
import numpy as np
import logging
import os
from typing import Sequence

from m3d1d import constants

logger = logging.getLogger(__name__)

def broadcast_value(value: float, n_dofs: int) -> np.ndarray:
    """Returns a float array of length n_dofs filled with value."""
    return np.full(int(n_dofs), float(value), dtype=float)

def compute_radius(domain, radius: Sequence[float], region_id: int) -> float:
    """
    Computes the representative radius of a network branch.

    The radius field is linear on each segment, so its mean over the region is
    the length-weighted average of the segment midpoint values:
        R_rg = sum_s |s| * (R_a + R_b) / 2 / sum_s |s|

    Args:
        domain (FieldDomain): Vessel domain carrying the segment geometry.
        radius (Sequence[float]): Radius value per dof of the domain.
        region_id (int): Branch (region) of the domain.

    Returns:
        float: The averaged radius on the region.

    Raises:
        KeyError: If the region does not exist.
        ValueError: If the radius array does not match the domain or the region is empty.
    """
    radius = np.asarray(radius, dtype=float)
    if radius.shape[0] != domain.degree_of_freedom_count():
        raise ValueError(f"Radius has {radius.shape[0]} values, domain has {domain.degree_of_freedom_count()} dofs.")
    if region_id not in domain.regions:
        raise KeyError(f"Region {region_id} not found in domain '{domain.name}'.")

    segment_ids = domain.regions[region_id]
    if segment_ids.size == 0:
        raise ValueError(f"Region {region_id} contains no segments.")

    ends = domain.lines[segment_ids]
    lengths = domain.segment_lengths()[segment_ids]
    midpoint_values = 0.5 * (radius[ends[:, 0]] + radius[ends[:, 1]])
    total_length = lengths.sum()
    if total_length < constants.EPSILON:
        # Degenerate branch: plain average of its dofs
        logger.warning(f"Region {region_id} has zero length. Using the mean of its dof radii.")
        return float(np.mean(radius[domain.dofs_on_region(region_id)]))
    return float(np.sum(lengths * midpoint_values) / total_length)

def create_output_directory(base_dir: str, sim_name: str = "parameters", timestamp: bool = True) -> str:
    """
    Creates a unique output directory.
    Example: base_dir/YYYYMMDD_HHMMSS_sim_name or base_dir/sim_name
    """
    from datetime import datetime
    if timestamp:
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        dir_name = f"{ts}_{sim_name}"
    else:
        dir_name = sim_name

    full_path = os.path.join(base_dir, dir_name)

    if os.path.exists(full_path):
        count = 1
        new_full_path = f"{full_path}_{count}"
        while os.path.exists(new_full_path):
            count += 1
            new_full_path = f"{full_path}_{count}"
        full_path = new_full_path
        logger.warning(f"Output directory {os.path.join(base_dir, dir_name)} existed. Using {full_path} instead.")

    os.makedirs(full_path, exist_ok=True)
    logger.info(f"Created output directory: {full_path}")
    return full_path
