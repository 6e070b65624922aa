# m3d1d/data_structures.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence

import networkx as nx
import numpy as np
import pyvista as pv

from m3d1d import constants

logger = logging.getLogger(__name__)

# --- Field Domain Conventions ---
# A FieldDomain is the layout of a discrete data field: one degree of freedom (dof)
# per point, in a fixed order that every parameter array follows.
#
# - 'points':  (N, 3) float array, coordinates of the dofs (dimensionless units).
# - 'lines':   (M, 2) int array, segments of the 1D vessel network given as pairs of
#              dof indices. Empty for the 3D tissue domain.
# - 'regions': {region_id: (K,) int array} segment indices belonging to each
#              network branch. A radius imported per branch is constant on its region.
#
# Vessel networks given as graphs use the same attributes as the vascular trees:
# node 'pos' (3,) array, optional edge 'branch' (int).


class FieldDomain:
    """Degree-of-freedom layout of a tissue or vessel data field."""

    def __init__(self, points, lines=None, regions: Optional[Dict[int, Iterable[int]]] = None, name: str = ""):
        points = np.asarray(points, dtype=float)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"Domain points must be an (N, 3) array, got shape {points.shape}.")
        if lines is None:
            lines = np.zeros((0, 2), dtype=int)
        lines = np.asarray(lines, dtype=int).reshape(-1, 2)
        if lines.size and (lines.min() < 0 or lines.max() >= len(points)):
            raise ValueError("Segment connectivity references a dof outside the domain.")

        self.name = name
        self.points: np.ndarray = points
        self.lines: np.ndarray = lines
        self.regions: Dict[int, np.ndarray] = {}
        for region_id, segment_ids in (regions or {}).items():
            segment_ids = np.asarray(list(segment_ids), dtype=int)
            if segment_ids.size and (segment_ids.min() < 0 or segment_ids.max() >= len(lines)):
                raise ValueError(f"Region {region_id} references a segment outside the domain.")
            self.regions[int(region_id)] = segment_ids

    def __repr__(self) -> str:
        return (f"FieldDomain(name={self.name!r}, n_dofs={self.degree_of_freedom_count()}, "
                f"n_segments={len(self.lines)}, n_regions={len(self.regions)})")

    def degree_of_freedom_count(self) -> int:
        return int(self.points.shape[0])

    def region_ids(self) -> List[int]:
        return sorted(self.regions)

    def dofs_on_region(self, region_id: int) -> np.ndarray:
        """Sorted dof indices touched by the segments of a region."""
        if region_id not in self.regions:
            raise KeyError(f"Region {region_id} not found in domain '{self.name}'.")
        return np.unique(self.lines[self.regions[region_id]].ravel())

    def segment_lengths(self) -> np.ndarray:
        if len(self.lines) == 0:
            return np.zeros(0)
        return np.linalg.norm(self.points[self.lines[:, 1]] - self.points[self.lines[:, 0]], axis=1)

    def to_polydata(self):
        """Converts the domain to a pyvista PolyData (points, line cells and branch cell data)."""
        if len(self.lines):
            cells = np.hstack([np.full((len(self.lines), 1), 2, dtype=int), self.lines]).ravel()
            poly = pv.PolyData(self.points.copy(), lines=cells)
            branch = np.full(len(self.lines), -1, dtype=int)
            for region_id, segment_ids in self.regions.items():
                branch[segment_ids] = region_id
            poly.cell_data[constants.BRANCH_ARRAY_NAME] = branch
        else:
            poly = pv.PolyData(self.points.copy())
        return poly

    @classmethod
    def from_polydata(cls, poly, region_array: str = constants.BRANCH_ARRAY_NAME, name: str = "vessel") -> "FieldDomain":
        """
        Builds a domain from a pyvista PolyData made of line cells.

        Polylines are split into two-point segments. If the cell data carries
        ``region_array`` it gives the branch of each cell, otherwise every line cell
        is its own branch.
        """
        cell_regions = None
        if region_array in poly.cell_data:
            cell_regions = np.asarray(poly.cell_data[region_array]).astype(int)

        segments: List[Sequence[int]] = []
        regions: Dict[int, List[int]] = {}
        raw = np.asarray(poly.lines, dtype=int)
        # cell_data lists vertex cells before line cells
        n_verts = poly.n_verts
        pos = 0
        cell_idx = 0
        while pos < len(raw):
            n_pts = raw[pos]
            ids = raw[pos + 1: pos + 1 + n_pts]
            region_id = int(cell_regions[n_verts + cell_idx]) if cell_regions is not None else cell_idx
            for a, b in zip(ids[:-1], ids[1:]):
                regions.setdefault(region_id, []).append(len(segments))
                segments.append((a, b))
            pos += n_pts + 1
            cell_idx += 1

        logger.debug(f"PolyData converted: {poly.n_points} dofs, {len(segments)} segments, {len(regions)} branches.")
        return cls(np.asarray(poly.points), segments, regions, name=name)

    @classmethod
    def from_graph(cls, graph: nx.Graph, pos_attr: str = 'pos', branch_attr: str = constants.BRANCH_ARRAY_NAME,
                   name: str = "vessel") -> "FieldDomain":
        """
        Builds a vessel domain from a network graph.

        Node order defines dof order. Edges without a branch attribute are grouped
        into branches running between junctions and end points.
        """
        node_to_idx = {node_id: i for i, node_id in enumerate(graph.nodes())}
        points = []
        for node_id, data in graph.nodes(data=True):
            if pos_attr not in data:
                raise ValueError(f"Node {node_id} missing '{pos_attr}' attribute.")
            points.append(np.asarray(data[pos_attr], dtype=float))

        chain_labels = _label_branches(graph)
        segments = []
        regions: Dict[int, List[int]] = {}
        for u, v, data in graph.edges(data=True):
            region_id = data.get(branch_attr)
            if region_id is None:
                region_id = chain_labels[frozenset((u, v))]
            regions.setdefault(int(region_id), []).append(len(segments))
            segments.append((node_to_idx[u], node_to_idx[v]))

        return cls(np.array(points).reshape(-1, 3), segments, regions, name=name)

    @classmethod
    def uniform_grid(cls, shape: Sequence[int], spacing: Sequence[float] = (1.0, 1.0, 1.0),
                     origin: Sequence[float] = (0.0, 0.0, 0.0), name: str = "tissue") -> "FieldDomain":
        """Tissue domain with one dof per node of a structured grid (x fastest)."""
        if len(shape) != 3 or any(int(n) < 1 for n in shape):
            raise ValueError(f"Grid shape must hold three positive sizes, got {shape}.")
        axes = [origin[i] + spacing[i] * np.arange(int(shape[i])) for i in range(3)]
        zz, yy, xx = np.meshgrid(axes[2], axes[1], axes[0], indexing='ij')
        points = np.column_stack([xx.ravel(), yy.ravel(), zz.ravel()])
        return cls(points, name=name)


def _label_branches(graph: nx.Graph) -> Dict[frozenset, int]:
    """Labels every edge with the index of the unbranched chain it belongs to."""
    undirected = graph.to_undirected(as_view=True)
    labels: Dict[frozenset, int] = {}
    next_label = 0
    for u, v in undirected.edges():
        key = frozenset((u, v))
        if key in labels:
            continue
        labels[key] = next_label
        stack = [(u, v)]
        while stack:
            a, b = stack.pop()
            for end in (a, b):
                if undirected.degree(end) != 2:
                    continue
                for neighbour in undirected.neighbors(end):
                    other = frozenset((end, neighbour))
                    if other not in labels:
                        labels[other] = next_label
                        stack.append((end, neighbour))
        next_label += 1
    return labels
