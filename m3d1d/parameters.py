# m3d1d/parameters.py
"""
Dimensionless physical parameters of the coupled 3D/1D fluid-exchange model.

The assembler derives, from a configuration and the two field domains:

- the vessel radius R'(s), one value per vessel dof,
- the tissue permeability kt (constant, one value per tissue dof),
- the vessel wall permeability Q(s) and the vessel bed permeability kv(s),
  one value per vessel dof,

s being the arc length over the vessel network. Two regimes are supported:
dimensional input, non-dimensionalized with the characteristic scales P, U, d,
and already dimensionless "test case" input.
"""
from __future__ import annotations

import logging
import operator
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from m3d1d import constants, io_utils, utils
from m3d1d.config_manager import ConfigSource
from m3d1d.data_structures import FieldDomain
from m3d1d.exceptions import (ConfigurationError, PhysicalParameterError,
                              RadiusImportError, StateError)
from m3d1d.visualization import VTKExportSink

logger = logging.getLogger(__name__)


class InputMode(Enum):
    DIMENSIONAL = "dimensional"
    DIMENSIONLESS = "dimensionless"


class RadiusMode(Enum):
    CONSTANT = "constant"
    IMPORTED = "imported"


@dataclass(frozen=True)
class ModeSelection:
    """Regime of the input data. Importing a radius profile requires dimensional input."""
    input_mode: InputMode
    radius_mode: RadiusMode
    export: bool = False

    def __post_init__(self):
        if self.radius_mode is RadiusMode.IMPORTED and self.input_mode is InputMode.DIMENSIONLESS:
            logger.error("Radius import requested together with dimensionless input.")
            raise ConfigurationError(
                "Try to import non constant (dimensionless) radius: please insert dimensional parameters "
                f"({constants.KEY_IMPORT_RADIUS} and {constants.KEY_TEST_PARAM} cannot both be set)"
            )

    @classmethod
    def from_config(cls, config: ConfigSource) -> "ModeSelection":
        import_radius = config.boolean(constants.KEY_IMPORT_RADIUS, "import the vessel radius from file")
        nondim = config.boolean(constants.KEY_TEST_PARAM, "input parameters are dimensionless")
        export = config.boolean(constants.KEY_EXPORT_PARAM, "export radius and conductivity")
        return cls(
            input_mode=InputMode.DIMENSIONLESS if nondim else InputMode.DIMENSIONAL,
            radius_mode=RadiusMode.IMPORTED if import_radius else RadiusMode.CONSTANT,
            export=export,
        )


@dataclass(frozen=True)
class DimensionalConstants:
    """Physical constants of a microcirculation application."""
    P: float   # average interstitial pressure [Pa]
    U: float   # characteristic flow speed in the capillary bed [m/s]
    d: float   # characteristic length of the problem [m]
    k: float   # hydraulic conductivity of the interstitium [m^2]
    mu: float  # viscosity of the fluid [kg/ms]
    Lp: float  # hydraulic conductivity of the capillary walls [m^2 s/kg]

    @classmethod
    def from_config(cls, config: ConfigSource) -> "DimensionalConstants":
        consts = cls(
            P=config.real(constants.KEY_P, "average interstitial pressure [Pa]"),
            U=config.real(constants.KEY_U, "characteristic flow speed in the capillary bed [m/s]"),
            d=config.real(constants.KEY_D, "characteristic length of the problem [m]"),
            k=config.real(constants.KEY_K, "permeability of the interstitium [m^2]"),
            mu=config.real(constants.KEY_MU, "fluid viscosity [kg/ms]"),
            Lp=config.real(constants.KEY_LP, "permeability of the vessel walls [m^2 s/kg]"),
        )
        for name in ("U", "d", "mu"):
            if getattr(consts, name) == 0:
                raise PhysicalParameterError(f"Scaling parameter {name} must be non-zero.")
        return consts

    def tissue_permeability(self) -> float:
        return self.k / self.mu * self.P / self.U / self.d

    def bed_permeability(self, radius: np.ndarray) -> np.ndarray:
        # Poiseuille conductance of the bed, r^4
        return constants.PI / 8.0 / self.mu * self.P * self.d / self.U * radius ** 4

    def wall_permeability(self, radius: np.ndarray) -> np.ndarray:
        return 2.0 * constants.PI * self.Lp * self.P / self.U * radius


@dataclass
class ParameterSet:
    """Dimensionless coefficient arrays, indexed by tissue or vessel dof."""
    radius: np.ndarray
    tissue_permeability: np.ndarray
    vessel_wall_permeability: np.ndarray
    vessel_bed_permeability: np.ndarray
    average_radius: Optional[float] = None
    dimensional: Optional[DimensionalConstants] = None


def resolve_radius(config: ConfigSource, modes: ModeSelection,
                   vessel_domain: FieldDomain) -> Tuple[np.ndarray, Optional[float]]:
    """
    Returns the dimensionless radius per vessel dof and, for a constant
    radius, the average value that was broadcast.
    """
    n_dofs = vessel_domain.degree_of_freedom_count()

    if modes.radius_mode is RadiusMode.CONSTANT:
        average_radius = config.real(constants.KEY_RADIUS, "Vessel average radius")
        if modes.input_mode is InputMode.DIMENSIONAL:
            d = config.real(constants.KEY_D, "characteristic length of the problem [m]")
            if d == 0:
                raise PhysicalParameterError("Characteristic length d must be non-zero.")
            average_radius /= d
        if not average_radius > 0:
            raise PhysicalParameterError(f"Wrong vessel radius (R'>0 required), got {average_radius}")
        return utils.broadcast_value(average_radius, n_dofs), average_radius

    rfile = config.string(constants.KEY_RADIUS_FILE, "file of vessel radii")
    logger.info(f"Importing radius values from file {rfile} ...")
    radius = io_utils.load_network_radius(rfile, vessel_domain)
    if radius.shape[0] != n_dofs:
        raise RadiusImportError(f"Imported radius has {radius.shape[0]} values, vessel mesh has {n_dofs} dofs.")
    return radius, None


def validate_parameters(params: ParameterSet):
    """
    Sanity check on the first entry of each coefficient array.

    Raises:
        PhysicalParameterError: If kt or kv is zero.
    """
    if params.tissue_permeability[0] == 0:
        logger.error("Wrong tissue conductivity (kt>0 required)")
        raise PhysicalParameterError("wrong tissue conductivity (kt>0 required)")
    if params.vessel_bed_permeability[0] == 0:
        logger.error("Wrong vessel bed conductivity (kv>0 required)")
        raise PhysicalParameterError("wrong vessel bed conductivity (kv>0 required)")
    if params.vessel_wall_permeability[0] == 0:
        logger.warning("Warning: uncoupled problem (Q=0)")


class ParameterAssembler:
    """
    Builds and serves the dimensionless parameters of the 3D/1D model.

    The assembler is built once; every accessor raises StateError before build().
    """

    def __init__(self):
        self._params: Optional[ParameterSet] = None
        self._vessel_domain: Optional[FieldDomain] = None

    def __repr__(self) -> str:
        state = "built" if self.is_built else "unbuilt"
        return f"ParameterAssembler({state})"

    @property
    def is_built(self) -> bool:
        return self._params is not None

    def build(self, config: Union[ConfigSource, Dict[str, Any]], tissue_domain: FieldDomain,
              vessel_domain: FieldDomain, export_sink=None) -> ParameterSet:
        """
        Assembles the arrays of dimensionless parameters.

        Args:
            config: ConfigSource, or a configuration dictionary to wrap in one.
            tissue_domain (FieldDomain): Layout of the tissue data field.
            vessel_domain (FieldDomain): Layout of the vessel data field.
            export_sink: Sink receiving the R and Q fields when EXPORT_PARAM is set.
                Defaults to a VTKExportSink rooted at OutputDir.

        Returns:
            ParameterSet: The validated coefficients.

        Raises:
            ConfigurationError: Missing/ill-typed keys or forbidden mode combination.
            PhysicalParameterError: Coefficients not describing a well-posed problem.
            RadiusImportError: Radius file unreadable or not matching the vessel mesh.
            StateError: If the assembler was already built.
        """
        if self.is_built:
            raise StateError("Parameters have already been built.")
        if not isinstance(config, ConfigSource):
            config = ConfigSource(config)

        modes = ModeSelection.from_config(config)
        dof_datat = tissue_domain.degree_of_freedom_count()
        dof_datav = vessel_domain.degree_of_freedom_count()
        if dof_datat == 0 or dof_datav == 0:
            raise ConfigurationError(f"Empty data domain (tissue dofs: {dof_datat}, vessel dofs: {dof_datav}).")
        logger.debug(f"Parameter modes: {modes.input_mode.value} input, {modes.radius_mode.value} radius.")

        logger.info("Assembling dimensionless radius R'... ")
        radius, average_radius = resolve_radius(config, modes, vessel_domain)

        logger.info("Assembling dimensionless permeabilities kt, Q, kv ... ")
        dimensional = None
        if modes.input_mode is InputMode.DIMENSIONLESS:
            kt = utils.broadcast_value(config.real(constants.KEY_KT, "tissue permeability"), dof_datat)
            q = utils.broadcast_value(config.real(constants.KEY_Q, "vessel wall permeability"), dof_datav)
            kv = utils.broadcast_value(config.real(constants.KEY_KV, "vessel bed permeability"), dof_datav)
        else:
            dimensional = DimensionalConstants.from_config(config)
            kt = utils.broadcast_value(dimensional.tissue_permeability(), dof_datat)
            kv = dimensional.bed_permeability(radius)
            q = dimensional.wall_permeability(radius)

        params = ParameterSet(
            radius=radius,
            tissue_permeability=kt,
            vessel_wall_permeability=q,
            vessel_bed_permeability=kv,
            average_radius=average_radius,
            dimensional=dimensional,
        )
        validate_parameters(params)

        sink = None
        if modes.export:
            output_dir = config.string(constants.KEY_OUTPUT_DIR, "OutputDirectory")
            sink = export_sink if export_sink is not None else VTKExportSink(output_dir)
        self._params = params
        self._vessel_domain = vessel_domain

        if sink is not None:
            self.export_diagnostics(sink)
        return params

    def export_diagnostics(self, sink) -> bool:
        """
        Writes the R and Q fields over the vessel domain, one file each.
        Failures are logged; the parameters stay valid.

        Returns:
            bool: True if both fields were written.
        """
        params = self._require_built()
        exported = True
        for filename, name, values in (
            (constants.RADIUS_EXPORT_FILENAME, "R", params.radius),
            (constants.CONDUCTIVITY_EXPORT_FILENAME, "Q", params.vessel_wall_permeability),
        ):
            try:
                sink.write(self._vessel_domain, {name: values}, filename)
            except Exception as e:
                logger.error(f"Could not export field '{name}' to {filename}: {e}. Parameters are still valid.")
                exported = False
        return exported

    # --- Accessors ---

    def _require_built(self) -> ParameterSet:
        if self._params is None:
            raise StateError("Parameters not built yet: call build() first.")
        return self._params

    @staticmethod
    def _point(values: np.ndarray, i: int, label: str) -> float:
        i = operator.index(i)
        if not 0 <= i < len(values):
            raise IndexError(f"{label} index {i} out of range [0, {len(values)}).")
        return float(values[i])

    @property
    def parameters(self) -> ParameterSet:
        return self._require_built()

    def radius(self, i: int) -> float:
        """Radius at vessel dof i."""
        return self._point(self._require_built().radius, i, "Vessel dof")

    def tissue_permeability(self, i: int) -> float:
        """Tissue permeability at tissue dof i."""
        return self._point(self._require_built().tissue_permeability, i, "Tissue dof")

    def wall_permeability(self, i: int) -> float:
        """Vessel wall permeability at vessel dof i."""
        return self._point(self._require_built().vessel_wall_permeability, i, "Vessel dof")

    def bed_permeability(self, i: int) -> float:
        """Vessel bed permeability at vessel dof i."""
        return self._point(self._require_built().vessel_bed_permeability, i, "Vessel dof")

    def radius_on_region(self, region_id: int, domain: Optional[FieldDomain] = None) -> float:
        """Average radius over a branch of the vessel domain (the one given to build() by default)."""
        params = self._require_built()
        return utils.compute_radius(domain if domain is not None else self._vessel_domain,
                                    params.radius, region_id)

    def radius_array(self) -> np.ndarray:
        return self._require_built().radius

    def wall_permeability_array(self) -> np.ndarray:
        return self._require_built().vessel_wall_permeability

    def summary(self) -> str:
        params = self._require_built()
        lines = [
            "--- PHYSICAL PARAMS ------",
            f"  R'     : {params.radius[0]}",
            f"  kappat : {params.tissue_permeability[0]}",
            f"  Q      : {params.vessel_wall_permeability[0]}",
            f"  kappav : {params.vessel_bed_permeability[0]}",
            "--------------------------",
        ]
        return "\n".join(lines) + "\n"

    def __str__(self) -> str:
        if not self.is_built:
            return repr(self)
        return self.summary()
