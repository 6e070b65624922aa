# m3d1d/config_manager.py
import yaml
import os
from typing import Any, Dict, Optional
import logging

from m3d1d import constants
from m3d1d.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}
_MISSING = object()


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Loads a YAML configuration file.

    Args:
        config_path (str): Path to the YAML configuration file.

    Returns:
        Dict[str, Any]: A dictionary containing the configuration parameters.

    Raises:
        FileNotFoundError: If the config file is not found.
        yaml.YAMLError: If there's an error parsing the YAML file.
    """
    if not os.path.exists(config_path):
        logger.error(f"Configuration file not found: {config_path}")
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
        logger.info(f"Successfully loaded configuration from: {config_path}")
        return config if config is not None else {}
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML configuration file {config_path}: {e}")
        raise

def get_param(config: Dict[str, Any], key_path: str, default: Any = None) -> Any:
    """
    Retrieves a parameter from the config dictionary using a dot-separated key path.
    Example: get_param(config, "paths.vessel_network")

    Args:
        config (Dict[str, Any]): The configuration dictionary.
        key_path (str): Dot-separated path to the key (e.g., "parent.child.key").
        default (Any, optional): Default value to return if key is not found. Defaults to None.

    Returns:
        Any: The parameter value or the default value.
    """
    keys = key_path.split('.')
    value = config
    try:
        for key in keys:
            value = value[key]
        return value
    except (KeyError, TypeError):
        logger.warning(f"Parameter '{key_path}' not found in config. Using default: {default}")
        return default


class ConfigSource:
    """
    Typed, read-only view over a configuration dictionary.

    Keys are searched in ``section`` first and then at the top level, so both
    a flat file (``RADIUS: 4.0e-6``) and a sectioned one
    (``parameters: {RADIUS: 4.0e-6}``) are accepted. Every lookup of a missing
    or ill-typed key raises ConfigurationError.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None, section: Optional[str] = constants.PARAMETERS_SECTION):
        self.config: Dict[str, Any] = config if config is not None else {}
        self.section = section

    @classmethod
    def from_file(cls, config_path: str, section: Optional[str] = constants.PARAMETERS_SECTION) -> "ConfigSource":
        return cls(load_config(config_path), section=section)

    def _lookup(self, key: str) -> Any:
        if self.section:
            scoped = self.config.get(self.section)
            if isinstance(scoped, dict) and key in scoped:
                return scoped[key]
        if key in self.config:
            return self.config[key]
        return _MISSING

    def has(self, key: str) -> bool:
        return self._lookup(key) is not _MISSING

    def _require(self, key: str, description: str) -> Any:
        value = self._lookup(key)
        if value is _MISSING:
            where = f" (section '{self.section}' or top level)" if self.section else ""
            label = f"{key} [{description}]" if description else key
            logger.error(f"Missing configuration key {label}{where}")
            raise ConfigurationError(f"Missing configuration key: {label}")
        return value

    def boolean(self, key: str, description: str = "") -> bool:
        """Reads a flag. Accepts booleans, 0/1 and yes/no style strings."""
        value = self._require(key, description)
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ConfigurationError(f"Configuration key '{key}' is not a boolean: {value!r}")

    def real(self, key: str, description: str = "") -> float:
        value = self._require(key, description)
        if isinstance(value, bool):
            raise ConfigurationError(f"Configuration key '{key}' is not a real number: {value!r}")
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Configuration key '{key}' is not a real number: {value!r}") from e

    def string(self, key: str, description: str = "") -> str:
        value = self._require(key, description)
        if not isinstance(value, str):
            raise ConfigurationError(f"Configuration key '{key}' is not a string: {value!r}")
        return value


def create_default_config(config_path: str = "config.yaml"):
    """
    Creates a default configuration file if it doesn't exist.
    """
    default_config_content = {
        "paths": {
            "output_dir": "output/parameters",
            "vessel_network": "data/network.txt", # Sample network shipped with the repo; replace with your own .txt (x y z [branch]) or .vtp/.vtk
        },
        "simulation": {
            "log_level": "INFO", # DEBUG, INFO, WARNING, ERROR
        },
        "tissue_grid": { # Dimensionless tissue sample, one dof per grid node
            "shape": [11, 11, 11],
            "spacing": [0.1, 0.1, 0.1],
            "origin": [0.0, 0.0, 0.0],
        },
        constants.PARAMETERS_SECTION: {
            constants.KEY_IMPORT_RADIUS: False,
            constants.KEY_TEST_PARAM: False, # True if the values below are already dimensionless
            constants.KEY_EXPORT_PARAM: False,
            constants.KEY_RADIUS: constants.DEFAULT_VESSEL_RADIUS, # m
            constants.KEY_P: constants.DEFAULT_INTERSTITIAL_PRESSURE, # Pa
            constants.KEY_U: constants.DEFAULT_FLOW_SPEED, # m/s
            constants.KEY_D: constants.DEFAULT_CHARACTERISTIC_LENGTH, # m
            constants.KEY_K: constants.DEFAULT_TISSUE_CONDUCTIVITY, # m^2
            constants.KEY_MU: constants.DEFAULT_VISCOSITY, # kg/ms
            constants.KEY_LP: constants.DEFAULT_WALL_CONDUCTIVITY, # m^2 s/kg
            constants.KEY_OUTPUT_DIR: "output/parameters",
        }
    }
    if not os.path.exists(config_path):
        with open(config_path, 'w') as f:
            yaml.dump(default_config_content, f, sort_keys=False, indent=4)
        logger.info(f"Created default configuration file: {config_path}")
    else:
        logger.info(f"Configuration file already exists: {config_path}")
