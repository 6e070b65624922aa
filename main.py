# main.py
import argparse
import logging
import os
import sys
import time
from typing import List, Optional

from m3d1d import config_manager, constants, io_utils, utils
from m3d1d.config_manager import ConfigSource
from m3d1d.exceptions import ConfigurationError, ExportError, PhysicalParameterError
from m3d1d.parameters import ParameterAssembler
from m3d1d.visualization import VTKExportSink

logger = logging.getLogger(__name__)


def setup_logging(log_level_str: str, log_file: str):
    """Configures logging for the parameter assembly."""
    numeric_level = getattr(logging, log_level_str.upper(), logging.INFO)
    if not isinstance(numeric_level, int): # Fallback if level is invalid
        print(f"Warning: Invalid log level '{log_level_str}'. Defaulting to INFO.")
        numeric_level = logging.INFO

    # Make sure log directory exists
    os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file, mode='w'), # Overwrite log file each run
            logging.StreamHandler() # Also print to console
        ],
        force=True
    )
    # Suppress overly verbose logs if not in DEBUG
    if numeric_level > logging.DEBUG:
        logging.getLogger('pyvista').setLevel(logging.WARNING)


def parse_arguments(argv: Optional[List[str]] = None):
    """Parses command-line arguments."""
    parser = argparse.ArgumentParser(description="Dimensionless parameters of the coupled 3D/1D model")
    parser.add_argument(
        "--config",
        type=str,
        default="config.yaml",
        help="Path to the YAML configuration file (default: config.yaml)"
    )
    parser.add_argument(
        "--output_dir",
        type=str,
        default=None,
        help="Override output directory from config file."
    )
    parser.add_argument(
        "--log_level",
        type=str,
        default=None,
        help="Override simulation.log_level (DEBUG, INFO, WARNING, ERROR)."
    )
    parser.add_argument(
        "--create-default-config",
        action="store_true",
        help="Write a default configuration to --config and exit."
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    if args.create_default_config:
        logging.basicConfig(level=logging.INFO)
        config_manager.create_default_config(args.config)
        return 0

    try:
        config = config_manager.load_config(args.config)
    except Exception as e:
        print(f"CRITICAL: Failed to load configuration file '{args.config}': {e}")
        return 1

    base_output_dir = args.output_dir if args.output_dir else config_manager.get_param(config, "paths.output_dir", "output")
    os.makedirs(base_output_dir, exist_ok=True)
    output_dir = utils.create_output_directory(base_output_dir, "parameters", timestamp=True)

    log_level = args.log_level or config_manager.get_param(config, "simulation.log_level", "INFO")
    setup_logging(log_level, os.path.join(output_dir, "parameters.log"))

    main_logger = logging.getLogger(__name__)
    main_logger.info(f"Parameter assembly started. Output directory: {output_dir}")
    main_logger.info(f"Using configuration file: {os.path.abspath(args.config)}")

    try: io_utils.save_simulation_parameters(config, os.path.join(output_dir, "config_used.yaml"))
    except Exception as e_save_config: main_logger.error(f"Could not save used configuration file: {e_save_config}")

    start_time = time.time()
    main_logger.info("--- Loading Domains ---")
    vessel_path = config_manager.get_param(config, "paths.vessel_network")
    if not vessel_path:
        main_logger.critical("No 'paths.vessel_network' specified in config.")
        return 1
    try:
        vessel_domain = io_utils.load_vessel_domain(vessel_path)
        tissue_domain = io_utils.load_tissue_domain(config)
    except (OSError, ValueError) as e:
        main_logger.critical(f"Critical error during domain loading: {e}", exc_info=True)
        return 1
    main_logger.info(f"Vessel domain: {vessel_domain}")
    main_logger.info(f"Tissue domain: {tissue_domain}")

    main_logger.info("--- Assembling Physical Parameters ---")
    assembler = ParameterAssembler()
    try:
        params = assembler.build(ConfigSource(config), tissue_domain, vessel_domain)
    except (ConfigurationError, PhysicalParameterError, OSError) as e:
        main_logger.critical(f"Parameter assembly failed: {e}")
        return 1
    print(assembler)

    sink = VTKExportSink(output_dir)
    try:
        sink.write_table(vessel_domain, {
            "R": params.radius,
            "Q": params.vessel_wall_permeability,
            "kv": params.vessel_bed_permeability,
        }, constants.PARAMETER_TABLE_FILENAME)
    except ExportError as e:
        main_logger.error(f"Could not save parameter table: {e}")

    for region_id in vessel_domain.region_ids():
        main_logger.debug(f"Branch {region_id}: average radius {assembler.radius_on_region(region_id):.6g}")

    main_logger.info(f"Parameter assembly finished. Total time: {time.time() - start_time:.2f}s. Output: {output_dir}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
