# m3d1d/constants.py
import numpy as np

# Physical Constants
PI = np.pi

# Configuration keys (names follow the .param convention of the 3D/1D model)
KEY_IMPORT_RADIUS = "IMPORT_RADIUS"
KEY_TEST_PARAM = "TEST_PARAM"      # True if the input is already dimensionless
KEY_EXPORT_PARAM = "EXPORT_PARAM"
KEY_RADIUS = "RADIUS"
KEY_RADIUS_FILE = "RFILE"
KEY_OUTPUT_DIR = "OutputDir"

# Dimensionless (test-case) coefficients
KEY_KT = "Kt"
KEY_Q = "Q"
KEY_KV = "Kv"

# Dimensional physical parameters
KEY_P = "P"    # average interstitial pressure [Pa]
KEY_U = "U"    # characteristic flow speed in the capillary bed [m/s]
KEY_D = "d"    # characteristic length of the problem [m]
KEY_K = "k"    # hydraulic conductivity of the interstitium [m^2]
KEY_MU = "mu"  # fluid viscosity [kg/ms]
KEY_LP = "Lp"  # hydraulic conductivity of the capillary walls [m^2 s/kg]

# Section of the YAML file that holds the keys above
PARAMETERS_SECTION = "parameters"

# Default microcirculation values (dimensional input).
# Typical capillary bed: 4 micron vessels in a 1 mm tissue sample.
DEFAULT_INTERSTITIAL_PRESSURE = 133.32  # Pa (1 mmHg)
DEFAULT_FLOW_SPEED = 1.0e-4             # m/s
DEFAULT_CHARACTERISTIC_LENGTH = 1.0e-3  # m
DEFAULT_TISSUE_CONDUCTIVITY = 1.0e-18   # m^2
DEFAULT_VISCOSITY = 3.5e-3              # Pa.s (blood)
DEFAULT_WALL_CONDUCTIVITY = 1.0e-12     # m^2 s/kg
DEFAULT_VESSEL_RADIUS = 4.0e-6          # m

# Export file names for the diagnostic dump
RADIUS_EXPORT_FILENAME = "radius.vtk"
CONDUCTIVITY_EXPORT_FILENAME = "conductivity.vtk"
PARAMETER_TABLE_FILENAME = "parameters.csv"

# Point-data array holding radii in imported network files
RADIUS_ARRAY_NAME = "radius"
# Point/cell-data array holding the branch index of each segment
BRANCH_ARRAY_NAME = "branch"

# Small epsilon for numerical stability
EPSILON = 1e-12
