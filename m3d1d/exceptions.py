# m3d1d/exceptions.py
"""Error types raised while assembling the coupled 3D/1D parameters."""


class ParameterError(Exception):
    """Base class for all errors raised by the parameter stage."""


class ConfigurationError(ParameterError, ValueError):
    """Missing or ill-typed configuration key, or a forbidden flag combination."""


class PhysicalParameterError(ParameterError, ValueError):
    """Derived coefficients do not describe a well-posed coupled problem."""


class StateError(ParameterError, RuntimeError):
    """Accessor used before the parameters were built."""


class RadiusImportError(ParameterError, IOError):
    """Radius profile could not be read or does not match the vessel mesh."""


class ExportError(ParameterError, IOError):
    """Diagnostic field could not be written."""
