"""Exception hierarchy for catirt.

Only configuration problems and caller mistakes are raised. Numeric
trouble during calibration is absorbed and reported through result
flags, and adaptive-test termination is an ordinary return value.
"""

import numpy as np


class CatIRTError(Exception):
    """Base class for all catirt errors."""


class ConfigurationError(CatIRTError, ValueError):
    """Unknown model name, unknown option or malformed bounds."""


class SingularMatrixError(CatIRTError, np.linalg.LinAlgError):
    """Linear system is singular, ill-conditioned or not finite."""


class InvalidResponseError(CatIRTError, ValueError):
    """Response data that violates the response record contract."""


class UnknownItemError(CatIRTError, KeyError):
    """Item id not present in the bound context or item pool."""


class AttemptTerminatedError(CatIRTError, RuntimeError):
    """A response was applied to an attempt that already terminated."""
