"""Core utility functions with no internal dependencies.

This module provides the logistic primitives shared by every response
model. It has no dependencies on other catirt modules, avoiding circular
import issues.
"""

import numpy as np
from numpy.typing import NDArray


def sigmoid(x: NDArray[np.floating] | float) -> NDArray[np.floating] | float:
    """Compute sigmoid function with numerical stability.

    Uses the identity sigmoid(-x) = 1 - sigmoid(x) to avoid overflow
    for large negative values.

    Parameters
    ----------
    x : array_like or float
        Input values.

    Returns
    -------
    array_like or float
        Sigmoid of input, same shape as input.
    """
    x = np.asarray(x, dtype=np.float64)
    with np.errstate(over="ignore"):
        result = np.where(
            x >= 0, 1.0 / (1.0 + np.exp(-x)), np.exp(x) / (1.0 + np.exp(x))
        )
    return float(result) if result.ndim == 0 else result


def log_sigmoid(x: NDArray[np.floating] | float) -> NDArray[np.floating] | float:
    """Compute log(sigmoid(x)) without forming sigmoid(x).

    Parameters
    ----------
    x : array_like or float
        Input values.

    Returns
    -------
    array_like or float
        ``-log(1 + exp(-x))``, same shape as input.
    """
    x = np.asarray(x, dtype=np.float64)
    result = -np.logaddexp(0.0, -x)
    return float(result) if result.ndim == 0 else result


def logit(p: NDArray[np.floating] | float) -> NDArray[np.floating] | float:
    """Inverse of :func:`sigmoid` for probabilities strictly inside (0, 1)."""
    p = np.asarray(p, dtype=np.float64)
    result = np.log(p) - np.log1p(-p)
    return float(result) if result.ndim == 0 else result
