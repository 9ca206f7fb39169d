"""Constants for numerical stability and default bounds.

These are true constants that should not be user-configurable.
For configurable values, use the dataclasses in :mod:`catirt.config`.
"""

PROB_EPSILON: float = 1e-10
"""Small value to prevent log(0) and division by zero in probability calculations."""

PROB_CLIP_MIN: float = 0.01
"""Minimum proportion used when deriving starting values from raw scores."""

PROB_CLIP_MAX: float = 0.99
"""Maximum proportion used when deriving starting values from raw scores."""

CURVATURE_EPSILON: float = 1e-10
"""Second derivatives with magnitude below this are treated as flat."""

MIN_RECIPROCAL_CONDITION: float = 1e-12
"""Matrices with a smaller reciprocal condition number are treated as singular."""

PARAMETER_LIMIT: float = 1000.0
"""Absolute value no item parameter may exceed, whatever the trusted region says."""

DEFAULT_GUESSING: float = 0.15
"""Starting value of the lower asymptote for three-parameter models."""

ABILITY_CHANGE_THRESHOLD: float = 0.001
"""Default minimal ability change below which an attempt counts as settled."""
