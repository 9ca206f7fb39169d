from catirt.utils.numeric import inverse, newton_step, solve
from catirt.utils.simulation import simulate_responses

__all__ = [
    "simulate_responses",
    "solve",
    "inverse",
    "newton_step",
]
