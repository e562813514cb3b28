"""
Default configuration for network generation and contagion simulation.
"""

import logging
from typing import Any, Dict

from errors import InvalidParameter


# ============================================================================
# SIMULATION
# ============================================================================
SIMULATION_CONFIG = {
    # Clearing
    'MAX_ITERATIONS': 100,
    'CONVERGENCE_TOLERANCE': 0.001,

    # Shock series
    'SERIES_STEPS': 11,             # 0.0, 0.1, ..., 1.0
    'MAX_SHOCK_MAGNITUDE': 1.0,
    'THRESHOLD_MIN_DEFAULT_RATE': 0.1,
    'MAX_WORKERS': 1,               # >1 runs sweep points on a thread pool

    'LOG_LEVEL': 'INFO',
}


# ============================================================================
# NETWORK POLICIES
# ============================================================================
RANDOM_POLICY = {
    'TRIALS_PER_BANK': 100,         # obligation ~ Binomial(100 * n, 0.2)
    'TRIAL_PROBABILITY': 0.2,
}

CORE_PERIPHERY_POLICY = {
    'CORE_CORE': (1500, 0.8),
    'CORE_TO_PERIPHERY': (1000, 0.8),   # core owes periphery
    'PERIPHERY_TO_CORE': (500, 0.7),    # periphery owes core
    'PERIPHERY_PERIPHERY': (200, 0.7),
    'CORE_BASE_ASSET': 5000.0,
    'PERIPHERY_BASE_ASSET': 1000.0,
    'DEFICIT_COVER': 1.1,
    'LIABILITY_RATIO': 0.5,
}

# Reference case: 110 - 100 = 10 only because of these constants, the
# net worth is not derived from them.
TRIVIAL_POLICY = {
    'OBLIGATION': 400.0,
    'OUTSIDE_ASSET': 110.0,
    'OUTSIDE_LIABILITY': 100.0,
    'NET_WORTH': 10.0,
}

DEFAULT_NETWORK_PARAMS = {
    'random': {'nodes': 10, 'connection_probability': 0.2},
    'core_periphery': {
        'core_nodes': 5,
        'periphery_nodes': 15,
        'core_connection_probability': 0.7,
        'periphery_connection_probability': 0.2,
    },
    'trivial': {'nodes': 10},
}


def get_config(**overrides: Any) -> Dict[str, Any]:
    """
    Return a copy of SIMULATION_CONFIG with overrides applied.

    Raises:
        InvalidParameter: If an override names an unknown key
    """
    config = dict(SIMULATION_CONFIG)
    for key, value in overrides.items():
        name = key.upper()
        if name not in config:
            raise InvalidParameter(f"Unknown configuration key: {key}")
        config[name] = value
    return config


def configure_logging(level: str = SIMULATION_CONFIG['LOG_LEVEL']) -> None:
    """Attach a basic stderr handler; used by the command-line entry point."""
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        raise InvalidParameter(f"Unknown log level: {level}")
    logging.basicConfig(
        level=numeric,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
