"""
radixplan: mixed-radix Cooley-Tukey DFT plans for arbitrary composite sizes.

a transform size N is factored into P x Q, and the N-point DFT is computed
from P-point and Q-point sub-transforms with twiddle correction and a
transpose. the sub-transforms recurse until they reach a terminal kernel
(hand-written butterflies, a direct DFT, or FFTW for prime sizes).

Basic usage:
    import numpy as np
    import radixplan

    x = np.random.random(360) + 1j * np.random.random(360)
    y = radixplan.fft(x)          # matches np.fft.fft(x)
    x2 = radixplan.ifft(y)        # scaled by 1/N like np.fft.ifft

Plan usage:
    # plans are bound to caller-owned buffers and can be executed repeatedly
    x = np.zeros(360, dtype=np.complex128)
    y = np.empty_like(x)
    with radixplan.build_plan(360, x, y, radixplan.FORWARD) as plan:
        x[:] = samples
        plan.execute()        # y now holds the unnormalised DFT of x
        print(plan.describe())
"""

import os
import logging


__version__ = '0.1.0'
# Import core functionality
from .core import (
    # Plan API
    build_plan, create_plan, execute, destroy_plan,

    # One-shot transforms
    fft, ifft, run,

    # Cache and accounting
    clear_cache, get_stats,
)

from .plan import Direction, TransformPlan
from .mixed_radix import MixedRadixPlan, compute_twiddles
from .kernels import ButterflyKernel, DirectDFTKernel, FFTWKernel

from .errors import (
    ConstructionError, InvalidSize, NotDecomposable,
    AllocationFailure, RecursiveBuildFailure, PlanStateError,
)

# Import planning module for advanced users
from .planning import (
    factorize, smallest_divisor, is_prime, prime_factors,
    optimal_transform_size,
)

from . import core, kernels, mixed_radix

# Define package-level constants (directions)
FORWARD = Direction.FORWARD
INVERSE = Direction.INVERSE

# Configuration system
_config = {
    # Default configuration
    'cache': {
        'max_size': 64,
    },
    'planning': {
        'prime_kernel': 'dft',
        'planner_effort': 'FFTW_ESTIMATE',
        'threads': 1,
    },
    'memory': {
        'check_available': True,
    },
    'logging': {
        'level': 'WARNING',
        'trace_execute': False,
    }
}


def _update_nested_dict(d, u):
    """Update nested dictionary recursively."""
    for k, v in u.items():
        if isinstance(v, dict) and k in d and isinstance(d[k], dict):
            _update_nested_dict(d[k], v)
        else:
            d[k] = v


def configure(config_dict=None, **kwargs):
    """
    Configure radixplan global settings.

    Args:
        config_dict: Dictionary with configuration settings
        **kwargs: Configuration settings as keyword arguments

    Examples:
        # Configure with a dictionary
        radixplan.configure({
            'planning': {'prime_kernel': 'fftw'},
            'logging': {'trace_execute': True},
        })

        # Or with keyword arguments
        radixplan.configure(
            planning_prime_kernel=None,
            cache_max_size=16,
        )

    Returns:
        A copy of the resulting configuration
    """
    if config_dict:
        # Update nested dictionary recursively
        _update_nested_dict(_config, config_dict)

    # Process kwargs (flattened config)
    for key, value in kwargs.items():
        # Handle nested keys like 'cache_max_size'
        parts = key.split('_', 1)
        if len(parts) == 2 and parts[0] in _config and parts[1] in _config[parts[0]]:
            _config[parts[0]][parts[1]] = value
        else:
            logging.getLogger("radixplan").warning(f"Ignoring unknown setting {key!r}")

    # Apply configuration
    _apply_configuration()

    return {section: dict(values) for section, values in _config.items()}


def _apply_configuration():
    """Apply configuration settings to module components."""
    core.MAX_CACHE_SIZE = _config['cache']['max_size']
    core.PRIME_KERNEL = _config['planning']['prime_kernel']

    kernels.FFTW_PLANNER_EFFORT = _config['planning']['planner_effort']
    kernels.FFTW_THREADS = _config['planning']['threads']
    kernels.CHECK_AVAILABLE_MEMORY = _config['memory']['check_available']

    mixed_radix.CHECK_AVAILABLE_MEMORY = _config['memory']['check_available']
    mixed_radix.TRACE_EXECUTE = _config['logging']['trace_execute']

    # Configure logging; level names are case-insensitive
    level = str(_config['logging']['level']).upper()
    _config['logging']['level'] = level
    logging.getLogger("radixplan").setLevel(getattr(logging, level))


def _load_env_config():
    """Load configuration from environment variables."""
    # Environment variable prefix
    prefix = "RADIXPLAN_"

    settings = {}
    # Find all relevant environment variables
    for key, value in os.environ.items():
        if key.startswith(prefix):
            # Remove prefix and convert to lowercase
            config_key = key[len(prefix):].lower()

            # Try to convert value to appropriate type
            if value.isdigit():
                value = int(value)
            elif value.lower() in ('true', 'yes', 'on'):
                value = True
            elif value.lower() in ('false', 'no', 'off'):
                value = False
            elif value.lower() == 'none':
                value = None
            elif value.replace('.', '', 1).isdigit():
                value = float(value)
            elif key.endswith('_LEVEL'):
                value = value.upper()

            settings[config_key] = value

    if settings:
        configure(**settings)


# Initialize logging
def _setup_logging():
    """Set up default logging configuration."""
    logger = logging.getLogger("radixplan")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)
        logger.setLevel(getattr(logging, _config['logging']['level']))
        # Don't propagate to root logger
        logger.propagate = False


_setup_logging()

# Load environment config at startup
_load_env_config()
