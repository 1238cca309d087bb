"""
Plan factory and user-facing transform functions.

this module picks a strategy for each transform size (butterfly, prime
kernel, or mixed-radix recursion), exposes the build/execute/destroy plan
API, and provides one-shot fft/ifft functions backed by a plan cache.
"""

import threading
import logging
import numpy as np
import pyfftw
from collections import OrderedDict
from typing import Dict, Tuple, Optional, Any

from .errors import InvalidSize
from .plan import TransformPlan, Direction, get_registry_stats
from .planning import is_prime
from .kernels import ButterflyKernel, DirectDFTKernel, FFTWKernel, BUTTERFLY_SIZES
from .mixed_radix import MixedRadixPlan

logger = logging.getLogger("radixplan.core")

# configuration constants, overridden by configure()
PRIME_KERNEL = 'dft'  # 'dft', 'fftw' or None
MAX_CACHE_SIZE = 64   # plans kept by fft()/ifft()

PRIME_KERNELS = {
    'dft': DirectDFTKernel,
    'fftw': FFTWKernel,
}

_cache_lock = threading.RLock()  # also serialises execution of cached plans
_plan_cache: "OrderedDict[Tuple, TransformPlan]" = OrderedDict()


def create_plan(size: int, input: np.ndarray, output: np.ndarray,
                direction=Direction.FORWARD,
                options: Optional[Dict[str, Any]] = None) -> TransformPlan:
    """
    Build a plan for any positive size, choosing the strategy per size.

    Sizes up to 4 get a butterfly, primes get the configured prime kernel,
    everything else a mixed-radix plan whose children come from this
    function again. With no prime kernel configured, primes fall through to
    the mixed-radix plan and raise NotDecomposable.

    Args:
        size: Transform size
        input: Complex buffer of length size read by execute()
        output: Complex buffer of length size written by execute()
        direction: Direction.FORWARD or Direction.INVERSE
        options: Opaque options dict; 'prime_kernel' overrides PRIME_KERNEL

    Returns:
        A TransformPlan bound to input and output
    """
    if options is None:
        options = {}
    if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 1:
        raise InvalidSize(f"transform size must be a positive integer, got {size!r}")
    size = int(size)

    if size in BUTTERFLY_SIZES:
        return ButterflyKernel(size, input, output, direction, options)

    if is_prime(size):
        kernel = options.get('prime_kernel', PRIME_KERNEL)
        if kernel is not None:
            try:
                kernel_cls = PRIME_KERNELS[kernel]
            except KeyError:
                raise ValueError(f"unknown prime kernel {kernel!r}; "
                                 f"choose from {sorted(PRIME_KERNELS)} or None")
            return kernel_cls(size, input, output, direction, options)
        logger.debug(f"No prime kernel configured for size {size}")

    return MixedRadixPlan(size, input, output, direction, options, factory=create_plan)


def build_plan(size: int, input: np.ndarray, output: np.ndarray,
               direction=Direction.FORWARD,
               options: Optional[Dict[str, Any]] = None) -> MixedRadixPlan:
    """
    Build a mixed-radix plan for a composite size.

    Unlike create_plan() this never picks another strategy for the top level:
    sizes 0 and 1 raise InvalidSize and primes raise NotDecomposable.
    Sub-transforms are still chosen by create_plan().
    """
    return MixedRadixPlan(size, input, output, direction, options, factory=create_plan)


def execute(plan: TransformPlan):
    """Run a plan: read its input buffer, write its output buffer."""
    plan.execute()


def destroy_plan(plan: TransformPlan):
    """Release everything a plan owns, including its children."""
    plan.destroy()


def _as_input(a) -> np.ndarray:
    a = np.asarray(a)
    if a.ndim != 1:
        raise ValueError(f"only 1-D transforms are supported, got shape {a.shape}")
    if not np.issubdtype(a.dtype, np.complexfloating):
        a = a.astype(np.complex128)
    return np.ascontiguousarray(a)


def _norm_scale(norm: Optional[str], n: int, direction: Direction) -> float:
    if norm is None or norm == 'backward':
        return 1.0 / n if direction is Direction.INVERSE else 1.0
    if norm == 'ortho':
        return 1.0 / np.sqrt(n)
    if norm == 'forward':
        return 1.0 / n if direction is Direction.FORWARD else 1.0
    raise ValueError(f"invalid norm {norm!r}; expected None, 'backward', 'ortho' or 'forward'")


def _get_cached_plan(size: int, direction: Direction, dtype) -> TransformPlan:
    """Return a cached plan with its own aligned buffers, building it if needed."""
    key = (size, direction, np.dtype(dtype))
    with _cache_lock:
        plan = _plan_cache.get(key)
        if plan is not None:
            _plan_cache.move_to_end(key)
            return plan

        input = pyfftw.empty_aligned(size, dtype=dtype)
        output = pyfftw.empty_aligned(size, dtype=dtype)
        plan = create_plan(size, input, output, direction)
        _plan_cache[key] = plan

        # evict least recently used plans
        while len(_plan_cache) > max(MAX_CACHE_SIZE, 1):
            old_key, old_plan = _plan_cache.popitem(last=False)
            old_plan.destroy()
            logger.debug(f"Evicted cached plan for size {old_key[0]}")

        return plan


def _transform(a, direction: Direction, norm: Optional[str]) -> np.ndarray:
    a = _as_input(a)
    n = a.shape[0]
    if n < 1:
        raise InvalidSize("cannot transform an empty array")

    with _cache_lock:
        plan = _get_cached_plan(n, direction, a.dtype)
        plan.input[:] = a
        plan.execute()
        result = plan.output.copy()

    scale = _norm_scale(norm, n, direction)
    if scale != 1.0:
        result *= scale
    return result


def fft(a, norm: Optional[str] = None) -> np.ndarray:
    """
    Compute the 1-D discrete Fourier transform of a.

    Args:
        a: 1-D array_like; real input is converted to complex128
        norm: Normalization mode, as in numpy.fft (None, 'backward',
            'ortho' or 'forward')

    Returns:
        New complex array with the transform of a
    """
    return _transform(a, Direction.FORWARD, norm)


def ifft(a, norm: Optional[str] = None) -> np.ndarray:
    """
    Compute the 1-D inverse discrete Fourier transform of a.

    With the default norm the result is scaled by 1/n, so ifft(fft(a)) == a.
    """
    return _transform(a, Direction.INVERSE, norm)


def run(x, direction=Direction.FORWARD,
        options: Optional[Dict[str, Any]] = None) -> np.ndarray:
    """
    Build a plan for x, execute it once and destroy it. No scaling is applied.

    Args:
        x: 1-D array_like input
        direction: Direction.FORWARD / Direction.INVERSE or 'forward' / 'inverse'
        options: Options dict passed to create_plan()

    Returns:
        New complex array with the unnormalised transform of x
    """
    x = _as_input(x)
    y = np.empty_like(x)
    with create_plan(x.shape[0], x, y, direction, options) as plan:
        plan.execute()
    return y


def clear_cache():
    """Destroy every plan cached by fft() and ifft()."""
    with _cache_lock:
        while _plan_cache:
            _, plan = _plan_cache.popitem(last=False)
            plan.destroy()


def get_stats() -> Dict[str, int]:
    """
    Get plan accounting counters.

    Returns:
        Dict with live_plans, live_bytes, plans_built, plans_destroyed
        (counted per plan node, children included) and cached_plans
    """
    stats = get_registry_stats()
    with _cache_lock:
        stats['cached_plans'] = len(_plan_cache)
    return stats
