"""
Size factorization and resource checks used while building plans.

this module decides how a transform size is split into P x Q and whether
the buffers a plan needs fit into the memory the system has available.
"""

import psutil
import logging
from typing import Tuple, Optional, List

from .errors import InvalidSize, NotDecomposable

# set up logging
logger = logging.getLogger("radixplan.planning")

# factors a size may contain and still count as "fast"
SMALL_PRIMES = (2, 3, 5, 7)

# Memory thresholds (in GB)
LOW_MEMORY_THRESHOLD = 4
HIGH_MEMORY_THRESHOLD = 16

# bytes per complex128 element
COMPLEX_ITEMSIZE = 16


def smallest_divisor(n: int) -> Optional[int]:
    """
    Return the smallest q in [2, n) dividing n, or None when n is prime.

    The search runs upwards from 2, so the result is always prime.
    """
    q = 2
    while q * q <= n:
        if n % q == 0:
            return q
        q += 1
    # no divisor up to sqrt(n) means n itself is prime
    return None


def factorize(n: int) -> Tuple[int, int]:
    """
    Split a transform size into (P, Q) with P * Q == n.

    Q is the smallest divisor of n and P = n // Q, so the recursion runs many
    short Q-point transforms and a long P-point one.

    Args:
        n: Transform size

    Returns:
        Tuple (P, Q), both >= 2

    Raises:
        InvalidSize: n is smaller than 2
        NotDecomposable: n is prime
    """
    if n < 2:
        raise InvalidSize(f"size {n} cannot be factored; need at least 2")

    q = smallest_divisor(n)
    if q is None:
        raise NotDecomposable(n)

    return n // q, q


def is_prime(n: int) -> bool:
    """Check whether n is a prime number."""
    return n >= 2 and smallest_divisor(n) is None


def prime_factors(n: int) -> List[int]:
    """Return the prime factors of n in ascending order (with repeats)."""
    factors = []
    while n >= 2:
        q = smallest_divisor(n)
        if q is None:
            factors.append(n)
            break
        factors.append(q)
        n //= q
    return factors


def optimal_transform_size(target_size: int, max_increase: float = 0.2) -> int:
    """
    Find a transform size near target_size made only of small prime factors.

    Sizes whose factors are all in SMALL_PRIMES split into short butterfly
    kernels at every level and never need a prime-size kernel.

    Args:
        target_size: Target size for the transform
        max_increase: Maximum allowed size increase as a fraction

    Returns:
        The smallest size >= target_size with only small prime factors, or
        target_size itself when none exists within max_increase
    """
    if target_size < 2:
        return target_size

    def has_only_small_primes(n):
        for p in SMALL_PRIMES:
            while n % p == 0:
                n //= p
        return n == 1

    max_size = int(target_size * (1 + max_increase))
    for size in range(target_size, max_size + 1):
        if has_only_small_primes(size):
            return size

    return target_size


def estimate_plan_bytes(size: int, itemsize: int = COMPLEX_ITEMSIZE) -> int:
    """
    Estimate the bytes a mixed-radix plan node owns for a given size.

    A node holds two scratch buffers of max(P, Q) elements plus the
    internal working buffer and the twiddle table, N elements each.
    """
    p, q = factorize(size)
    return (2 * max(p, q) + 2 * size) * itemsize


def get_memory_limit() -> int:
    """
    Determine a safe memory limit for plan buffers in bytes.

    Returns:
        Memory limit in bytes
    """
    available_gb = psutil.virtual_memory().available / (1024**3)

    # limit to a fraction of available memory to avoid swapping
    if available_gb < LOW_MEMORY_THRESHOLD:
        # on low-memory systems, use at most 25% of available memory
        return int(available_gb * 0.25 * 1024**3)
    elif available_gb < HIGH_MEMORY_THRESHOLD:
        # on medium-memory systems, use at most 50% of available memory
        return int(available_gb * 0.5 * 1024**3)
    else:
        # on high-memory systems, use at most 75% of available memory
        return int(available_gb * 0.75 * 1024**3)


def is_allocation_feasible(nbytes: int) -> bool:
    """
    Check if allocating nbytes for plan buffers is safe on this system.

    Args:
        nbytes: Number of bytes a plan is about to allocate

    Returns:
        True if the allocation fits the memory limit, False otherwise
    """
    limit = get_memory_limit()
    if nbytes > limit:
        logger.warning(f"Plan needs {nbytes} bytes, limit is {limit} bytes")
        return False
    return True
