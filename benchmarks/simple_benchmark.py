#!/usr/bin/env python
"""
Simple FFT Benchmarking Tool

Compares radixplan plan execution with NumPy's FFT for composite sizes and
reports the maximum error against NumPy.
"""

import numpy as np
import time
import os
import sys
import gc

# Add the src directory to the Python path if needed
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

import radixplan

# Set up benchmark parameters
REPEATS = 10  # Number of times to repeat each measurement for consistency
WARMUP_RUNS = 2  # Number of warmup runs before timing

POW2_SIZES = [64, 256, 1024, 4096]
NONPOW2_SIZES = [60, 360, 1000, 2310]

# Avoid too large sizes on smaller systems
if os.environ.get('SIMPLE_BENCHMARK', '').lower() == 'small':
    POW2_SIZES = [64, 256]
    NONPOW2_SIZES = [60, 360]


def benchmark_function(func, repeats=REPEATS):
    """Benchmark a zero-argument callable."""
    for _ in range(WARMUP_RUNS):
        func()

    # Garbage collect to reduce interference
    gc.collect()

    times = []
    for _ in range(repeats):
        start = time.time()
        func()
        times.append(time.time() - start)

    return {
        'mean': sum(times) / len(times),
        'min': min(times),
        'max': max(times),
    }


def format_time(seconds):
    """Format time in a human-readable way."""
    if seconds < 0.001:
        return f"{seconds * 1e6:.2f} us"
    elif seconds < 1:
        return f"{seconds * 1e3:.2f} ms"
    else:
        return f"{seconds:.2f} s"


def run_size(n):
    x = np.random.random(n) + 1j * np.random.random(n)
    y = np.empty_like(x)

    start = time.time()
    plan = radixplan.build_plan(n, x, y, radixplan.FORWARD)
    build_time = time.time() - start

    plan_stats = benchmark_function(plan.execute)
    numpy_stats = benchmark_function(lambda: np.fft.fft(x))
    error = np.max(np.abs(y - np.fft.fft(x)))
    plan.destroy()

    return build_time, plan_stats, numpy_stats, error


def main():
    print(f"{'size':>6} {'factors':>18} {'build':>10} {'radixplan':>10} {'numpy':>10} {'max err':>10}")
    for n in POW2_SIZES + NONPOW2_SIZES:
        build_time, plan_stats, numpy_stats, error = run_size(n)
        factors = 'x'.join(str(f) for f in radixplan.prime_factors(n))
        print(f"{n:>6} {factors:>18} {format_time(build_time):>10} "
              f"{format_time(plan_stats['mean']):>10} {format_time(numpy_stats['mean']):>10} "
              f"{error:>10.2e}")


if __name__ == "__main__":
    main()
