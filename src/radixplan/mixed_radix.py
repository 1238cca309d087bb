"""
Mixed-radix Cooley-Tukey plans for composite transform sizes.

a size N is split into N = P * Q (Q the smallest divisor). the N input
samples are viewed as a P x Q grid with index = Q * row + col:

    1. Q transforms of size P run down the columns; each result is
       multiplied by the twiddle factor W_N^(col * row).
    2. P transforms of size Q run along the rows; each result is written
       transposed to output[col * P + row], which is natural frequency order.

the two sub-transforms are plans themselves (built by a factory, usually
radixplan.core.create_plan), so composite P or Q recurse further until a
terminal kernel is reached. both children are bound to the same pair of
scratch buffers owned by the parent; the parent gathers into scratch_a,
runs the child, and reads scratch_b back.
"""

import logging
import numpy as np
import pyfftw
from typing import Dict, Optional, Any, Callable, Tuple

from .errors import (
    InvalidSize, AllocationFailure, ConstructionError, RecursiveBuildFailure,
)
from .plan import TransformPlan, Direction
from .planning import factorize, estimate_plan_bytes, is_allocation_feasible

# overridden by configure()
TRACE_EXECUTE = False
CHECK_AVAILABLE_MEMORY = True


def compute_twiddles(size: int, direction, dtype=np.complex128) -> np.ndarray:
    """
    Return the read-only table exp(sign * 2j * pi * i / size) for i in [0, size).

    sign is -1 for forward and +1 for inverse transforms.
    """
    direction = Direction.coerce(direction)
    angles = direction.sign * 2.0 * np.pi * np.arange(size) / size
    twiddles = np.exp(1j * angles).astype(dtype, copy=False)
    twiddles.flags.writeable = False
    return twiddles


class MixedRadixPlan(TransformPlan):
    """
    Cooley-Tukey plan computing an N-point DFT from a P-point and a Q-point one.

    Args:
        size: Transform size N, composite
        input: Borrowed complex buffer of length N read by execute()
        output: Borrowed complex buffer of length N written by execute();
            may be the same array as input
        direction: Direction.FORWARD / Direction.INVERSE or 'forward' / 'inverse'
        options: Opaque dict handed unchanged to the child plans
        factory: Callable(size, input, output, direction, options) building
            the sub-transforms (defaults to radixplan.core.create_plan)
        logger: Logger receiving trace records (defaults to radixplan.mixed_radix)

    Raises:
        InvalidSize: size is not an integer >= 2
        NotDecomposable: size is prime
        AllocationFailure: buffers do not fit in memory
        RecursiveBuildFailure: one of the sub-transforms could not be built
    """
    method = 'mixed-radix'

    def __init__(self, size: int, input: np.ndarray, output: np.ndarray,
                 direction=Direction.FORWARD,
                 options: Optional[Dict[str, Any]] = None,
                 factory: Optional[Callable[..., TransformPlan]] = None,
                 logger: Optional[logging.Logger] = None):
        if isinstance(size, bool) or not isinstance(size, (int, np.integer)) or size < 2:
            raise InvalidSize(f"mixed-radix plan needs an integer size >= 2, got {size!r}")
        size = int(size)

        # raises NotDecomposable for primes before anything is allocated
        factor_p, factor_q = factorize(size)

        super().__init__(size, input, output, direction, options)
        self.factor_p = factor_p
        self.factor_q = factor_q
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.trace = bool(self.options.get('trace', TRACE_EXECUTE))

        if factory is None:
            # core imports this module
            from .core import create_plan as factory
        self._factory = factory

        self.scratch_a = None
        self.scratch_b = None
        self.internal_buffer = None
        self.twiddle_table = None
        self.child_p = None
        self.child_q = None

        try:
            self._allocate()
            self._track()
            self.child_p = self._build_child(factor_p)
            self.child_q = self._build_child(factor_q)
        except BaseException:
            self.destroy()
            raise

        self.logger.debug(f"Built mixed-radix plan {size} = {factor_p} x {factor_q} "
                          f"({self.direction.name.lower()})")

    @property
    def external_input(self) -> np.ndarray:
        return self.input

    @property
    def external_output(self) -> np.ndarray:
        return self.output

    @property
    def children(self) -> Tuple[TransformPlan, ...]:
        return tuple(c for c in (self.child_p, self.child_q) if c is not None)

    def _allocate(self):
        dtype = self.output.dtype
        nbytes = estimate_plan_bytes(self.size, dtype.itemsize)
        check = self.options.get('check_memory', CHECK_AVAILABLE_MEMORY)
        if check and not is_allocation_feasible(nbytes):
            raise AllocationFailure(f"{self.size}-point plan needs {nbytes} bytes")

        scratch_len = max(self.factor_p, self.factor_q)
        try:
            self.scratch_a = pyfftw.empty_aligned(scratch_len, dtype=dtype)
            self.scratch_b = pyfftw.empty_aligned(scratch_len, dtype=dtype)
            self.internal_buffer = pyfftw.empty_aligned(self.size, dtype=dtype)
            self.twiddle_table = compute_twiddles(self.size, self.direction, dtype)
        except MemoryError as exc:
            raise AllocationFailure(f"cannot allocate buffers for {self.size}-point plan") from exc

        self.nbytes = sum(buf.nbytes for buf in (
            self.scratch_a, self.scratch_b, self.internal_buffer, self.twiddle_table))

    def _build_child(self, child_size: int) -> TransformPlan:
        # children see only the leading child_size elements of the scratch pair
        try:
            return self._factory(child_size,
                                 self.scratch_a[:child_size],
                                 self.scratch_b[:child_size],
                                 self.direction,
                                 self.options)
        except RecursiveBuildFailure:
            raise
        except (ConstructionError, MemoryError) as exc:
            raise RecursiveBuildFailure(self.size, child_size, exc) from exc

    def _execute(self):
        p = self.factor_p
        q = self.factor_q
        x = self.internal_buffer
        t0 = self.scratch_a
        t1 = self.scratch_b
        twiddle = self.twiddle_table

        np.copyto(x, self.input)

        # Q transforms of size P down the columns, then twiddle
        if self.trace:
            self.logger.debug(f"[{self.size}] computing {q} DFTs of size {p}")
        for col in range(q):
            t0[:p] = x[col::q]
            self.child_p.execute()
            if col:
                # twiddle[col * row] for row in [0, p); col * (p - 1) < N
                x[col::q] = t1[:p] * twiddle[:col * p:col]
            else:
                x[col::q] = t1[:p]
            if self.trace:
                self.logger.debug(f"[{self.size}] column {col}/{q}: {x[col::q]}")

        # P transforms of size Q along the rows, transposed into the output
        if self.trace:
            self.logger.debug(f"[{self.size}] computing {p} DFTs of size {q}")
        for row in range(p):
            t0[:q] = x[q * row:q * (row + 1)]
            self.child_q.execute()
            self.output[row::p] = t1[:q]
            if self.trace:
                self.logger.debug(f"[{self.size}] row {row}/{p}: {self.output[row::p]}")

    def _release(self):
        for child in (self.child_p, self.child_q):
            if child is not None:
                child.destroy()
        self.child_p = None
        self.child_q = None
        self.scratch_a = None
        self.scratch_b = None
        self.internal_buffer = None
        self.twiddle_table = None

    def _describe_node(self) -> str:
        return (f"{self.method}({self.size} = {self.factor_p} x {self.factor_q}, "
                f"{self.direction.name.lower()})")
