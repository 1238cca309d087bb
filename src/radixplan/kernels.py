"""
Terminal kernels: non-recursive transforms used at the leaves of a plan tree.

ButterflyKernel covers the tiny sizes every factorization bottoms out in,
DirectDFTKernel and FFTWKernel handle prime sizes that mixed-radix
decomposition cannot split.
"""

import logging
import numpy as np
import pyfftw
from scipy.linalg import dft
from typing import Dict, Optional, Any

from .errors import InvalidSize, AllocationFailure
from .plan import TransformPlan, Direction
from .planning import is_allocation_feasible

logger = logging.getLogger("radixplan.kernels")

# sizes with a hand-written butterfly
BUTTERFLY_SIZES = (1, 2, 3, 4)

# FFTW settings for FFTWKernel, overridden by configure()
FFTW_PLANNER_EFFORT = 'FFTW_ESTIMATE'
FFTW_THREADS = 1
CHECK_AVAILABLE_MEMORY = True

_SIN60 = np.sqrt(3.0) / 2.0


class ButterflyKernel(TransformPlan):
    """Hand-written DFT for sizes 1 to 4."""
    method = 'butterfly'

    def __init__(self, size: int, input: np.ndarray, output: np.ndarray,
                 direction, options: Optional[Dict[str, Any]] = None):
        if size not in BUTTERFLY_SIZES:
            raise InvalidSize(f"no butterfly for size {size}; have {BUTTERFLY_SIZES}")
        super().__init__(size, input, output, direction, options)
        # +/- i for the quarter-turn, scaled by sin(60) for the third-turn
        self._rot = self.direction.sign * 1j
        self._kernel = getattr(self, f"_butterfly{size}")
        self._track()

    def _execute(self):
        self._kernel(self.input, self.output)

    def _butterfly1(self, x, y):
        y[0] = x[0]

    def _butterfly2(self, x, y):
        a, b = x[0], x[1]
        y[0] = a + b
        y[1] = a - b

    def _butterfly3(self, x, y):
        a, b, c = x[0], x[1], x[2]
        s = b + c
        m = a - 0.5 * s
        d = self._rot * _SIN60 * (b - c)
        y[0] = a + s
        y[1] = m + d
        y[2] = m - d

    def _butterfly4(self, x, y):
        a, b, c, d = x[0], x[1], x[2], x[3]
        s0 = a + c
        d0 = a - c
        s1 = b + d
        d1 = self._rot * (b - d)
        y[0] = s0 + s1
        y[1] = d0 + d1
        y[2] = s0 - s1
        y[3] = d0 - d1


class DirectDFTKernel(TransformPlan):
    """
    O(n^2) transform by multiplying with a dense DFT matrix.

    Works for any size, which makes it the default leaf for prime sizes.
    The matrix comes from scipy.linalg.dft and is conjugated for the
    inverse direction; no 1/n scaling is applied.
    """
    method = 'dft'

    def __init__(self, size: int, input: np.ndarray, output: np.ndarray,
                 direction, options: Optional[Dict[str, Any]] = None):
        if size < 1:
            raise InvalidSize(f"direct DFT needs a positive size, got {size}")
        super().__init__(size, input, output, direction, options)

        nbytes = size * size * self.output.dtype.itemsize
        check = self.options.get('check_memory', CHECK_AVAILABLE_MEMORY)
        if check and not is_allocation_feasible(nbytes):
            raise AllocationFailure(f"{size}-point DFT matrix needs {nbytes} bytes")

        try:
            matrix = dft(size)
            if self.direction is Direction.INVERSE:
                matrix = matrix.conj()
            matrix = matrix.astype(self.output.dtype, copy=False)
        except MemoryError as exc:
            raise AllocationFailure(f"cannot allocate {size}-point DFT matrix") from exc

        matrix.flags.writeable = False
        self._matrix = matrix
        self.nbytes = matrix.nbytes
        self._track()

    def _execute(self):
        self.output[:] = self._matrix @ self.input

    def _release(self):
        self._matrix = None


class FFTWKernel(TransformPlan):
    """
    Leaf transform delegated to an FFTW plan bound to the same buffers.

    Runs unnormalised in both directions. Planner efforts other than
    FFTW_ESTIMATE scribble on the buffers while planning, so their contents
    are saved first and put back once the plan exists.
    """
    method = 'fftw'

    def __init__(self, size: int, input: np.ndarray, output: np.ndarray,
                 direction, options: Optional[Dict[str, Any]] = None):
        if size < 1:
            raise InvalidSize(f"FFTW kernel needs a positive size, got {size}")
        super().__init__(size, input, output, direction, options)

        planner = self.options.get('planner_effort', FFTW_PLANNER_EFFORT)
        threads = self.options.get('threads', FFTW_THREADS)
        fftw_direction = ('FFTW_FORWARD' if self.direction is Direction.FORWARD
                          else 'FFTW_BACKWARD')
        saved_output = self.output.copy()
        saved_input = self.input.copy()
        try:
            self._fftw = pyfftw.FFTW(
                self.input, self.output,
                direction=fftw_direction,
                flags=(planner,),
                threads=threads,
            )
        except MemoryError as exc:
            raise AllocationFailure(f"cannot create {size}-point FFTW plan") from exc
        finally:
            # input last, in case input and output are the same array
            self.output[:] = saved_output
            self.input[:] = saved_input

        logger.debug(f"Created FFTW kernel for size {size} with {planner}")
        self._track()

    def _execute(self):
        # execute() skips the 1/n scaling that calling the FFTW object applies
        self._fftw.execute()

    def _release(self):
        self._fftw = None
