"""
Common plan interface shared by every transform strategy.

a plan is bound at construction to a borrowed input and output buffer and
computes an unnormalised DFT from one to the other each time execute() is
called. mixed-radix plans and terminal kernels all derive from TransformPlan,
so a mixed-radix plan can use any of them as a sub-transform.
"""

import enum
import threading
import numpy as np
from typing import Dict, Optional, Any, Tuple

from .errors import PlanStateError

# accounting of every plan node that currently owns memory
_registry_lock = threading.RLock()
_registry = {
    'live_plans': 0,
    'live_bytes': 0,
    'plans_built': 0,
    'plans_destroyed': 0,
}


class Direction(enum.Enum):
    """Transform direction; the value is the sign of the twiddle exponent."""
    FORWARD = -1
    INVERSE = 1

    @property
    def sign(self) -> int:
        return self.value

    @classmethod
    def coerce(cls, value) -> "Direction":
        """Accept a Direction, a sign (-1/+1) or a name like 'forward'."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            name = value.strip().lower()
            if name == 'forward':
                return cls.FORWARD
            if name in ('inverse', 'backward', 'reverse'):
                return cls.INVERSE
        elif not isinstance(value, bool) and value in (-1, 1):
            return cls(value)
        raise ValueError(f"unknown transform direction: {value!r}")


def check_buffer(buffer, size: int, name: str) -> np.ndarray:
    """Validate that buffer is a 1-D complex ndarray holding exactly size values."""
    if not isinstance(buffer, np.ndarray):
        raise ValueError(f"{name} buffer must be a numpy array, got {type(buffer).__name__}")
    if buffer.ndim != 1 or buffer.shape[0] != size:
        raise ValueError(f"{name} buffer must have shape ({size},), got {buffer.shape}")
    if not np.issubdtype(buffer.dtype, np.complexfloating):
        raise ValueError(f"{name} buffer must be complex, got {buffer.dtype}")
    return buffer


def get_registry_stats() -> Dict[str, int]:
    """Return a snapshot of the live-plan counters."""
    with _registry_lock:
        return dict(_registry)


def _register(plan: "TransformPlan"):
    with _registry_lock:
        _registry['live_plans'] += 1
        _registry['live_bytes'] += plan.nbytes
        _registry['plans_built'] += 1


def _unregister(plan: "TransformPlan"):
    with _registry_lock:
        _registry['live_plans'] -= 1
        _registry['live_bytes'] -= plan.nbytes
        _registry['plans_destroyed'] += 1


class TransformPlan:
    """
    Base class for a prepared transform of a fixed size and direction.

    Subclasses implement _execute() and, if they own buffers or child plans,
    _release(). A plan must not be executed from two threads at once; doing
    so raises PlanStateError instead of corrupting its working buffers.
    """
    method = 'abstract'

    def __init__(self, size: int, input: np.ndarray, output: np.ndarray,
                 direction, options: Optional[Dict[str, Any]] = None):
        self.size = size
        self.direction = Direction.coerce(direction)
        self.input = check_buffer(input, size, 'input')
        self.output = check_buffer(output, size, 'output')
        self.options = options if options is not None else {}
        self.nbytes = 0
        self._destroyed = False
        self._registered = False
        self._busy = threading.Lock()

    @property
    def children(self) -> Tuple["TransformPlan", ...]:
        return ()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def _track(self):
        """Record this node in the live-plan registry once its buffers exist."""
        if not self._registered:
            self._registered = True
            _register(self)

    def execute(self):
        """Read self.input and write its DFT to self.output."""
        if self._destroyed:
            raise PlanStateError(f"{self.method} plan of size {self.size} was destroyed")
        if not self._busy.acquire(blocking=False):
            raise PlanStateError(
                f"{self.method} plan of size {self.size} is already executing"
            )
        try:
            self._execute()
        finally:
            self._busy.release()

    def _execute(self):
        raise NotImplementedError

    def destroy(self):
        """Release owned buffers and child plans. Safe to call more than once."""
        if self._destroyed:
            return
        self._destroyed = True
        self._release()
        if self._registered:
            self._registered = False
            _unregister(self)

    def _release(self):
        pass

    def describe(self, indent: int = 0) -> str:
        """Return an indented text tree of this plan and its children."""
        lines = [' ' * indent + self._describe_node()]
        for child in self.children:
            lines.append(child.describe(indent + 2))
        return '\n'.join(lines)

    def _describe_node(self) -> str:
        return f"{self.method}({self.size}, {self.direction.name.lower()})"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.destroy()
        return False

    def __repr__(self):
        state = 'destroyed' if self._destroyed else 'built'
        return (f"<{type(self).__name__} size={self.size} "
                f"direction={self.direction.name} {state}>")
