"""
Exceptions raised while building or running transform plans.

construction errors are recoverable: a caller that gets NotDecomposable
is expected to retry the size with another strategy.
"""


class ConstructionError(ValueError):
    """Base class for errors raised while building a plan."""


class InvalidSize(ConstructionError):
    """Raised when a size is not eligible for a strategy (e.g. 0 or 1)."""


class NotDecomposable(ConstructionError):
    """Raised when a size is prime and cannot be split into P x Q."""

    def __init__(self, size):
        self.size = size
        super().__init__(f"size {size} is prime and not decomposable by mixed-radix")


class AllocationFailure(ConstructionError, MemoryError):
    """Raised when plan buffers cannot be allocated."""


class RecursiveBuildFailure(ConstructionError):
    """Raised when building a child plan fails; the original error is __cause__."""

    def __init__(self, size, child_size, reason):
        self.size = size
        self.child_size = child_size
        super().__init__(
            f"building {child_size}-point child of {size}-point plan failed: {reason}"
        )


class PlanStateError(RuntimeError):
    """Raised when a plan is executed after destroy() or while already executing."""
