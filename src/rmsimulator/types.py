"""Type definitions for rmsimulator."""

from collections.abc import Callable
from typing import Literal, TypeAlias

# Returns wall-clock time as integer epoch milliseconds
Clock: TypeAlias = Callable[[], int]

# What to do when a renewal discovers the lease was taken over
LeaseLostPolicy: TypeAlias = Literal["reacquire", "continue"]
