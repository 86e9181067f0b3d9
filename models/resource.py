"""
Resource model for the OS Puzzle core.

A resource type with a fixed number of units and a sparse ledger of
which process holds how many of them.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from models.errors import InsufficientResource, InvariantViolation


@dataclass
class Resource:
    """
    Represents a resource type in the operating system simulation.

    Attributes:
        resource_id: Resource identifier (unique)
        name: Display name (e.g. "CPU", "Memory")
        total: Total number of units
        available: Units not currently held by any process
        allocated: Units held per process id (absent key means none held)
        maximum: Declared maximum claim per process id (Banker's ceiling)

    Invariant:
        available + sum(allocated.values()) == total
    """
    resource_id: str
    name: str
    total: int
    available: int = -1
    allocated: Dict[str, int] = field(default_factory=dict)
    maximum: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        """Validate resource state."""
        if self.total <= 0:
            raise ValueError(f"Resource {self.resource_id}: total must be positive")
        if self.available < 0:
            self.available = self.total - sum(self.allocated.values())
        self.check_invariant()

    @property
    def allocated_units(self) -> int:
        """Units currently held by all processes together."""
        return sum(self.allocated.values())

    @property
    def is_exhausted(self) -> bool:
        """True when no unit is left to hand out."""
        return self.available == 0

    def held_by(self, pid: str) -> int:
        """Units currently held by a process (0 if none)."""
        return self.allocated.get(pid, 0)

    def holders(self) -> List[Tuple[str, int]]:
        """(pid, units) pairs for every process holding this resource."""
        return sorted(self.allocated.items())

    def allocate(self, pid: str, amount: int) -> None:
        """
        Hand out units to a process.

        Args:
            pid: Receiving process
            amount: Number of units; 0 changes nothing

        Raises:
            ValueError: If amount is negative
            InsufficientResource: If amount exceeds available units
        """
        if amount < 0:
            raise ValueError(f"Resource {self.resource_id}: allocation amount cannot be negative")
        if amount == 0:
            return
        if amount > self.available:
            raise InsufficientResource(self.resource_id, amount, self.available)

        self.available -= amount
        self.allocated[pid] = self.allocated.get(pid, 0) + amount
        self.check_invariant()

    def release(self, pid: str, amount: int) -> int:
        """
        Return units held by a process to the pool.

        Releases min(amount, held) so the holding never goes negative.
        The ledger entry is dropped when it reaches zero.

        Args:
            pid: Releasing process
            amount: Units to release

        Returns:
            Number of units actually released
        """
        held = self.allocated.get(pid, 0)
        released = min(max(amount, 0), held)
        if released == 0:
            return 0

        remaining = held - released
        if remaining == 0:
            del self.allocated[pid]
        else:
            self.allocated[pid] = remaining
        self.available += released
        self.check_invariant()
        return released

    def release_all(self, pid: str) -> int:
        """Release every unit held by a process."""
        return self.release(pid, self.held_by(pid))

    def check_invariant(self) -> None:
        """
        Verify units are conserved.

        Raises:
            InvariantViolation: If available + allocated != total, or a
                count went negative
        """
        if self.available < 0 or self.available > self.total:
            raise InvariantViolation(
                f"Resource {self.resource_id}: available={self.available} "
                f"outside [0, {self.total}]"
            )
        if any(units <= 0 for units in self.allocated.values()):
            raise InvariantViolation(
                f"Resource {self.resource_id}: non-positive ledger entry in {self.allocated}"
            )
        if self.available + self.allocated_units != self.total:
            raise InvariantViolation(
                f"Resource {self.resource_id}: allocated={self.allocated_units} + "
                f"available={self.available} != total={self.total}"
            )
