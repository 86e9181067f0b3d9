"""
Process model for the OS Puzzle core.

Represents a process with its lifecycle state, scheduling attributes and
per-resource allocation / demand vectors.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
from enum import Enum

from models.errors import InvalidTransition


class ProcessState(Enum):
    """Process lifecycle states."""
    NEW = "new"
    READY = "ready"
    RUNNING = "running"
    WAITING = "waiting"
    TERMINATED = "terminated"


# Legal lifecycle edges. TERMINATED is absorbing, nothing re-enters NEW.
TRANSITIONS = {
    ProcessState.NEW: {ProcessState.READY},
    ProcessState.READY: {ProcessState.RUNNING},
    ProcessState.RUNNING: {ProcessState.WAITING, ProcessState.TERMINATED},
    ProcessState.WAITING: {ProcessState.READY},
    ProcessState.TERMINATED: set(),
}


def can_transition(current: ProcessState, target: ProcessState) -> bool:
    """Check whether current -> target is a legal lifecycle edge."""
    return target in TRANSITIONS[current]


@dataclass
class Process:
    """
    Represents a process in the operating system simulation.

    Attributes:
        pid: Process identifier (unique)
        name: Display name
        arrival_time: Simulated time the process enters the system
        burst_time: Total CPU time required
        priority: Scheduling priority (lower value = more urgent)
        max_demand: Declared maximum units per resource id
        allocation: Units currently held per resource id
        state: Current lifecycle state
        remaining_time: Burst time not yet consumed
        pending: Units the process is blocked on, per resource id
        need: max_demand - allocation, floored at 0 (derived)
        start_time: Clock value of the first dispatch
        finish_time: Clock value at completion
        waiting_time: turnaround_time - burst_time
        turnaround_time: finish_time - arrival_time
        response_time: start_time - arrival_time
    """
    pid: str
    name: str
    arrival_time: float = 0
    burst_time: float = 0
    priority: int = 0
    max_demand: Dict[str, int] = field(default_factory=dict)
    allocation: Dict[str, int] = field(default_factory=dict)
    state: ProcessState = ProcessState.NEW
    remaining_time: Optional[float] = None
    pending: Dict[str, int] = field(default_factory=dict)
    need: Dict[str, int] = field(default_factory=dict)
    start_time: Optional[float] = None
    finish_time: Optional[float] = None
    waiting_time: Optional[float] = None
    turnaround_time: Optional[float] = None
    response_time: Optional[float] = None

    def __post_init__(self):
        """Fill derived fields."""
        if self.remaining_time is None:
            self.remaining_time = self.burst_time
        self.refresh_need()

    def refresh_need(self) -> None:
        """Recompute need[r] = max(0, max[r] - allocation[r]) for every resource."""
        resource_ids = set(self.max_demand) | set(self.allocation)
        self.need = {
            rid: max(0, self.max_demand.get(rid, 0) - self.allocation.get(rid, 0))
            for rid in sorted(resource_ids)
        }

    def need_for(self, resource_id: str) -> int:
        """Remaining claim on one resource."""
        return self.need.get(resource_id, 0)

    def held(self, resource_id: str) -> int:
        """Units of one resource currently held."""
        return self.allocation.get(resource_id, 0)

    def is_finished(self) -> bool:
        """True once the process has terminated."""
        return self.state == ProcessState.TERMINATED

    def has_arrived(self, clock: float) -> bool:
        """True if the process has entered the system by this clock value."""
        return self.arrival_time <= clock

    def holds_anything(self) -> bool:
        """True if the process holds at least one unit of any resource."""
        return any(units > 0 for units in self.allocation.values())

    def transition(self, target: ProcessState, clock: float = 0) -> None:
        """
        Move to a new lifecycle state.

        The first entry into RUNNING stamps start_time and response_time;
        later dispatches after preemption leave them alone.

        Args:
            target: Requested state
            clock: Current simulated time

        Raises:
            InvalidTransition: If the edge is not in the state machine
        """
        if not can_transition(self.state, target):
            raise InvalidTransition(self.pid, self.state, target)

        if target == ProcessState.RUNNING and self.start_time is None:
            self.start_time = clock
            self.response_time = clock - self.arrival_time
        self.state = target

    def complete(self, finish_time: float) -> None:
        """
        Stamp completion timing fields.

        Args:
            finish_time: Clock value when remaining_time reached 0
        """
        self.remaining_time = 0
        self.finish_time = finish_time
        self.turnaround_time = finish_time - self.arrival_time
        self.waiting_time = self.turnaround_time - self.burst_time

    def reset_timing(self) -> None:
        """Restore the pre-run scheduling fields."""
        self.remaining_time = self.burst_time
        self.start_time = None
        self.finish_time = None
        self.waiting_time = None
        self.turnaround_time = None
        self.response_time = None

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"Process(pid={self.pid}, priority={self.priority}, "
            f"state={self.state.value}, alloc={self.allocation}, "
            f"max={self.max_demand})"
        )
