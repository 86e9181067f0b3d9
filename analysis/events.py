"""
Event Model for the OS Puzzle core.

Defines event types for tracking ledger, lifecycle and scheduler actions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EventType(Enum):
    """Types of events in the simulation."""
    ALLOCATION = "allocation"
    DENIAL = "denial"
    RELEASE = "release"
    STATE_CHANGE = "state_change"
    REMOVAL = "removal"
    DEADLOCK = "deadlock"
    DISPATCH = "dispatch"
    PREEMPTION = "preemption"
    COMPLETION = "completion"


@dataclass
class SimulationEvent:
    """
    Represents a single event in the simulation.

    Attributes:
        step: Simulated clock value when the event occurred
        event_type: Type of event
        process_id: Process involved (None for system-wide events)
        resource_type: Resource id involved (if applicable)
        amount: Units involved (if applicable)
        message: Human-readable description
        reason: Reason for a grant or denial (if applicable)
    """
    step: float
    event_type: EventType
    process_id: Optional[str]
    resource_type: Optional[str] = None
    amount: Optional[int] = None
    message: str = ""
    reason: str = ""

    def __str__(self) -> str:
        """Format event for logging."""
        base = f"t={self.step:g}: {self.process_id or 'system'}"

        if self.event_type == EventType.ALLOCATION:
            return f"{base} acquires {self.resource_type}[{self.amount}] ({self.reason})"
        elif self.event_type == EventType.DENIAL:
            return f"{base} requests {self.resource_type}[{self.amount}] - DENIED ({self.reason})"
        elif self.event_type == EventType.RELEASE:
            return f"{base} releases {self.resource_type}[{self.amount}]"
        elif self.event_type == EventType.DEADLOCK:
            return f"{base} - DEADLOCK DETECTED ({self.message})"
        elif self.event_type == EventType.COMPLETION:
            return f"{base} - FINISHED ({self.message})"
        else:
            return f"{base} - {self.event_type.value}: {self.message}"


@dataclass
class EventLog:
    """Collection of simulation events."""
    events: list = None

    def __post_init__(self):
        if self.events is None:
            self.events = []

    def add(self, event: SimulationEvent) -> None:
        """Add an event to the log."""
        self.events.append(event)

    def get_events_by_type(self, event_type: EventType) -> list:
        """Get all events of a specific type."""
        return [e for e in self.events if e.event_type == event_type]

    def get_events_by_process(self, pid: str) -> list:
        """Get all events involving one process."""
        return [e for e in self.events if e.process_id == pid]

    def count(self, event_type: EventType) -> int:
        return len(self.get_events_by_type(event_type))

    def display(self) -> str:
        """Format all events for display."""
        return "\n".join(str(event) for event in self.events)
