"""
Deadlock Detection for the OS Puzzle core.

Two checks live here:

- detect_deadlock: the cheap heuristic run after every mutation during
  live play. A deadlock is flagged when some WAITING process holds, or is
  blocked on, a resource with no units left. It signals risk; it does not
  prove a cycle in the wait-for graph.
- find_deadlocked_processes: the matrix-based Work/Finish algorithm over
  pending requests, an exact test for the processes that can never
  proceed.
"""

from dataclasses import dataclass, field
from typing import List, Tuple

from models.system_state import SystemState
from models.process import ProcessState
from algorithms.avoidance import bankers_scan


@dataclass
class ExhaustedResource:
    """A resource with available == 0 and the processes holding it."""
    resource_id: str
    name: str
    holders: List[Tuple[str, int]] = field(default_factory=list)

    def describe(self) -> str:
        held = ", ".join(f"{pid}:{units}" for pid, units in self.holders) or "nobody"
        return f"{self.resource_id} ({self.name}) held by {held}"


@dataclass
class DeadlockReport:
    """
    Verdict of the live deadlock check.

    Attributes:
        deadlocked: True if the heuristic fired
        waiting: Waiting processes tied to an exhausted resource
        exhausted: Exhausted resources those processes hold or wait on
        explanation: Human-readable summary (empty when not deadlocked)
    """
    deadlocked: bool
    waiting: List[str] = field(default_factory=list)
    exhausted: List[ExhaustedResource] = field(default_factory=list)
    explanation: str = ""

    def __bool__(self) -> bool:
        return self.deadlocked


def detect_deadlock(system_state: SystemState) -> DeadlockReport:
    """
    Heuristic deadlock check used during interactive play.

    For each WAITING process, look at the resources it holds or has a
    pending request on. If any of them has available == 0 the process is
    implicated. This can flag a process blocked on something it does not
    actually need (false positive); it is kept this way for compatibility
    with the live-play scoring.

    Args:
        system_state: Current state (read-only)

    Returns:
        DeadlockReport
    """
    waiting = []
    exhausted = {}

    for process in system_state.processes:
        if process.state != ProcessState.WAITING:
            continue

        touched = set(process.allocation) | set(process.pending)
        hits = [
            resource for resource in system_state.resources
            if resource.resource_id in touched and resource.is_exhausted
        ]
        if not hits:
            continue

        waiting.append(process.pid)
        for resource in hits:
            exhausted[resource.resource_id] = ExhaustedResource(
                resource_id=resource.resource_id,
                name=resource.name,
                holders=resource.holders(),
            )

    if not waiting:
        return DeadlockReport(deadlocked=False)

    ordered = [exhausted[rid] for rid in system_state.resource_ids if rid in exhausted]
    explanation = (
        f"Waiting processes: {', '.join(waiting)}. "
        f"Exhausted resources: {'; '.join(r.describe() for r in ordered)}"
    )
    return DeadlockReport(
        deadlocked=True,
        waiting=waiting,
        exhausted=ordered,
        explanation=explanation,
    )


def find_deadlocked_processes(system_state: SystemState) -> List[str]:
    """
    Detect deadlock using matrix-based Work/Finish algorithm.

    Algorithm (Multi-Instance Resources):
    1. Initialize Work = Available, Finish = [False] * num_processes
    2. Set Finish[i] = True for processes already TERMINATED
    3. Find process i where Finish[i] == False and Request[i] <= Work
    4. If found: Finish[i] = True, Work += Allocation[i], repeat step 3
    5. Processes left with Finish[i] == False are deadlocked

    CRITICAL: Uses Request[i] (current pending request), NOT Need[i]
    (max future request).

    Time Complexity: O(P²×R)

    Args:
        system_state: Current state (read-only)

    Returns:
        Deadlocked pids, in registry order (empty if none)
    """
    candidates = [i for i, p in enumerate(system_state.processes) if not p.is_finished()]
    result = bankers_scan(
        system_state.process_ids,
        system_state.available_vector,
        system_state.request_matrix,
        system_state.allocation_matrix,
        candidates,
    )
    return result.blocked
