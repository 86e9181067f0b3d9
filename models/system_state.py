"""
System State model for the OS Puzzle core.

Explicit, passable state container holding the resource ledger and the
process registry. Every mutation goes through this object so need,
invariants, the cached safe sequence and the deadlock flag are brought
up to date before the call returns.
"""

import numpy as np
from typing import List, Dict, Optional, Union, Iterable
from dataclasses import dataclass, field

from models.process import Process, ProcessState
from models.resource import Resource
from models.errors import (
    ConfigurationError,
    InvariantViolation,
    UnknownEntity,
)
from analysis.events import EventLog, SimulationEvent, EventType


@dataclass
class SystemState:
    """
    Global system state for one simulation or puzzle.

    Several instances can coexist; nothing is shared between them.

    Attributes:
        processes: Process registry, in insertion order (scan order for Banker's)
        resources: Resource ledger, in insertion order
        clock: Current simulated time (used to stamp events and start times)
        validate_max_demand: Reject max demands above a resource's total
        logger: Optional SimulatorLogger for mutation messages
        event_log: Record of every accepted or rejected mutation
        allocation_matrix: [P][R] units held by each process
        max_demand_matrix: [P][R] declared maximum claims
        need_matrix: [P][R] max(0, Max - Allocation)
        request_matrix: [P][R] pending (blocked-on) units
        available_vector: [R] free units per resource
    """
    processes: List[Process] = field(default_factory=list)
    resources: List[Resource] = field(default_factory=list)
    clock: float = 0
    validate_max_demand: bool = True
    logger: Optional[object] = None
    event_log: EventLog = field(default_factory=EventLog)

    deadlocks_occurred: int = 0
    deadlocks_resolved: int = 0

    # Derived values (None until first access, cleared on every mutation)
    _allocation_matrix: Optional[np.ndarray] = None
    _max_demand_matrix: Optional[np.ndarray] = None
    _need_matrix: Optional[np.ndarray] = None
    _request_matrix: Optional[np.ndarray] = None
    _available_vector: Optional[np.ndarray] = None
    _safe: Optional[bool] = None
    _safe_sequence: Optional[List[str]] = None
    _deadlock_report: Optional[object] = None

    def __post_init__(self):
        for process in self.processes:
            process.refresh_need()
        self.check_invariants()
        self._deadlock_report = self._run_detector()

    # ------------------------------------------------------------------
    # Lookup

    @property
    def num_processes(self) -> int:
        """Number of processes in the registry."""
        return len(self.processes)

    @property
    def num_resources(self) -> int:
        """Number of resource types in the ledger."""
        return len(self.resources)

    @property
    def process_ids(self) -> List[str]:
        return [p.pid for p in self.processes]

    @property
    def resource_ids(self) -> List[str]:
        return [r.resource_id for r in self.resources]

    def get_process(self, pid: str) -> Process:
        """
        Find a process by id.

        Raises:
            UnknownEntity: If no process has this id
        """
        for process in self.processes:
            if process.pid == pid:
                return process
        raise UnknownEntity(f"Unknown process: {pid}")

    def get_resource(self, resource_id: str) -> Resource:
        """
        Find a resource by id or display name.

        Raises:
            UnknownEntity: If no resource matches
        """
        for resource in self.resources:
            if resource.resource_id == resource_id:
                return resource
        for resource in self.resources:
            if resource.name == resource_id:
                return resource
        raise UnknownEntity(f"Unknown resource: {resource_id}")

    # ------------------------------------------------------------------
    # Matrices

    @property
    def allocation_matrix(self) -> np.ndarray:
        """Get allocation matrix [P][R]."""
        if self._allocation_matrix is None:
            self._allocation_matrix = self._build_matrix(lambda p, rid: p.held(rid))
        return self._allocation_matrix

    @property
    def max_demand_matrix(self) -> np.ndarray:
        """Get max demand matrix [P][R]."""
        if self._max_demand_matrix is None:
            self._max_demand_matrix = self._build_matrix(
                lambda p, rid: p.max_demand.get(rid, 0)
            )
        return self._max_demand_matrix

    @property
    def need_matrix(self) -> np.ndarray:
        """
        Get need matrix [P][R].
        Computed as: Need = max(0, Max - Allocation)
        """
        if self._need_matrix is None:
            self._need_matrix = self._build_matrix(lambda p, rid: p.need_for(rid))
        return self._need_matrix

    @property
    def request_matrix(self) -> np.ndarray:
        """Get pending request matrix [P][R]."""
        if self._request_matrix is None:
            self._request_matrix = self._build_matrix(lambda p, rid: p.pending.get(rid, 0))
        return self._request_matrix

    @property
    def available_vector(self) -> np.ndarray:
        """Get available units vector [R]."""
        if self._available_vector is None:
            self._available_vector = np.array(
                [r.available for r in self.resources], dtype=int
            )
        return self._available_vector

    @property
    def total_vector(self) -> np.ndarray:
        return np.array([r.total for r in self.resources], dtype=int)

    def _build_matrix(self, value) -> np.ndarray:
        matrix = np.zeros((self.num_processes, self.num_resources), dtype=int)
        for i, process in enumerate(self.processes):
            for j, resource in enumerate(self.resources):
                matrix[i][j] = value(process, resource.resource_id)
        return matrix

    def refresh_matrices(self) -> None:
        """Drop every derived matrix and cached verdict."""
        self._allocation_matrix = None
        self._max_demand_matrix = None
        self._need_matrix = None
        self._request_matrix = None
        self._available_vector = None
        self._safe = None
        self._safe_sequence = None

    # ------------------------------------------------------------------
    # Scenario construction

    def create_resource(self, name: str, total: int, resource_id: Optional[str] = None) -> Resource:
        """
        Add a resource type with all units available.

        Args:
            name: Display name
            total: Total units (positive)
            resource_id: Explicit id, defaults to "r-<n>"

        Returns:
            The new Resource

        Raises:
            ConfigurationError: If total is not positive or the id is taken
        """
        if not isinstance(total, (int, np.integer)) or total <= 0:
            raise ConfigurationError(f"Resource {name}: total must be a positive integer, got {total}")
        resource_id = resource_id or self._next_id("r", self.resource_ids)
        if resource_id in self.resource_ids:
            raise ConfigurationError(f"Duplicate resource id: {resource_id}")

        resource = Resource(resource_id=resource_id, name=name, total=int(total), available=int(total))
        self.resources.append(resource)
        self._after_mutation()
        return resource

    def create_process(
        self,
        name: str,
        arrival_time: float = 0,
        burst_time: float = 0,
        priority: int = 0,
        max_demand: Optional[Dict[str, int]] = None,
        pid: Optional[str] = None
    ) -> Process:
        """
        Register a process with zero allocation.

        Args:
            name: Display name
            arrival_time: Simulated arrival time (>= 0)
            burst_time: CPU time required (>= 0)
            priority: Lower value = more urgent
            max_demand: Declared maximum units per resource id or name
            pid: Explicit id, defaults to "p-<n>"

        Returns:
            The new Process

        Raises:
            ConfigurationError: On negative times, a duplicate id, or a max
                demand above a resource's total
            UnknownEntity: If max_demand names an unknown resource
        """
        if arrival_time < 0 or burst_time < 0:
            raise ConfigurationError(f"Process {name}: arrival and burst times must be >= 0")
        pid = pid or self._next_id("p", self.process_ids)
        if pid in self.process_ids:
            raise ConfigurationError(f"Duplicate process id: {pid}")

        demand = {}
        for key, amount in (max_demand or {}).items():
            resource = self.get_resource(key)
            self._validate_maximum(pid, resource, amount)
            demand[resource.resource_id] = int(amount)

        process = Process(
            pid=pid,
            name=name,
            arrival_time=arrival_time,
            burst_time=burst_time,
            priority=priority,
            max_demand=demand,
        )
        for resource_id, amount in demand.items():
            self.get_resource(resource_id).maximum[pid] = amount

        self.processes.append(process)
        self._after_mutation()
        return process

    def add_process(self, process: Process) -> Process:
        """
        Register an already built process (zero allocation expected).

        Raises:
            ConfigurationError: If the id is taken or the process claims to
                hold units the ledger does not know about
        """
        if process.pid in self.process_ids:
            raise ConfigurationError(f"Duplicate process id: {process.pid}")
        if process.holds_anything():
            raise ConfigurationError(
                f"Process {process.pid}: add with zero allocation, then allocate()"
            )
        for resource_id, amount in process.max_demand.items():
            self._validate_maximum(process.pid, self.get_resource(resource_id), amount)
        for resource_id, amount in process.max_demand.items():
            self.get_resource(resource_id).maximum[process.pid] = amount
        process.refresh_need()
        self.processes.append(process)
        self._after_mutation()
        return process

    def remove_process(self, pid: str) -> Process:
        """
        Drop a process, returning everything it holds to the pool.

        Returns:
            The removed Process
        """
        process = self.get_process(pid)
        for resource in self.resources:
            resource.release_all(pid)
            resource.maximum.pop(pid, None)
        process.allocation = {}
        process.pending = {}
        process.refresh_need()
        self.processes.remove(process)
        self._record(EventType.REMOVAL, pid, message=f"{process.name} removed")
        self._after_mutation()
        return process

    def reset(self) -> None:
        """Discard every process and resource (new level / puzzle)."""
        self.processes = []
        self.resources = []
        self.clock = 0
        self.event_log = EventLog()
        self.deadlocks_occurred = 0
        self.deadlocks_resolved = 0
        self.refresh_matrices()
        self._deadlock_report = self._run_detector()

    # ------------------------------------------------------------------
    # Mutation API

    def allocate(self, pid: str, resource_id: str, amount: int) -> None:
        """
        Give units of a resource to a process.

        Allocating 0 units changes nothing, like releasing 0.

        Raises:
            InsufficientResource: If amount exceeds available (no state change)
            UnknownEntity: If either id is unknown
            ValueError: If amount is negative
        """
        process = self.get_process(pid)
        resource = self.get_resource(resource_id)
        resource.allocate(pid, amount)
        if amount == 0:
            return

        rid = resource.resource_id
        process.allocation[rid] = process.held(rid) + amount
        if rid in process.pending and process.pending[rid] <= amount:
            del process.pending[rid]
        process.refresh_need()

        self._record(EventType.ALLOCATION, pid, rid, amount, reason="granted")
        self._log(f"{pid} acquires {rid}[{amount}] (available now {resource.available})")
        self._after_mutation()

    def release(self, pid: str, resource_id: str, amount: int) -> int:
        """
        Return units of a resource from a process to the pool.

        Releases min(amount, held); releasing 0 units changes nothing.

        Returns:
            Number of units actually released
        """
        process = self.get_process(pid)
        resource = self.get_resource(resource_id)
        released = resource.release(pid, amount)
        if released == 0:
            return 0

        rid = resource.resource_id
        remaining = process.held(rid) - released
        if remaining > 0:
            process.allocation[rid] = remaining
        else:
            process.allocation.pop(rid, None)
        process.refresh_need()

        self._record(EventType.RELEASE, pid, rid, released)
        self._log(f"{pid} releases {rid}[{released}] (available now {resource.available})")
        self._after_mutation()
        return released

    def release_all(self, pid: str) -> Dict[str, int]:
        """Release every unit a process holds. Returns released units per resource."""
        process = self.get_process(pid)
        released = {}
        for resource_id in list(process.allocation):
            released[resource_id] = self.release(pid, resource_id, process.held(resource_id))
        return released

    def set_maximum(self, pid: str, resource_id: str, amount: int) -> None:
        """
        Declare a process's maximum claim on a resource.

        Raises:
            ValueError: If amount is negative
            ConfigurationError: If amount exceeds the resource's total
        """
        process = self.get_process(pid)
        resource = self.get_resource(resource_id)
        if amount < 0:
            raise ValueError(f"{pid}: maximum for {resource.resource_id} cannot be negative")
        self._validate_maximum(pid, resource, amount)

        rid = resource.resource_id
        process.max_demand[rid] = int(amount)
        resource.maximum[pid] = int(amount)
        process.refresh_need()

        self._log(f"{pid} declares max {rid}[{amount}]", "debug")
        self._after_mutation()

    def transition_state(self, pid: str, new_state: Union[ProcessState, str]) -> None:
        """
        Move a process along the lifecycle state machine.

        Entering TERMINATED returns every unit the process holds and
        clears its pending requests.

        Raises:
            InvalidTransition: If the edge is illegal (no state change)
            ConfigurationError: If new_state names no lifecycle state
        """
        process = self.get_process(pid)
        target = new_state
        if isinstance(new_state, str):
            try:
                target = ProcessState(new_state)
            except ValueError:
                raise ConfigurationError(
                    f"{pid}: unknown state '{new_state}'. "
                    f"Valid states: {', '.join(s.value for s in ProcessState)}"
                ) from None
        previous = process.state
        process.transition(target, self.clock)

        if target == ProcessState.TERMINATED:
            process.pending = {}
            for resource in self.resources:
                released = resource.release_all(pid)
                if released:
                    self._record(EventType.RELEASE, pid, resource.resource_id, released)
            process.allocation = {}
            process.refresh_need()

        self._record(
            EventType.STATE_CHANGE, pid,
            message=f"{previous.value} -> {target.value}"
        )
        self._log(f"{pid}: {previous.value} -> {target.value}", "debug")
        self._after_mutation()

    def request(self, pid: str, resource_id: str, amount: int) -> bool:
        """
        Grant units if available, otherwise block the process on them.

        A denied request records the pending amount and moves a RUNNING
        process to WAITING. A granted request that satisfies the last
        pending claim of a WAITING process moves it back to READY.

        Returns:
            True if granted
        """
        process = self.get_process(pid)
        resource = self.get_resource(resource_id)
        rid = resource.resource_id
        if amount <= 0:
            raise ValueError(f"{pid}: request amount must be positive")

        if amount > resource.available:
            self.block(pid, rid, amount, f"insufficient (available: {resource.available})")
            return False

        self.allocate(pid, rid, amount)
        if process.state == ProcessState.WAITING and not process.pending:
            self.transition_state(pid, ProcessState.READY)
        return True

    def block(self, pid: str, resource_id: str, amount: int, reason: str) -> None:
        """
        Record a denied request: the process now waits on these units.

        A RUNNING process moves to WAITING; other states are kept.
        """
        process = self.get_process(pid)
        rid = self.get_resource(resource_id).resource_id
        process.pending[rid] = amount
        if process.state == ProcessState.RUNNING:
            process.transition(ProcessState.WAITING, self.clock)

        self._record(EventType.DENIAL, pid, rid, amount, reason=reason)
        self._log(f"{pid} requests {rid}[{amount}] - DENIED ({reason}), process waits")
        self._after_mutation()

    def preempt(self, pid: str) -> None:
        """
        Take the CPU away from a RUNNING process.

        The process goes running -> waiting -> ready inside this one call,
        so observers only ever see it READY again.
        """
        process = self.get_process(pid)
        process.transition(ProcessState.WAITING, self.clock)
        process.transition(ProcessState.READY, self.clock)
        self._record(EventType.PREEMPTION, pid, message="returned to ready queue")
        self._log(f"{pid} preempted", "debug")
        self._after_mutation()

    def rewind(self) -> None:
        """
        Restore every process to its pre-run condition for a new scheduling run.

        Held units go back to the pool, pending requests are dropped,
        timing fields are cleared and every process is NEW again. This is
        a re-initialization, not a lifecycle transition.
        """
        for process in self.processes:
            for resource in self.resources:
                resource.release_all(process.pid)
            process.allocation = {}
            process.pending = {}
            process.state = ProcessState.NEW
            process.reset_timing()
            process.refresh_need()
        self.clock = 0
        self._after_mutation()

    def advance_clock(self, delta: float) -> None:
        self.clock += delta

    def record_event(self, event_type: EventType, pid: Optional[str], message: str = "") -> None:
        """Append a non-mutating event (dispatch, completion) to the log."""
        self._record(event_type, pid, message=message)

    # ------------------------------------------------------------------
    # Query API

    def is_safe_state(self) -> bool:
        """Banker's verdict for the current snapshot (cached until the next mutation)."""
        self._ensure_safety()
        return self._safe

    def compute_safe_sequence(self) -> List[str]:
        """Banker's finish order, or an empty list when the state is unsafe."""
        self._ensure_safety()
        return list(self._safe_sequence) if self._safe else []

    def _ensure_safety(self) -> None:
        if self._safe is None:
            from algorithms.avoidance import run_safety_algorithm
            result = run_safety_algorithm(self)
            self._safe = result.safe
            self._safe_sequence = result.sequence

    @property
    def deadlock_report(self):
        """Most recent DeadlockReport (recomputed after every mutation)."""
        return self._deadlock_report

    @property
    def deadlock_detected(self) -> bool:
        return self._deadlock_report.deadlocked

    def detect_deadlock(self):
        """Return the current DeadlockReport."""
        return self._deadlock_report

    def waiting_processes(self) -> List[Process]:
        return [p for p in self.processes if p.state == ProcessState.WAITING]

    def active_processes(self) -> List[Process]:
        """Processes that have not terminated."""
        return [p for p in self.processes if not p.is_finished()]

    # ------------------------------------------------------------------
    # Invariants

    def check_invariants(self, context: str = "") -> None:
        """
        Verify ledger and registry agree.

        Checks, for every resource r and process p:
        - available[r] + sum(allocated[r]) == total[r]
        - process.allocation[r] == resource.allocated[p]
        - need[p][r] == max(0, max[p][r] - allocation[p][r])

        Raises:
            InvariantViolation: On the first inconsistency found
        """
        suffix = f" {context}" if context else ""
        pids = set(self.process_ids)
        for resource in self.resources:
            resource.check_invariant()
            unknown = set(resource.allocated) - pids
            if unknown:
                raise InvariantViolation(
                    f"Resource {resource.resource_id} allocated to unknown processes {sorted(unknown)}{suffix}"
                )

        for process in self.processes:
            for resource in self.resources:
                rid = resource.resource_id
                if process.held(rid) != resource.held_by(process.pid):
                    raise InvariantViolation(
                        f"{process.pid} holds {process.held(rid)} of {rid} but the ledger "
                        f"says {resource.held_by(process.pid)}{suffix}"
                    )
                expected = max(0, process.max_demand.get(rid, 0) - process.held(rid))
                if process.need_for(rid) != expected:
                    raise InvariantViolation(
                        f"{process.pid} need[{rid}]={process.need_for(rid)} != {expected}{suffix}"
                    )

    # ------------------------------------------------------------------
    # Rendering helpers

    def snapshot(self) -> Dict:
        """
        Plain-data copy of the current state for renderers.

        Returns:
            Dictionary with clock, resources, processes, and verdicts
        """
        return {
            'clock': self.clock,
            'resources': [
                {
                    'id': r.resource_id,
                    'name': r.name,
                    'total': r.total,
                    'available': r.available,
                    'allocated': dict(r.allocated),
                    'maximum': dict(r.maximum),
                }
                for r in self.resources
            ],
            'processes': [
                {
                    'id': p.pid,
                    'name': p.name,
                    'state': p.state.value,
                    'priority': p.priority,
                    'arrival_time': p.arrival_time,
                    'burst_time': p.burst_time,
                    'remaining_time': p.remaining_time,
                    'allocation': dict(p.allocation),
                    'max': dict(p.max_demand),
                    'need': dict(p.need),
                    'pending': dict(p.pending),
                }
                for p in self.processes
            ],
            'deadlocked': self.deadlock_detected,
            'safe': self.is_safe_state(),
            'safe_sequence': self.compute_safe_sequence(),
        }

    def display(self) -> str:
        """
        Generate readable string representation of system state.

        Returns:
            Formatted string showing all matrices and vectors
        """
        header = "         " + " ".join(f"{rid:>5}" for rid in self.resource_ids)

        def rows(matrix: np.ndarray) -> List[str]:
            return [
                f"  {p.pid:>5}: " + " ".join(f"{matrix[i][j]:5}" for j in range(self.num_resources))
                for i, p in enumerate(self.processes)
            ]

        output = []
        output.append("\n" + "="*60)
        output.append("SYSTEM STATE")
        output.append("="*60)

        output.append("\nProcess States:")
        for process in self.processes:
            output.append(
                f"  {process.pid}: {process.state.value:10} "
                f"(priority={process.priority}, arrival={process.arrival_time})"
            )

        output.append("\nAvailable Resources:")
        output.append(
            "  [" + ", ".join(
                f"{r.resource_id}:{r.available}/{r.total}" for r in self.resources
            ) + "]"
        )

        for title, matrix in [
            ("Allocation Matrix", self.allocation_matrix),
            ("Max Demand Matrix", self.max_demand_matrix),
            ("Need Matrix (Max - Allocation)", self.need_matrix),
            ("Request Matrix (Pending)", self.request_matrix),
        ]:
            output.append(f"\n{title}:")
            output.append(header)
            output.extend(rows(matrix))

        output.append("\n" + "="*60)
        return "\n".join(output)

    # ------------------------------------------------------------------
    # Internals

    def _validate_maximum(self, pid: str, resource: Resource, amount: int) -> None:
        if amount < 0:
            raise ConfigurationError(f"{pid}: negative max demand for {resource.resource_id}")
        if self.validate_max_demand and amount > resource.total:
            raise ConfigurationError(
                f"{pid}: max demand {amount} for {resource.resource_id} "
                f"exceeds its total ({resource.total})"
            )

    @staticmethod
    def _next_id(prefix: str, taken: Iterable[str]) -> str:
        taken = set(taken)
        n = len(taken)
        while f"{prefix}-{n}" in taken:
            n += 1
        return f"{prefix}-{n}"

    def _after_mutation(self) -> None:
        self.refresh_matrices()
        self.check_invariants()

        was_deadlocked = self._deadlock_report.deadlocked if self._deadlock_report else False
        self._deadlock_report = self._run_detector()
        if self._deadlock_report.deadlocked and not was_deadlocked:
            self.deadlocks_occurred += 1
            self._record(EventType.DEADLOCK, None, message=self._deadlock_report.explanation)
            if self.logger is not None:
                self.logger.log_deadlock(self.clock, self._deadlock_report.waiting)
        elif was_deadlocked and not self._deadlock_report.deadlocked:
            self.deadlocks_resolved += 1

    def _run_detector(self):
        from algorithms.detection import detect_deadlock
        return detect_deadlock(self)

    def _record(
        self,
        event_type: EventType,
        pid: Optional[str],
        resource_id: Optional[str] = None,
        amount: Optional[int] = None,
        message: str = "",
        reason: str = ""
    ) -> None:
        self.event_log.add(SimulationEvent(
            step=self.clock,
            event_type=event_type,
            process_id=pid,
            resource_type=resource_id,
            amount=amount,
            message=message,
            reason=reason,
        ))

    def _log(self, message: str, level: str = "info") -> None:
        if self.logger is None:
            return
        if level == "info":
            self.logger.log_step(self.clock, message)
        else:
            self.logger.log(message, level)
