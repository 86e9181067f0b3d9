"""
Deadlock Avoidance Algorithm (Banker's Algorithm) for the OS Puzzle core.

Decides whether a resource-allocation snapshot is safe and produces the
finish order that proves it.
"""

import numpy as np
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Tuple

from models.system_state import SystemState


@dataclass
class SafetyResult:
    """
    Outcome of one Banker's scan.

    Attributes:
        safe: True if every considered process could finish
        sequence: Finish order found (partial when unsafe)
        blocked: Processes that could not finish (empty when safe)
        work: Final Work vector
    """
    safe: bool
    sequence: List[str] = field(default_factory=list)
    blocked: List[str] = field(default_factory=list)
    work: Optional[np.ndarray] = None


@dataclass
class ReplayResult:
    """
    Outcome of replaying a proposed finish order.

    Attributes:
        valid: True if every step fit in Work and every process finished
        completed: Processes finished before the replay stopped
        failed_at: Process whose demand did not fit (None if valid)
        reason: Human-readable explanation when invalid
    """
    valid: bool
    completed: List[str] = field(default_factory=list)
    failed_at: Optional[str] = None
    reason: str = ""


def bankers_scan(
    pids: Sequence[str],
    available: np.ndarray,
    demand: np.ndarray,
    allocation: np.ndarray,
    candidates: Optional[Sequence[int]] = None
) -> SafetyResult:
    """
    Core safety algorithm over plain vectors.

    Algorithm:
    1. Initialize Work = Available, Finish = [False] * num_processes
    2. Find the first process i (in row order) where Finish[i] == False
       and Demand[i] <= Work
    3. If found: Finish[i] = True, Work += Allocation[i], append pid,
       restart the scan from the first row
    4. Stop when a full pass finishes nobody

    Time Complexity: O(P²×R)

    Args:
        pids: Process ids, one per matrix row
        available: [R] free units
        demand: [P][R] units each process still needs before it can finish
        allocation: [P][R] units each process returns when it finishes
        candidates: Row indices to consider (default: all rows)

    Returns:
        SafetyResult; safe iff every candidate finished

    References:
        Silberschatz, A., Galvin, P. B., & Gagne, G. (2018).
        Operating System Concepts (10th ed.). Chapter 7.5: Deadlock Avoidance.
    """
    work = np.array(available, dtype=int).copy()
    rows = list(range(len(pids))) if candidates is None else list(candidates)
    finish = {i: False for i in rows}
    sequence = []

    made_progress = True
    while made_progress:
        made_progress = False

        for i in rows:
            if finish[i]:
                continue

            if np.all(demand[i] <= work):
                work += allocation[i]
                finish[i] = True
                sequence.append(pids[i])
                made_progress = True
                break  # Restart search from beginning for determinism

    blocked = [pids[i] for i in rows if not finish[i]]
    return SafetyResult(safe=not blocked, sequence=sequence, blocked=blocked, work=work)


def run_safety_algorithm(
    system_state: SystemState,
    exclude: Optional[Set[str]] = None
) -> SafetyResult:
    """
    Run Banker's Algorithm on a SystemState.

    Terminated processes have already finished and are skipped, as is
    every pid in exclude. Zero remaining processes is trivially safe.

    Args:
        system_state: Snapshot to analyze (read-only)
        exclude: Extra pids to treat as already finished

    Returns:
        SafetyResult with the deterministic first-match sequence
    """
    exclude = exclude or set()
    candidates = [
        i for i, p in enumerate(system_state.processes)
        if not p.is_finished() and p.pid not in exclude
    ]
    return bankers_scan(
        system_state.process_ids,
        system_state.available_vector,
        system_state.need_matrix,
        system_state.allocation_matrix,
        candidates,
    )


def is_safe_state(system_state: SystemState, exclude: Optional[Set[str]] = None) -> bool:
    """
    Check if the system is in a safe state.

    Without exclude the verdict comes from the state's cache, so repeated
    calls on an unmutated state are free and identical.
    """
    if not exclude:
        return system_state.is_safe_state()
    return run_safety_algorithm(system_state, exclude).safe


def compute_safe_sequence(
    system_state: SystemState,
    exclude: Optional[Set[str]] = None
) -> List[str]:
    """
    Return the safe finish order, or an empty list when the state is unsafe.
    """
    if not exclude:
        return system_state.compute_safe_sequence()
    result = run_safety_algorithm(system_state, exclude)
    return result.sequence if result.safe else []


def replay_sequence(
    sequence: Sequence[str],
    pids: Sequence[str],
    available: np.ndarray,
    demand: np.ndarray,
    allocation: np.ndarray,
    candidates: Optional[Sequence[int]] = None
) -> ReplayResult:
    """
    Replay a proposed finish order: grant each process its demand, then
    take back its allocation.

    Args:
        sequence: Proposed order of pids
        pids: Process ids, one per matrix row
        available: [R] free units
        demand: [P][R] units needed before finishing
        allocation: [P][R] units returned on finishing
        candidates: Rows that must all finish (default: all rows)

    Returns:
        ReplayResult
    """
    index = {pid: i for i, pid in enumerate(pids)}
    required = set(range(len(pids))) if candidates is None else set(candidates)
    work = np.array(available, dtype=int).copy()
    completed = []

    for pid in sequence:
        if pid not in index or index[pid] not in required:
            return ReplayResult(False, completed, pid, f"{pid} is not part of this scenario")
        if pid in completed:
            return ReplayResult(False, completed, pid, f"{pid} appears twice")

        i = index[pid]
        if not np.all(demand[i] <= work):
            short = [
                f"{int(demand[i][j])} > {int(work[j])}"
                for j in range(len(work)) if demand[i][j] > work[j]
            ]
            return ReplayResult(
                False, completed, pid,
                f"{pid} cannot finish: demand exceeds work ({', '.join(short)})"
            )
        work += allocation[i]
        completed.append(pid)

    missing = [pids[i] for i in sorted(required) if pids[i] not in completed]
    if missing:
        return ReplayResult(False, completed, None, f"never finished: {', '.join(missing)}")
    return ReplayResult(True, completed)


def replay_safe_sequence(
    system_state: SystemState,
    sequence: Sequence[str],
    exclude: Optional[Set[str]] = None
) -> ReplayResult:
    """
    Verify a finish order against the current state's need and allocation.

    Every unfinished process (minus exclude) must appear exactly once.
    """
    exclude = exclude or set()
    candidates = [
        i for i, p in enumerate(system_state.processes)
        if not p.is_finished() and p.pid not in exclude
    ]
    return replay_sequence(
        sequence,
        system_state.process_ids,
        system_state.available_vector,
        system_state.need_matrix,
        system_state.allocation_matrix,
        candidates,
    )


def would_be_safe(
    system_state: SystemState,
    pid: str,
    resource_id: str,
    amount: int
) -> SafetyResult:
    """
    Evaluate a grant without touching the state.

    The hypothetical state moves amount units from Available to the
    process's Allocation and lowers its Need accordingly.
    """
    i = system_state.process_ids.index(system_state.get_process(pid).pid)
    j = system_state.resource_ids.index(system_state.get_resource(resource_id).resource_id)

    available = system_state.available_vector.copy()
    allocation = system_state.allocation_matrix.copy()
    need = system_state.need_matrix.copy()
    available[j] -= amount
    allocation[i][j] += amount
    need[i][j] = max(0, need[i][j] - amount)

    candidates = [k for k, p in enumerate(system_state.processes) if not p.is_finished()]
    return bankers_scan(system_state.process_ids, available, need, allocation, candidates)


def request_resources(
    system_state: SystemState,
    pid: str,
    resource_id: str,
    amount: int
) -> Tuple[bool, str]:
    """
    Handle a resource request using Banker's Algorithm.

    Steps:
    1. Validate: request <= need (otherwise rejected, nothing changes)
    2. Check: request <= available (if not, process waits on it)
    3. Evaluate the grant on a copy and run the safety algorithm
    4. If safe: grant through the ledger
       If unsafe: process waits, request stays pending

    Returns:
        Tuple of (granted, reason_string)
    """
    process = system_state.get_process(pid)
    resource = system_state.get_resource(resource_id)
    rid = resource.resource_id

    if amount <= 0:
        return False, f"Invalid request amount: {amount}"

    need = process.need_for(rid)
    if amount > need:
        return False, f"Request exceeds need (requested: {amount}, need: {need})"

    if amount > resource.available:
        reason = f"Insufficient resources (requested: {amount}, available: {resource.available})"
        system_state.block(pid, rid, amount, reason)
        return False, f"{reason} - Process enters WAITING"

    result = would_be_safe(system_state, pid, rid, amount)
    if not result.safe:
        system_state.block(pid, rid, amount, "unsafe state")
        return False, "DENIED (Unsafe state detected) - Process enters WAITING, request remains pending"

    system_state.request(pid, rid, amount)
    seq_str = " -> ".join(result.sequence)
    return True, f"GRANTED (Safe state maintained, sequence: {seq_str})"
