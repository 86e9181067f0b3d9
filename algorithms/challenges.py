"""
Challenge evaluation for the OS Puzzle core.

Each challenge kind has one evaluator; evaluate() picks it once from the
challenge's type tag.
"""

import numpy as np
from typing import Dict, List, Mapping, Sequence

from models.challenge import (
    Challenge,
    ChallengeResult,
    ChallengeType,
    DeadlockChallenge,
    ResourceChallenge,
    SchedulingChallenge,
)
from models.errors import ConfigurationError
from models.process import ProcessState
from models.system_state import SystemState
from algorithms.avoidance import replay_sequence
from algorithms.scheduling import SchedulingPolicy


def evaluate(challenge: Challenge, answer) -> ChallengeResult:
    """
    Judge an answer to any catalog challenge.

    Args:
        challenge: SchedulingChallenge, ResourceChallenge or DeadlockChallenge
        answer: Shape depends on the kind:
            scheduling: {"algorithm": str, "order": [pid, ...]}
            resource: {pid: [resource_id, ...]}
            deadlock: [pid, ...]

    Returns:
        ChallengeResult
    """
    evaluator = EVALUATORS.get(challenge.challenge_type)
    if evaluator is None:
        raise ConfigurationError(f"No evaluator for challenge type {challenge.challenge_type}")
    return evaluator(challenge, answer)


def evaluate_scheduling(challenge: SchedulingChallenge, answer: Mapping) -> ChallengeResult:
    """
    Correct when the algorithm matches and, if the challenge checks
    order, the submitted order matches exactly.
    """
    try:
        chosen = SchedulingPolicy.parse(answer.get("algorithm", ""))
    except ConfigurationError:
        return ChallengeResult(False, "Select a scheduling algorithm first.")

    algorithm_correct = chosen == SchedulingPolicy.parse(challenge.solution_algorithm)
    order_correct = True
    if challenge.check_order:
        order_correct = list(answer.get("order", [])) == list(challenge.solution_order)

    if algorithm_correct and order_correct:
        return ChallengeResult(True, "Correct! You've selected the optimal scheduling algorithm.")
    if not algorithm_correct:
        return ChallengeResult(False, "This algorithm isn't optimal for the given scenario. Try another one!")
    return ChallengeResult(False, "The execution order isn't optimal. Try rearranging the processes.")


def evaluate_resource(challenge: ResourceChallenge, answer: Mapping[str, Sequence[str]]) -> ChallengeResult:
    """
    Correct when every process holds exactly the resources of the
    solution. Order inside a process's list does not matter.
    """
    submitted = _normalize_allocation(answer, challenge)
    if submitted == _normalize_allocation(challenge.solution, challenge):
        return ChallengeResult(True, "Correct! You've found the optimal resource allocation.")

    for scenario in challenge.deadlock_scenarios:
        if submitted == _normalize_allocation(scenario, challenge):
            return ChallengeResult(False, "This allocation would result in a deadlock. Try again!")
    return ChallengeResult(False, "Not quite right. This allocation works but isn't optimal.")


def evaluate_deadlock(challenge: DeadlockChallenge, answer: Sequence[str]) -> ChallengeResult:
    """
    Correct on an exact match with the expected sequence. Otherwise the
    answer is replayed (request <= work, then work += allocation) to tell
    a valid-but-different order from one that deadlocks.
    """
    if list(answer) == list(challenge.solution):
        return ChallengeResult(True, "Correct! You've found a valid safe sequence that avoids deadlock.", valid=True)

    pids, available, request, allocation = challenge_matrices(challenge)
    replay = replay_sequence(answer, pids, available, request, allocation)
    if replay.valid:
        return ChallengeResult(False, "This sequence works but isn't the optimal solution. Try again!", valid=True)
    return ChallengeResult(
        False,
        f"This sequence would result in a deadlock. Check your work. ({replay.reason})",
        valid=False,
    )


EVALUATORS = {
    ChallengeType.SCHEDULING: evaluate_scheduling,
    ChallengeType.RESOURCE: evaluate_resource,
    ChallengeType.DEADLOCK: evaluate_deadlock,
}


def suggested_order(challenge: SchedulingChallenge, algorithm: str) -> List[str]:
    """
    Execution order the catalog associates with an algorithm choice.

    FCFS sorts by arrival, SJF by burst, Priority by descending priority
    value (the catalog's convention). RR keeps the initial order.
    """
    policy = SchedulingPolicy.parse(algorithm)
    processes = list(challenge.processes)
    if policy == SchedulingPolicy.FCFS:
        processes.sort(key=lambda p: p.arrival_time)
    elif policy == SchedulingPolicy.SJF:
        processes.sort(key=lambda p: p.burst_time)
    elif policy == SchedulingPolicy.PRIORITY:
        processes.sort(key=lambda p: -p.priority)
    else:
        return list(challenge.initial_order) or [p.pid for p in processes]
    return [p.pid for p in processes]


def challenge_matrices(challenge: DeadlockChallenge):
    """
    Build (pids, available, request, allocation) arrays for a deadlock
    challenge, rows in process order and columns in resource order.
    """
    pids = [p.pid for p in challenge.processes]
    rids = [r.resource_id for r in challenge.resources]
    available = np.array([challenge.available.get(rid, 0) for rid in rids], dtype=int)
    request = np.array(
        [[challenge.request.get(pid, {}).get(rid, 0) for rid in rids] for pid in pids],
        dtype=int,
    ).reshape(len(pids), len(rids))
    allocation = np.array(
        [[challenge.allocation.get(pid, {}).get(rid, 0) for rid in rids] for pid in pids],
        dtype=int,
    ).reshape(len(pids), len(rids))
    return pids, available, request, allocation


def challenge_state(challenge: DeadlockChallenge, logger=None) -> SystemState:
    """
    Materialize a deadlock challenge as a live SystemState.

    Totals are available + held units. A process with a non-zero request
    row is dispatched and then blocked on it, so it ends up WAITING with
    the request pending; the others stay READY.
    """
    pids, available, request, allocation = challenge_matrices(challenge)
    state = SystemState(validate_max_demand=False, logger=logger)

    for j, resource in enumerate(challenge.resources):
        total = int(available[j] + allocation[:, j].sum())
        if total <= 0:
            raise ConfigurationError(
                f"Challenge {challenge.challenge_id}: resource {resource.resource_id} has no units"
            )
        state.create_resource(resource.name, total, resource.resource_id)

    for i, process in enumerate(challenge.processes):
        max_demand = {
            rid: int(allocation[i][j] + request[i][j])
            for j, rid in enumerate(state.resource_ids)
            if allocation[i][j] + request[i][j] > 0
        }
        state.create_process(process.name, max_demand=max_demand, pid=process.pid)
        state.transition_state(process.pid, ProcessState.READY)
        for j, rid in enumerate(state.resource_ids):
            if allocation[i][j] > 0:
                state.allocate(process.pid, rid, int(allocation[i][j]))

    for i, pid in enumerate(pids):
        blocked_on = [(rid, int(request[i][j])) for j, rid in enumerate(state.resource_ids) if request[i][j] > 0]
        if not blocked_on:
            continue
        state.transition_state(pid, ProcessState.RUNNING)
        for rid, amount in blocked_on:
            state.block(pid, rid, amount, "challenge request")
    return state


def _normalize_allocation(allocation: Mapping[str, Sequence[str]], challenge: ResourceChallenge) -> Dict[str, List[str]]:
    pids = [p.pid for p in challenge.processes]
    return {pid: sorted(allocation.get(pid, [])) for pid in pids}
