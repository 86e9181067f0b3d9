"""
Randomized scenario generation for the OS Puzzle core.

Two-phase pipeline, each phase a separate function:

    generate_scenario -> classify_scenario -> adjust_scenario

generate_scenario draws a random ledger, classify_scenario runs Banker's
on it and adjust_scenario tightens one claim so an accidentally easy
scenario stops being trivially safe. generate_puzzle chains the three.
All randomness comes from a numpy Generator, so a seed reproduces a
scenario exactly.
"""

import numpy as np
from typing import List, Optional, Tuple, Union

from models.process import Process
from models.system_state import SystemState
from algorithms.avoidance import SafetyResult, run_safety_algorithm

RESOURCE_NAMES = ["A", "B", "C", "D", "E", "F"]

# Ranges are half-open, as numpy's integers(low, high)
TOTAL_UNITS_RANGE = (5, 10)
ARRIVAL_RANGE = (0, 10)
BURST_RANGE = (2, 10)
PRIORITY_RANGE = (1, 11)

SeedLike = Union[None, int, np.random.Generator]


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """Return a Generator for a seed, or pass an existing Generator through."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def generate_scenario(
    num_processes: int,
    num_resources: int,
    seed: SeedLike = None,
    logger=None
) -> SystemState:
    """
    Phase 1: draw a random resource ledger.

    For each resource: total in [5, 9]. For each process and resource:
    max in [1, total - 1], allocation in [0, max - 1], capped so the
    units handed out never exceed what is still available.

    Args:
        num_processes: Number of processes (p-0 .. p-N-1)
        num_resources: Number of resource types (at most len(RESOURCE_NAMES))
        seed: Seed or Generator
        logger: Optional SimulatorLogger attached to the state

    Returns:
        SystemState with every process READY
    """
    if num_resources > len(RESOURCE_NAMES):
        raise ValueError(f"At most {len(RESOURCE_NAMES)} resource types are supported")
    rng = make_rng(seed)
    state = SystemState(logger=logger)

    for j in range(num_resources):
        total = int(rng.integers(*TOTAL_UNITS_RANGE))
        state.create_resource(RESOURCE_NAMES[j], total, resource_id=f"r-{j}")

    for i in range(num_processes):
        max_demand = {}
        allocation = {}
        for resource in state.resources:
            maximum = int(rng.integers(1, resource.total))
            wanted = int(rng.integers(0, maximum))
            max_demand[resource.resource_id] = maximum
            allocation[resource.resource_id] = wanted

        pid = f"p-{i}"
        state.create_process(f"P{i}", max_demand=max_demand, pid=pid)
        state.transition_state(pid, "ready")
        for resource_id, wanted in allocation.items():
            granted = min(wanted, state.get_resource(resource_id).available)
            if granted > 0:
                state.allocate(pid, resource_id, granted)

    return state


def classify_scenario(state: SystemState) -> SafetyResult:
    """Phase 2: Banker's verdict on the generated state."""
    return run_safety_algorithm(state)


def adjust_scenario(state: SystemState, resource_index: int = 0) -> Optional[str]:
    """
    Phase 3: raise one process's claim above what is free.

    Picks the first process whose need on the resource can be set to
    available + 1 without its max exceeding the resource's total, and
    sets max = allocation + available + 1.

    Args:
        state: State to adjust in place
        resource_index: Which resource's claim to raise

    Returns:
        Pid of the adjusted process, or None if no process qualifies
    """
    if not state.resources or not state.processes:
        return None
    resource = state.resources[resource_index]

    for process in state.processes:
        target = process.held(resource.resource_id) + resource.available + 1
        if target <= resource.total:
            state.set_maximum(process.pid, resource.resource_id, target)
            return process.pid
    return None


def generate_puzzle(
    num_processes: int,
    num_resources: int,
    seed: SeedLike = None,
    adjust: bool = True,
    logger=None
) -> Tuple[SystemState, SafetyResult]:
    """
    Run the full pipeline: generate, classify, and adjust if the draw
    came out safe.

    Args:
        num_processes: Number of processes
        num_resources: Number of resource types
        seed: Seed or Generator
        adjust: Apply phase 3 to safe draws
        logger: Optional SimulatorLogger

    Returns:
        Tuple of (SystemState, final SafetyResult)
    """
    state = generate_scenario(num_processes, num_resources, seed, logger)
    verdict = classify_scenario(state)
    if verdict.safe and adjust:
        adjusted = adjust_scenario(state)
        if adjusted is not None:
            if logger is not None:
                logger.log(f"Generator raised {adjusted}'s claim on {state.resources[0].resource_id}", "debug")
            verdict = classify_scenario(state)
    return state, verdict


def generate_processes(count: int, seed: SeedLike = None, prefix: str = "p") -> List[Process]:
    """
    Random process set for a scheduling round.

    arrival in [0, 9], burst in [2, 9], priority in [1, 10].

    Args:
        count: Number of processes
        seed: Seed or Generator
        prefix: Pid prefix (pids are "<prefix>-<i>")

    Returns:
        List of NEW processes
    """
    rng = make_rng(seed)
    processes = []
    for i in range(count):
        processes.append(Process(
            pid=f"{prefix}-{i}",
            name=f"P{i + 1}",
            arrival_time=int(rng.integers(*ARRIVAL_RANGE)),
            burst_time=int(rng.integers(*BURST_RANGE)),
            priority=int(rng.integers(*PRIORITY_RANGE)),
        ))
    return processes
