"""
Banker's Algorithm Tests

Safety verdicts, deterministic safe sequences, soundness of the sequence
and Banker's-guarded requests.
"""

import sys
from pathlib import Path

import numpy as np

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.process import ProcessState
from models.system_state import SystemState
from algorithms.avoidance import (
    bankers_scan,
    is_safe_state,
    compute_safe_sequence,
    replay_safe_sequence,
    request_resources,
    run_safety_algorithm,
    would_be_safe,
)
from analysis.events import EventType
from utils.scenario_loader import load_scenario


# Test scenarios directory
SCENARIOS_DIR = project_root / "tests" / "scenarios"


def _load(name):
    state, _ = load_scenario(str(SCENARIOS_DIR / name))
    return state


def _tight_state():
    """X has 4 units; P0 holds 1 of max 4, P1 holds 1 of max 3."""
    state = SystemState()
    state.create_resource("X", 4)
    for name, maximum in (("P0", 4), ("P1", 3)):
        state.create_process(name, max_demand={"X": maximum}, pid=name)
        state.transition_state(name, ProcessState.READY)
        state.allocate(name, "X", 1)
    return state


def test_safe_scenario():
    """Scenario A is safe with sequence P0 -> P1 -> P2."""
    print("\n" + "="*60)
    print("TEST: Safe Scenario")
    print("="*60)

    state = _load("scenario_a.json")
    assert state.available_vector.tolist() == [4, 1]
    assert state.need_matrix.tolist() == [[3, 0], [0, 1], [1, 0]]

    assert is_safe_state(state)
    sequence = compute_safe_sequence(state)
    print(f"  Safe sequence: {' -> '.join(sequence)}")
    assert sequence == ["P0", "P1", "P2"]

    replay = replay_safe_sequence(state, sequence)
    assert replay.valid, replay.reason
    print("  ✓ Sequence replays without exceeding Work")

    print("\n✅ Safe Scenario Test PASSED")


def test_sequence_is_deterministic():
    state = _load("scenario_a.json")
    first = state.compute_safe_sequence()
    for _ in range(5):
        assert state.compute_safe_sequence() == first
        assert run_safety_algorithm(state).sequence == first


def test_unsafe_scenario():
    """Scenario B: P0 claims more than will ever be free."""
    state = _load("scenario_b_unsafe.json")
    assert not state.is_safe_state()
    assert state.compute_safe_sequence() == []

    result = run_safety_algorithm(state)
    assert not result.safe
    assert result.sequence == ["P1", "P2"]
    assert result.blocked == ["P0"]


def test_terminated_and_excluded_processes_are_skipped():
    state = _load("scenario_b_unsafe.json")
    assert is_safe_state(state, exclude={"P0"})
    assert compute_safe_sequence(state, exclude={"P0"}) == ["P1", "P2"]

    state.transition_state("P0", ProcessState.RUNNING)
    state.transition_state("P0", ProcessState.TERMINATED)
    assert state.is_safe_state()
    assert state.compute_safe_sequence() == ["P1", "P2"]


def test_empty_state_is_safe():
    state = SystemState()
    assert state.is_safe_state()
    assert state.compute_safe_sequence() == []


def test_bankers_scan_restarts_from_first_row():
    """After each finish the scan starts over at row 0."""
    pids = ["a", "b", "c"]
    available = np.array([1])
    demand = np.array([[2], [1], [0]])
    allocation = np.array([[0], [1], [0]])
    result = bankers_scan(pids, available, demand, allocation)
    # b frees one unit, then a fits before c is considered
    assert result.sequence == ["b", "a", "c"]
    assert result.work.tolist() == [2]


def test_replay_rejects_bad_orders():
    state = _load("scenario_a.json")
    assert not replay_safe_sequence(state, ["P0", "P1"]).valid
    duplicate = replay_safe_sequence(state, ["P0", "P0", "P1", "P2"])
    assert not duplicate.valid and "twice" in duplicate.reason
    unknown = replay_safe_sequence(state, ["P7"])
    assert unknown.failed_at == "P7"


def test_would_be_safe_does_not_mutate():
    state = _tight_state()
    before = state.snapshot()
    result = would_be_safe(state, "P0", "X", 1)
    assert not result.safe
    assert state.snapshot() == before


def test_granted_request():
    """A request that keeps the state safe is applied."""
    state = _load("scenario_a.json")
    granted, reason = request_resources(state, "P0", "A", 3)
    print(f"  P0 requests A[3]: {reason}")
    assert granted
    assert state.get_process("P0").held("A") == 5
    assert state.get_resource("A").available == 1
    assert state.is_safe_state()


def test_request_exceeding_need():
    state = _load("scenario_a.json")
    granted, reason = request_resources(state, "P2", "A", 2)
    assert not granted
    assert "exceeds need" in reason
    assert state.get_process("P2").held("A") == 1
    assert state.get_process("P2").pending == {}


def test_unsafe_request_is_denied_and_pending():
    """Granting P0 one more unit would leave nobody able to finish."""
    print("\n" + "="*60)
    print("TEST: Unsafe Request Denied")
    print("="*60)

    state = _tight_state()
    assert state.compute_safe_sequence() == ["P1", "P0"]
    state.transition_state("P0", ProcessState.RUNNING)

    granted, reason = request_resources(state, "P0", "X", 1)
    print(f"  P0 requests X[1]: {reason}")
    assert not granted
    assert "Unsafe" in reason

    process = state.get_process("P0")
    assert process.held("r-0") == 1
    assert process.pending == {"r-0": 1}
    assert process.state == ProcessState.WAITING
    assert state.get_resource("X").available == 2
    assert state.event_log.count(EventType.DENIAL) == 1
    assert not state.deadlock_detected

    print("\n✅ Unsafe Request Test PASSED")


def test_request_above_available_waits():
    state = _tight_state()
    state.transition_state("P0", ProcessState.RUNNING)
    granted, reason = request_resources(state, "P0", "X", 3)
    assert not granted
    assert "Insufficient" in reason
    assert state.get_process("P0").pending == {"r-0": 3}


def main():
    """Run all Banker's tests."""
    tests = [
        test_safe_scenario,
        test_sequence_is_deterministic,
        test_unsafe_scenario,
        test_terminated_and_excluded_processes_are_skipped,
        test_empty_state_is_safe,
        test_bankers_scan_restarts_from_first_row,
        test_replay_rejects_bad_orders,
        test_would_be_safe_does_not_mutate,
        test_granted_request,
        test_request_exceeding_need,
        test_unsafe_request_is_denied_and_pending,
        test_request_above_available_waits,
    ]
    try:
        for test in tests:
            test()
        print("\n🎉 ALL BANKER'S TESTS PASSED\n")
        return 0
    except AssertionError as e:
        print(f"\n❌ TEST FAILED: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
