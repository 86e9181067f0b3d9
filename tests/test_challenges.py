"""
Challenge Evaluation Tests

Scheduling, resource-allocation and deadlock challenges from the
bundled catalog.
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.process import ProcessState
from algorithms.challenges import (
    challenge_state,
    evaluate,
    suggested_order,
)
from algorithms.detection import find_deadlocked_processes
from utils.scenario_loader import load_challenges


CATALOG = project_root / "scenarios" / "challenges.json"


def _challenge(challenge_id):
    for challenge in load_challenges(str(CATALOG)):
        if challenge.challenge_id == challenge_id:
            return challenge
    raise AssertionError(f"{challenge_id} missing from catalog")


def test_scheduling_challenge():
    print("\n" + "="*60)
    print("TEST: Scheduling Challenge")
    print("="*60)

    level1 = _challenge("level1")
    result = evaluate(level1, {"algorithm": "SJF", "order": ["p4", "p2", "p1", "p3"]})
    print(f"  {result.message}")
    assert result.correct

    wrong_algorithm = evaluate(level1, {"algorithm": "FCFS", "order": ["p4", "p2", "p1", "p3"]})
    assert not wrong_algorithm
    assert "isn't optimal for the given scenario" in wrong_algorithm.message

    wrong_order = evaluate(level1, {"algorithm": "SJF", "order": ["p1", "p2", "p3", "p4"]})
    assert not wrong_order
    assert "execution order" in wrong_order.message

    missing = evaluate(level1, {})
    assert missing.message == "Select a scheduling algorithm first."

    print("\n✅ Scheduling Challenge Test PASSED")


def test_round_robin_challenge_ignores_order():
    level7 = _challenge("level7")
    assert evaluate(level7, {"algorithm": "RR", "order": []}).correct
    assert not evaluate(level7, {"algorithm": "Priority"}).correct


def test_suggested_orders():
    level1 = _challenge("level1")
    assert suggested_order(level1, "SJF") == level1.solution_order
    assert suggested_order(level1, "FCFS") == ["p1", "p2", "p3", "p4"]
    assert suggested_order(level1, "RR") == level1.initial_order

    level4 = _challenge("level4")
    assert suggested_order(level4, "Priority") == ["p4", "p3", "p1", "p2"]


def test_resource_challenge():
    level2 = _challenge("level2")

    shuffled = {"p1": ["r2", "r1"], "p2": ["r3", "r2"], "p3": ["r3", "r1"]}
    assert evaluate(level2, shuffled).correct

    deadlock = evaluate(level2, {"p1": ["r1"], "p2": ["r2"], "p3": ["r3"]})
    assert not deadlock.correct
    assert "deadlock" in deadlock.message

    suboptimal = evaluate(level2, {"p1": ["r1", "r2"], "p2": [], "p3": []})
    assert not suboptimal.correct
    assert "isn't optimal" in suboptimal.message


def test_deadlock_challenge():
    print("\n" + "="*60)
    print("TEST: Deadlock Challenge")
    print("="*60)

    level3 = _challenge("level3")
    exact = evaluate(level3, ["p1", "p3", "p4", "p2"])
    assert exact.correct and exact.valid

    alternative = evaluate(level3, ["p1", "p4", "p3", "p2"])
    print(f"  Alternative order: {alternative.message}")
    assert not alternative.correct
    assert alternative.valid
    assert "works but isn't the optimal" in alternative.message

    incomplete = evaluate(level3, ["p1", "p3"])
    assert not incomplete.correct
    assert incomplete.valid is False

    level8 = _challenge("level8")
    stuck = evaluate(level8, ["p1", "p2", "p3", "p4"])
    print(f"  Stuck order: {stuck.message}")
    assert stuck.valid is False
    assert "deadlock" in stuck.message

    print("\n✅ Deadlock Challenge Test PASSED")


def test_challenge_state_materializes_deadlock():
    state = challenge_state(_challenge("level8"))
    state.check_invariants()

    assert [r.total for r in state.resources] == [1, 1, 1]
    assert all(p.state == ProcessState.WAITING for p in state.processes)
    assert state.deadlock_detected
    assert find_deadlocked_processes(state) == ["p1", "p2", "p3", "p4"]


def test_challenge_state_without_deadlock():
    state = challenge_state(_challenge("level3"))
    assert state.get_process("p1").state == ProcessState.READY
    assert state.get_process("p2").pending == {"r1": 2, "r3": 2}
    assert state.available_vector.tolist() == [3, 3, 2]
    assert not state.deadlock_detected
    assert find_deadlocked_processes(state) == []
