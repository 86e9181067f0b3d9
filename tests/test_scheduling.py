"""
Scheduling Engine Tests

Tick-level behavior of FCFS, SJF (shortest remaining time), Priority and
Round Robin, plus timeline, metrics and reset.
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from models.process import Process, ProcessState
from models.system_state import SystemState
from models.errors import ConfigurationError
from algorithms.scheduling import Scheduler, SchedulingPolicy
from analysis.events import EventType
from utils.scenario_loader import load_scenario


# Test scenarios directory
SCENARIOS_DIR = project_root / "tests" / "scenarios"


def _processes(*specs):
    """(pid, arrival, burst, priority) tuples -> NEW processes."""
    return [
        Process(pid=pid, name=pid, arrival_time=arrival, burst_time=burst, priority=priority)
        for pid, arrival, burst, priority in specs
    ]


def _timeline(scheduler):
    return [(s.pid, s.start, s.end) for s in scheduler.timeline]


def test_fcfs_scenario():
    """P1 runs 0-5, P2 arrives at 2 and waits until 5."""
    print("\n" + "="*60)
    print("TEST: FCFS Scenario")
    print("="*60)

    state, config = load_scenario(str(SCENARIOS_DIR / "scenario_c_fcfs.json"))
    scheduler = Scheduler.from_config(state, config)
    metrics = scheduler.run_to_completion()

    p1, p2 = state.get_process("P1"), state.get_process("P2")
    assert scheduler.completion_order() == ["P1", "P2"]
    assert (p1.finish_time, p2.finish_time) == (5, 8)
    assert (p1.waiting_time, p2.waiting_time) == (0, 3)
    assert p2.response_time == 3
    assert _timeline(scheduler) == [("P1", 0, 5), ("P2", 5, 8)]

    print(f"  Avg waiting: {metrics.avg_waiting}, avg turnaround: {metrics.avg_turnaround}")
    assert metrics.avg_waiting == 1.5
    assert metrics.avg_turnaround == 5.5
    assert metrics.avg_response == 1.5
    assert metrics.cpu_utilization == 1.0
    assert all(p.state == ProcessState.TERMINATED for p in state.processes)

    print("\n✅ FCFS Scenario Test PASSED")


def test_sjf_preempts_on_shorter_arrival():
    scheduler = Scheduler(_processes(("A", 0, 8, 1), ("B", 1, 4, 1), ("C", 2, 2, 1)), policy="SJF")
    scheduler.run_to_completion()

    assert scheduler.completion_order() == ["C", "B", "A"]
    waiting = {p.pid: p.waiting_time for p in scheduler.processes}
    assert waiting == {"A": 6, "B": 2, "C": 0}
    assert _timeline(scheduler) == [("A", 0, 1), ("B", 1, 2), ("C", 2, 4), ("B", 4, 7), ("A", 7, 14)]
    assert scheduler.system_state.event_log.count(EventType.PREEMPTION) == 2


def test_priority_lower_value_wins():
    scheduler = Scheduler(_processes(("A", 0, 3, 3), ("B", 1, 2, 1)), policy=SchedulingPolicy.PRIORITY)
    scheduler.run_to_completion()

    assert scheduler.completion_order() == ["B", "A"]
    assert scheduler.system_state.get_process("A").finish_time == 5
    assert scheduler.system_state.get_process("A").waiting_time == 2
    assert scheduler.system_state.get_process("B").waiting_time == 0


def test_round_robin_rotation():
    print("\n" + "="*60)
    print("TEST: Round Robin (quantum 2)")
    print("="*60)

    scheduler = Scheduler(_processes(("A", 0, 5, 1), ("B", 1, 3, 1)), policy="RR", time_quantum=2)
    scheduler.run_to_completion()

    print(f"  Timeline: {_timeline(scheduler)}")
    assert _timeline(scheduler) == [("A", 0, 2), ("B", 2, 4), ("A", 4, 6), ("B", 6, 7), ("A", 7, 8)]
    assert scheduler.completion_order() == ["B", "A"]
    assert [p.waiting_time for p in scheduler.processes] == [3, 3]

    print("\n✅ Round Robin Test PASSED")


def test_round_robin_arrival_queues_before_requeue():
    """A process arriving as the slice expires runs before the rotated one."""
    scheduler = Scheduler(_processes(("A", 0, 4, 1), ("B", 2, 2, 1)), policy="RR", time_quantum=2)
    scheduler.run_to_completion()
    assert _timeline(scheduler) == [("A", 0, 2), ("B", 2, 4), ("A", 4, 6)]


def test_round_robin_mix_completes():
    state, config = load_scenario(str(SCENARIOS_DIR / "scheduling_mix.json"))
    assert config.policy == "RR"
    scheduler = Scheduler.from_config(state, config)
    metrics = scheduler.run_to_completion()

    assert metrics is not None
    assert metrics.total_processes == 4
    assert metrics.makespan == 19
    assert metrics.cpu_utilization == 1.0
    # No gaps and no overlap in the Gantt chart
    for previous, current in zip(scheduler.timeline, scheduler.timeline[1:]):
        assert previous.end == current.start
    assert sum(s.duration for s in scheduler.timeline) == 19


def test_idle_until_first_arrival():
    scheduler = Scheduler(_processes(("A", 3, 2, 1)))
    assert scheduler.run_tick() is None
    metrics = scheduler.run_to_completion()

    assert _timeline(scheduler) == [(None, 0, 3), ("A", 3, 5)]
    assert metrics.avg_response == 0
    assert metrics.cpu_utilization == pytest.approx(0.4)


def test_waiting_process_is_not_scheduled():
    state = SystemState(processes=_processes(("A", 0, 2, 1), ("B", 0, 1, 1)))
    state.transition_state("A", ProcessState.READY)
    state.transition_state("A", ProcessState.RUNNING)
    state.transition_state("A", ProcessState.WAITING)

    scheduler = Scheduler(state, policy="FCFS")
    assert scheduler.run_tick() == "B"
    assert scheduler.run_tick() is None
    assert not scheduler.is_complete
    assert scheduler.compute_metrics() is None


def test_fractional_tick():
    scheduler = Scheduler(_processes(("A", 0, 1, 1)))
    assert scheduler.run_tick(2) == "A"
    process = scheduler.processes[0]
    assert process.finish_time == 1
    assert scheduler.clock == 2
    assert _timeline(scheduler) == [("A", 0, 1)]


def test_zero_burst_finishes_on_arrival():
    """Z needs no CPU: it terminates the tick it arrives, A keeps running."""
    print("\n" + "="*60)
    print("TEST: Zero Burst Process")
    print("="*60)

    scheduler = Scheduler(_processes(("A", 0, 3, 1), ("Z", 1, 0, 1)), policy="FCFS")
    metrics = scheduler.run_to_completion(max_ticks=50)

    z = scheduler.system_state.get_process("Z")
    print(f"  Z: state={z.state.value}, finish={z.finish_time}")
    assert metrics is not None
    assert z.state == ProcessState.TERMINATED
    assert (z.finish_time, z.turnaround_time, z.waiting_time, z.response_time) == (1, 0, 0, 0)
    assert scheduler.completion_order() == ["Z", "A"]
    assert _timeline(scheduler) == [("A", 0, 3)]
    assert scheduler.clock == 3
    assert metrics.avg_turnaround == 1.5

    print("\n✅ Zero Burst Test PASSED")


def test_zero_burst_scenario_schedules():
    """Processes loaded without a burst all finish at time 0."""
    state, config = load_scenario(str(project_root / "scenarios" / "banker_safe.json"))
    scheduler = Scheduler.from_config(state, config)
    metrics = scheduler.run_to_completion(max_ticks=100)

    assert metrics is not None
    assert scheduler.clock == 0
    assert scheduler.timeline == []
    assert metrics.makespan == 0 and metrics.cpu_utilization == 0
    assert all(p.state == ProcessState.TERMINATED for p in state.processes)
    assert state.available_vector.tolist() == [10, 5]


def test_lone_process_under_every_policy():
    for policy in SchedulingPolicy:
        scheduler = Scheduler(_processes(("A", 0, 4, 1)), policy=policy)
        metrics = scheduler.run_to_completion()

        assert metrics is not None, policy
        assert _timeline(scheduler) == [("A", 0, 4)]
        assert (metrics.avg_waiting, metrics.avg_response) == (0, 0)
        assert metrics.cpu_utilization == 1


def test_short_burst_after_idle_gap():
    """A arrives mid-tick at 2.5 and needs half a tick."""
    scheduler = Scheduler(_processes(("A", 2.5, 0.5, 1)))
    metrics = scheduler.run_to_completion()

    process = scheduler.processes[0]
    assert metrics is not None
    assert _timeline(scheduler) == [(None, 0, 3), ("A", 3, 3.5)]
    assert (process.finish_time, process.waiting_time, process.response_time) == (3.5, 0.5, 0.5)
    assert metrics.cpu_utilization == pytest.approx(0.5 / 3.5)


def test_metrics_unavailable_until_done():
    scheduler = Scheduler(_processes(("A", 0, 3, 1), ("B", 0, 3, 1)))
    scheduler.run_tick()
    assert scheduler.compute_metrics() is None
    assert Scheduler([]).compute_metrics() is None


def test_reset_reproduces_run():
    scheduler = Scheduler(_processes(("A", 0, 3, 2), ("B", 1, 1, 1)), policy="Priority")
    scheduler.run_to_completion()
    first = _timeline(scheduler)

    scheduler.reset()
    assert scheduler.clock == 0
    assert scheduler.timeline == []
    assert all(p.state == ProcessState.NEW and p.finish_time is None for p in scheduler.processes)
    assert all(p.remaining_time == p.burst_time for p in scheduler.processes)

    scheduler.run_to_completion()
    assert _timeline(scheduler) == first


def test_invalid_arguments():
    with pytest.raises(ConfigurationError):
        Scheduler([], policy="lottery")
    with pytest.raises(ConfigurationError):
        Scheduler([], time_quantum=0)
    with pytest.raises(ConfigurationError):
        Scheduler([], tick=-1)
    with pytest.raises(ValueError):
        Scheduler(_processes(("A", 0, 1, 1))).run_tick(0)


def test_policy_parse_aliases():
    assert SchedulingPolicy.parse("rr") == SchedulingPolicy.ROUND_ROBIN
    assert SchedulingPolicy.parse("Round_Robin") == SchedulingPolicy.ROUND_ROBIN
    assert SchedulingPolicy.parse("srtf") == SchedulingPolicy.SJF
    assert SchedulingPolicy.parse("priority") == SchedulingPolicy.PRIORITY
    assert not SchedulingPolicy.FCFS.preemptive


def main():
    """Run all scheduling tests."""
    tests = [
        test_fcfs_scenario,
        test_sjf_preempts_on_shorter_arrival,
        test_priority_lower_value_wins,
        test_round_robin_rotation,
        test_round_robin_arrival_queues_before_requeue,
        test_round_robin_mix_completes,
        test_idle_until_first_arrival,
        test_waiting_process_is_not_scheduled,
        test_fractional_tick,
        test_zero_burst_finishes_on_arrival,
        test_zero_burst_scenario_schedules,
        test_lone_process_under_every_policy,
        test_short_burst_after_idle_gap,
        test_metrics_unavailable_until_done,
        test_reset_reproduces_run,
        test_invalid_arguments,
        test_policy_parse_aliases,
    ]
    try:
        for test in tests:
            test()
        print("\n🎉 ALL SCHEDULING TESTS PASSED\n")
        return 0
    except AssertionError as e:
        print(f"\n❌ TEST FAILED: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
