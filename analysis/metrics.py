"""
Metrics and Scoring for the OS Puzzle core.

Aggregates per-process timing fields into scheduling metrics and turns
them (plus ledger verdicts) into game scores.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import statistics

from models.process import Process


@dataclass
class SchedulingMetrics:
    """
    Aggregate metrics for one finished scheduling run.

    Tracks four key performance metrics:
    1. Average Waiting Time: mean of (turnaround - burst)
    2. Average Turnaround Time: mean of (finish - arrival)
    3. Average Response Time: mean of (first dispatch - arrival)
    4. CPU Utilization: total burst time / last finish time (ratio, 0..1)
    """
    avg_waiting: float
    avg_turnaround: float
    avg_response: float
    cpu_utilization: float
    total_processes: int = 0
    makespan: float = 0

    def as_dict(self) -> dict:
        return {
            'avgWaiting': self.avg_waiting,
            'avgTurnaround': self.avg_turnaround,
            'avgResponse': self.avg_response,
            'cpuUtilization': self.cpu_utilization,
        }


def compute_scheduling_metrics(processes: Sequence[Process]) -> Optional[SchedulingMetrics]:
    """
    Aggregate timing fields once every process has finished.

    Args:
        processes: Processes of one scheduling run

    Returns:
        SchedulingMetrics, or None if the list is empty or any process
        still has no finish_time
    """
    if not processes:
        return None
    if any(p.finish_time is None for p in processes):
        return None

    makespan = max(p.finish_time for p in processes)
    total_burst = sum(p.burst_time for p in processes)
    utilization = total_burst / makespan if makespan > 0 else 0.0

    return SchedulingMetrics(
        avg_waiting=statistics.mean(p.waiting_time for p in processes),
        avg_turnaround=statistics.mean(p.turnaround_time for p in processes),
        avg_response=statistics.mean(
            p.response_time if p.response_time is not None else 0 for p in processes
        ),
        cpu_utilization=utilization,
        total_processes=len(processes),
        makespan=makespan,
    )


def scheduling_score(metrics: SchedulingMetrics) -> float:
    """
    Score one scheduling run (higher is better).

    Formula:
        (100 - avg_waiting*10) + (100 - avg_turnaround*5)
        + (100 - avg_response*10) + cpu_utilization*100
    """
    waiting_score = 100 - metrics.avg_waiting * 10
    turnaround_score = 100 - metrics.avg_turnaround * 5
    response_score = 100 - metrics.avg_response * 10
    utilization_score = metrics.cpu_utilization * 100
    return waiting_score + turnaround_score + response_score + utilization_score


def puzzle_score(time_limit: float, elapsed: float, min_moves: int, moves: int, hints_used: int) -> float:
    """
    Final score of a solved safe-sequence puzzle.

    Formula:
        1000 + max(0, time_limit - elapsed)
             + max(0, min_moves*20 - moves*10)
             - 50*hints_used
    """
    time_bonus = max(0, time_limit - elapsed)
    move_bonus = max(0, min_moves * 20 - moves * 10)
    return 1000 + time_bonus + move_bonus - 50 * hints_used


@dataclass
class ScoreBreakdown:
    """Itemized simulation score."""
    cpu_score: int = 0
    deadlock_penalty: int = 0
    waiting_bonus: int = 0
    turnaround_bonus: int = 0
    complexity_bonus: int = 0
    safe_state_bonus: int = 0
    completion_bonus: int = 0

    @property
    def total(self) -> int:
        raw = (
            self.cpu_score
            + self.deadlock_penalty
            + self.waiting_bonus
            + self.turnaround_bonus
            + self.complexity_bonus
            + self.safe_state_bonus
            + self.completion_bonus
        )
        return max(0, raw)


def simulation_score(system_state, metrics: Optional[SchedulingMetrics] = None, level: int = 1) -> ScoreBreakdown:
    """
    Score a live simulation.

    Components:
    - CPU score: round(utilization% * level * 10)
    - Deadlock penalty: -100 * level while a deadlock is flagged
    - Waiting / turnaround bonuses: round(100 / avg_waiting), round(200 / avg_turnaround)
      (0 when the average is 0 or no metrics yet)
    - Complexity bonus: 5 per process + 10 per resource
    - Safe-state bonus: 50 * level when Banker's says safe
    - 25 per terminated process

    Args:
        system_state: SystemState being played
        metrics: SchedulingMetrics of the run, if finished
        level: Player level (>= 1)

    Returns:
        ScoreBreakdown; its total is floored at 0
    """
    breakdown = ScoreBreakdown()
    level_multiplier = level * 10

    if metrics is not None:
        breakdown.cpu_score = round(metrics.cpu_utilization * 100 * level_multiplier)
        if metrics.avg_waiting:
            breakdown.waiting_bonus = round(100 / metrics.avg_waiting)
        if metrics.avg_turnaround:
            breakdown.turnaround_bonus = round(200 / metrics.avg_turnaround)

    if system_state.deadlock_detected:
        breakdown.deadlock_penalty = -100 * level
    breakdown.complexity_bonus = system_state.num_processes * 5 + system_state.num_resources * 10
    if system_state.is_safe_state():
        breakdown.safe_state_bonus = 50 * level
    breakdown.completion_bonus = 25 * sum(1 for p in system_state.processes if p.is_finished())
    return breakdown


@dataclass
class MetricAccumulator:
    """Accumulates scheduling metrics across several runs."""
    runs: List[SchedulingMetrics] = field(default_factory=list)

    def add_run(self, metrics: SchedulingMetrics) -> None:
        """Add metrics from a scheduling run."""
        self.runs.append(metrics)

    def get_aggregate_waiting_time(self) -> float:
        if not self.runs:
            return 0.0
        return statistics.mean(run.avg_waiting for run in self.runs)

    def get_aggregate_turnaround_time(self) -> float:
        if not self.runs:
            return 0.0
        return statistics.mean(run.avg_turnaround for run in self.runs)

    def get_aggregate_utilization(self) -> float:
        if not self.runs:
            return 0.0
        return statistics.mean(run.cpu_utilization for run in self.runs)


def format_metrics_report(
    metrics: Optional[SchedulingMetrics],
    processes: Sequence[Process] = (),
    verbose: bool = False,
    policy: str = None,
    scenario: str = None
) -> str:
    """
    Format metrics for display at end of a scheduling run.

    Args:
        metrics: SchedulingMetrics (None if the run did not finish)
        processes: Processes of the run, for the per-process table
        verbose: If True, include metric formulas
        policy: Policy used in the run
        scenario: Scenario file path

    Returns:
        Formatted metrics report string
    """
    lines = []
    lines.append("\n" + "="*60)
    lines.append("SCHEDULING METRICS")
    lines.append("="*60)

    if policy:
        lines.append(f"Policy: {policy}")
    if scenario:
        lines.append(f"Scenario: {scenario}")
    if policy or scenario:
        lines.append("")

    if metrics is None:
        unfinished = [p.pid for p in processes if p.finish_time is None]
        lines.append("Run incomplete, metrics unavailable")
        if unfinished:
            lines.append(f"Unfinished processes: {', '.join(unfinished)}")
    else:
        lines.append("KEY PERFORMANCE METRICS:")
        lines.append("-" * 60)
        lines.append(f"1. Average Waiting Time: {metrics.avg_waiting:.2f}")
        lines.append(f"2. Average Turnaround Time: {metrics.avg_turnaround:.2f}")
        lines.append(f"3. Average Response Time: {metrics.avg_response:.2f}")
        lines.append(f"4. CPU Utilization: {metrics.cpu_utilization:.2%}")
        lines.append(f"Score: {scheduling_score(metrics):.1f}")

    if processes:
        lines.append("")
        lines.append("PER-PROCESS SUMMARY:")
        lines.append("-" * 60)

        def fmt(value):
            return "-" if value is None else f"{value:g}"

        for p in processes:
            lines.append(
                f"  {p.pid:>5}: {p.state.value:10} | arrival={fmt(p.arrival_time):>3} "
                f"burst={fmt(p.burst_time):>3} | start={fmt(p.start_time):>3} "
                f"finish={fmt(p.finish_time):>3} | wait={fmt(p.waiting_time):>3} "
                f"tat={fmt(p.turnaround_time):>3} resp={fmt(p.response_time):>3}"
            )

    if verbose:
        lines.append("")
        lines.append("METRIC FORMULAS:")
        lines.append("-" * 60)
        lines.append("1. Waiting Time: turnaround - burst")
        lines.append("2. Turnaround Time: finish - arrival")
        lines.append("3. Response Time: first dispatch - arrival")
        lines.append("4. CPU Utilization: SUM burst / last finish time")

    lines.append("="*60)
    return "\n".join(lines)
