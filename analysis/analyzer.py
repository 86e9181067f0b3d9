"""
Policy Comparison for the OS Puzzle core.

Runs one process set under several scheduling policies and ranks them
by score. Called by simulator.py compare.
"""

from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from models.process import Process
from algorithms.scheduling import Scheduler, SchedulingPolicy
from analysis.metrics import SchedulingMetrics, scheduling_score

DEFAULT_POLICIES = ("FCFS", "SJF", "Priority", "RR")


@dataclass
class RunResult:
    """Results from a single scheduling run."""
    policy: str
    metrics: Optional[SchedulingMetrics]
    completion_order: List[str] = field(default_factory=list)
    ticks: int = 0

    def is_successful(self) -> bool:
        """Check if every process finished."""
        return self.metrics is not None

    @property
    def score(self) -> Optional[float]:
        return scheduling_score(self.metrics) if self.metrics is not None else None


@dataclass
class PolicyComparisonResult:
    """One row of the comparison, ranked by score."""
    policy_name: str
    rank: int
    run: RunResult

    def display(self) -> str:
        """Format results for display."""
        result = f"\n#{self.rank} Policy: {self.policy_name}\n"
        metrics = self.run.metrics
        if metrics is None:
            result += f"  Did not finish within {self.run.ticks} ticks"
            return result

        result += f"  Completion order: {' -> '.join(self.run.completion_order)}\n"
        result += f"  Avg Waiting Time: {metrics.avg_waiting:.2f}\n"
        result += f"  Avg Turnaround Time: {metrics.avg_turnaround:.2f}\n"
        result += f"  Avg Response Time: {metrics.avg_response:.2f}\n"
        result += f"  CPU Utilization: {metrics.cpu_utilization:.2%}\n"
        result += f"  Score: {self.run.score:.1f}"
        return result


def clone_processes(processes: Sequence[Process]) -> List[Process]:
    """Fresh NEW copies carrying only the scheduling inputs."""
    return [
        Process(
            pid=p.pid,
            name=p.name,
            arrival_time=p.arrival_time,
            burst_time=p.burst_time,
            priority=p.priority,
        )
        for p in processes
    ]


def run_policy(
    processes: Sequence[Process],
    policy: str,
    time_quantum: float = 2,
    tick: float = 1,
    max_ticks: int = 10000,
    logger=None
) -> RunResult:
    """
    Schedule a private copy of the process set under one policy.

    Args:
        processes: Process set (left untouched)
        policy: Policy name
        time_quantum: Round Robin slice length
        tick: Tick length
        max_ticks: Stop after this many ticks
        logger: Optional SimulatorLogger

    Returns:
        RunResult
    """
    scheduler = Scheduler(
        clone_processes(processes),
        policy=policy,
        time_quantum=time_quantum,
        tick=tick,
        logger=logger,
    )
    metrics = scheduler.run_to_completion(max_ticks)
    ticks = int(round(scheduler.clock / tick))
    return RunResult(
        policy=scheduler.policy.value,
        metrics=metrics,
        completion_order=scheduler.completion_order(),
        ticks=ticks,
    )


def compare_policies(
    processes: Sequence[Process],
    policies: Sequence[str] = DEFAULT_POLICIES,
    time_quantum: float = 2,
    tick: float = 1,
    max_ticks: int = 10000,
    logger=None
) -> Tuple[List[PolicyComparisonResult], Optional[str]]:
    """
    Compare scheduling policies on the same process set.

    Finished runs rank above unfinished ones; among finished runs the
    higher score wins and ties keep the order policies were given in.

    Args:
        processes: Process set shared by every run
        policies: Policy names to compare
        time_quantum: Round Robin slice length
        tick: Tick length
        max_ticks: Per-run tick limit
        logger: Optional SimulatorLogger

    Returns:
        Tuple of (ranked results, winning policy name or None)
    """
    runs = []
    for policy in policies:
        name = SchedulingPolicy.parse(policy).value
        if logger is not None:
            logger.log(f"Running {name} on {len(processes)} processes", "debug")
        runs.append(run_policy(processes, name, time_quantum, tick, max_ticks))

    ranked = sorted(
        runs,
        key=lambda r: (not r.is_successful(), -(r.score or 0.0)),
    )
    results = [
        PolicyComparisonResult(policy_name=run.policy, rank=i + 1, run=run)
        for i, run in enumerate(ranked)
    ]
    winner = results[0].policy_name if results and results[0].run.is_successful() else None
    return results, winner


def generate_comparison_report(
    results: List[PolicyComparisonResult],
    winner: Optional[str],
    scenario_path: str = None,
    time_quantum: float = 2
) -> str:
    """
    Generate formatted comparison report.

    Args:
        results: Ranked comparison results
        winner: Winning policy name (None if nothing finished)
        scenario_path: Path to scenario file
        time_quantum: Round Robin slice length used

    Returns:
        Formatted string report
    """
    report = "\n" + "="*70 + "\n"
    report += "POLICY COMPARISON REPORT\n"
    report += "="*70 + "\n"
    if scenario_path:
        report += f"Scenario: {scenario_path}\n"
    report += f"RR time quantum: {time_quantum:g}\n"
    report += "="*70 + "\n"

    for result in results:
        report += result.display()
        report += "\n" + "-"*70

    report += "\n\nKEY INSIGHTS:\n"
    report += "-"*70 + "\n"

    finished = [r for r in results if r.run.is_successful()]

    def format_best(metric_name: str, key_func, format_func) -> str:
        """Lowest value wins. Returns empty string if all policies tied."""
        target = min(key_func(r) for r in finished)
        winners = [r for r in finished if key_func(r) == target]
        if len(winners) == len(finished):
            return ""
        names = ", ".join(w.policy_name for w in winners)
        if len(winners) == 1:
            return f"  {metric_name}: {names} ({format_func(target)})\n"
        return f"  {metric_name}: {names} (tie at {format_func(target)})\n"

    if len(finished) > 1:
        insights = [
            format_best("Lowest Waiting Time", lambda r: r.run.metrics.avg_waiting, lambda v: f"{v:.2f}"),
            format_best("Lowest Turnaround Time", lambda r: r.run.metrics.avg_turnaround, lambda v: f"{v:.2f}"),
            format_best("Lowest Response Time", lambda r: r.run.metrics.avg_response, lambda v: f"{v:.2f}"),
        ]
        insights = [i for i in insights if i]
        if insights:
            for insight in insights:
                report += insight
        else:
            report += "  All policies showed identical timing (complete tie across all metrics).\n"

    report += f"\nWINNER: {winner if winner else 'none (no policy finished)'}\n"
    report += "="*70 + "\n"
    return report
