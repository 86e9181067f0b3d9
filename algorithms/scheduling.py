"""
CPU Scheduling Engine for the OS Puzzle core.

Tick-driven simulation of FCFS, SJF (shortest remaining time), Priority
and Round Robin over the processes of a SystemState. Each tick admits
arrivals, picks at most one process, runs it for up to one tick's worth
of time and stamps its timing fields when it finishes.
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Iterable, List, Optional, Union

from models.process import Process, ProcessState
from models.system_state import SystemState
from models.errors import ConfigurationError
from analysis.events import EventType
from analysis.metrics import SchedulingMetrics, compute_scheduling_metrics

# Remaining times below this count as zero (fractional ticks)
EPSILON = 1e-9


class SchedulingPolicy(Enum):
    """Supported CPU scheduling policies."""
    FCFS = "FCFS"
    SJF = "SJF"
    PRIORITY = "Priority"
    ROUND_ROBIN = "RR"

    @classmethod
    def parse(cls, value: Union["SchedulingPolicy", str]) -> "SchedulingPolicy":
        """
        Accept an enum member, its value or its name, case-insensitively.

        Raises:
            ConfigurationError: If the name matches no policy
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        aliases = {
            "fcfs": cls.FCFS,
            "sjf": cls.SJF,
            "srtf": cls.SJF,
            "priority": cls.PRIORITY,
            "rr": cls.ROUND_ROBIN,
            "round_robin": cls.ROUND_ROBIN,
            "roundrobin": cls.ROUND_ROBIN,
        }
        if key not in aliases:
            raise ConfigurationError(
                f"Unknown scheduling policy '{value}'. "
                f"Valid policies: {', '.join(p.value for p in cls)}"
            )
        return aliases[key]

    @property
    def preemptive(self) -> bool:
        return self != SchedulingPolicy.FCFS


@dataclass
class ExecutionSlice:
    """One bar of the Gantt chart. pid is None for idle time."""
    pid: Optional[str]
    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


class Scheduler:
    """
    Tick-driven CPU scheduler.

    The scheduler drives the lifecycle of the processes it runs:
    arrival moves NEW -> READY, dispatch READY -> RUNNING, completion
    RUNNING -> TERMINATED, and preemption RUNNING -> WAITING -> READY
    within a single tick. A WAITING process (blocked on a resource) is
    not eligible until something moves it back to READY.

    Attributes:
        system_state: State owning the processes and the clock
        policy: Scheduling policy
        time_quantum: Round Robin slice length
        tick: Default tick length for run_tick()
        timeline: Gantt chart of the run so far
    """

    def __init__(
        self,
        processes: Union[SystemState, Iterable[Process]],
        policy: Union[SchedulingPolicy, str] = SchedulingPolicy.FCFS,
        time_quantum: float = 2,
        tick: float = 1,
        logger=None
    ):
        if time_quantum <= 0:
            raise ConfigurationError(f"time_quantum must be positive, got {time_quantum}")
        if tick <= 0:
            raise ConfigurationError(f"tick must be positive, got {tick}")

        if isinstance(processes, SystemState):
            self.system_state = processes
        else:
            self.system_state = SystemState(processes=list(processes))

        self.policy = SchedulingPolicy.parse(policy)
        self.time_quantum = time_quantum
        self.tick = tick
        self.logger = logger if logger is not None else self.system_state.logger

        self.timeline: List[ExecutionSlice] = []
        self._rotation: Deque[str] = deque()
        self._current: Optional[str] = None
        self._slice_used = 0.0

    @classmethod
    def from_config(cls, system_state: SystemState, config, logger=None) -> "Scheduler":
        """Build a scheduler from a SimulationConfig."""
        return cls(
            system_state,
            policy=config.policy,
            time_quantum=config.time_quantum,
            tick=config.tick,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Properties

    @property
    def processes(self) -> List[Process]:
        return self.system_state.processes

    @property
    def clock(self) -> float:
        return self.system_state.clock

    @property
    def running(self) -> Optional[str]:
        """Pid holding the CPU, if any."""
        return self._current

    @property
    def is_complete(self) -> bool:
        """True once every process has a finish_time."""
        return all(p.finish_time is not None for p in self.processes)

    # ------------------------------------------------------------------
    # Stepping

    def run_tick(self, delta: Optional[float] = None) -> Optional[str]:
        """
        Advance the simulated clock by one tick.

        Steps:
        1. Admit processes whose arrival_time <= clock; arrived processes
           with nothing left to run finish at the current clock
        2. Select one eligible process per policy (or idle)
        3. Preempt the previous holder if it lost the CPU
        4. Run the selection for min(delta, remaining_time)
        5. Stamp timing fields if it finished
        6. Advance the clock; for RR, admit new arrivals and then requeue
           the process whose slice reached the quantum

        Args:
            delta: Tick length (defaults to self.tick)

        Returns:
            Pid that ran this tick, or None if the CPU idled
        """
        delta = self.tick if delta is None else delta
        if delta <= 0:
            raise ValueError(f"Tick length must be positive, got {delta}")

        start = self.clock
        self._admit(start)
        self._finish_zero_length(start)
        if self._all_done():
            return None

        chosen = self._select()
        if self._current is not None and self._current != (chosen.pid if chosen else None):
            self._preempt(self._current)

        if chosen is None:
            self._extend_timeline(None, start, start + delta)
            self.system_state.advance_clock(delta)
            if self.logger is not None:
                self.logger.log_tick(start, None)
            self._admit(self.clock)
            return None

        if chosen.state == ProcessState.READY:
            self._dispatch(chosen)

        used = min(delta, chosen.remaining_time)
        chosen.remaining_time -= used
        self._slice_used += used
        self._extend_timeline(chosen.pid, start, start + used)
        if self.logger is not None:
            self.logger.log_tick(start, chosen.pid)

        if chosen.remaining_time <= EPSILON:
            self._finish(chosen, start + used)

        self.system_state.advance_clock(delta)

        if self.policy == SchedulingPolicy.ROUND_ROBIN:
            # New arrivals queue ahead of the process being rotated out
            self._admit(self.clock)
            if self._current == chosen.pid and self._slice_used >= self.time_quantum - EPSILON:
                self._rotation.remove(chosen.pid)
                self._rotation.append(chosen.pid)
                self._slice_used = 0.0
        return chosen.pid

    def run_to_completion(self, max_ticks: int = 10000) -> Optional[SchedulingMetrics]:
        """
        Tick until every process has terminated or max_ticks is reached.

        Returns:
            SchedulingMetrics, or None if the run did not finish
        """
        ticks = 0
        while not self._all_done() and ticks < max_ticks:
            self.run_tick()
            ticks += 1

        if not self._all_done() and self.logger is not None:
            self.logger.log(
                f"Scheduler stopped after {ticks} ticks with unfinished processes",
                "warning"
            )
        return self.compute_metrics()

    def compute_metrics(self) -> Optional[SchedulingMetrics]:
        """Aggregate metrics once every process has finished, else None."""
        return compute_scheduling_metrics(self.processes)

    def completion_order(self) -> List[str]:
        """Pids of finished processes ordered by finish_time (registry order on ties)."""
        finished = [p for p in self.processes if p.finish_time is not None]
        return [p.pid for p in sorted(finished, key=lambda p: p.finish_time)]

    def reset(self) -> None:
        """Restore every process to its pre-run fields and clear the timeline."""
        self.system_state.rewind()
        self.timeline = []
        self._rotation = deque()
        self._current = None
        self._slice_used = 0.0

    # ------------------------------------------------------------------
    # Internals

    def _all_done(self) -> bool:
        return all(p.is_finished() for p in self.processes)

    def _order(self, process: Process) -> int:
        return self.processes.index(process)

    def _admit(self, clock: float) -> None:
        """Move arrived NEW processes to READY and queue them for RR."""
        arrived = [
            p for p in self.processes
            if p.has_arrived(clock) and not p.is_finished() and p.pid not in self._rotation
        ]
        arrived.sort(key=lambda p: (p.arrival_time, self._order(p)))

        for process in arrived:
            if process.state == ProcessState.NEW:
                self.system_state.transition_state(process.pid, ProcessState.READY)
            self._rotation.append(process.pid)

    def _eligible(self) -> List[Process]:
        return [
            p for p in self.processes
            if p.has_arrived(self.clock)
            and p.state in (ProcessState.READY, ProcessState.RUNNING)
            and p.remaining_time > EPSILON
        ]

    def _select(self) -> Optional[Process]:
        candidates = self._eligible()
        if not candidates:
            return None

        if self.policy == SchedulingPolicy.FCFS:
            for process in candidates:
                if process.pid == self._current:
                    return process
            return min(candidates, key=lambda p: (p.arrival_time, self._order(p)))

        if self.policy == SchedulingPolicy.SJF:
            return min(
                candidates,
                key=lambda p: (p.remaining_time, p.arrival_time, self._order(p))
            )

        if self.policy == SchedulingPolicy.PRIORITY:
            return min(
                candidates,
                key=lambda p: (p.priority, p.arrival_time, self._order(p))
            )

        eligible = {p.pid: p for p in candidates}
        for pid in self._rotation:
            if pid in eligible:
                return eligible[pid]
        return None

    def _finish_zero_length(self, clock: float) -> None:
        """Run and finish READY processes whose remaining_time is already 0."""
        for process in self.processes:
            if process.state == ProcessState.READY and process.remaining_time <= EPSILON:
                self.system_state.transition_state(process.pid, ProcessState.RUNNING)
                self._finish(process, clock)

    def _dispatch(self, process: Process) -> None:
        self.system_state.transition_state(process.pid, ProcessState.RUNNING)
        self.system_state.record_event(
            EventType.DISPATCH, process.pid, message=f"dispatched by {self.policy.value}"
        )
        self._current = process.pid
        self._slice_used = 0.0
        if self.logger is not None:
            self.logger.log_dispatch(self.clock, process.pid, self.policy.value)

    def _preempt(self, pid: str) -> None:
        process = self.system_state.get_process(pid)
        if process.state == ProcessState.RUNNING:
            self.system_state.preempt(pid)
        self._current = None
        self._slice_used = 0.0

    def _finish(self, process: Process, finish_time: float) -> None:
        process.complete(finish_time)
        self.system_state.transition_state(process.pid, ProcessState.TERMINATED)
        self.system_state.record_event(
            EventType.COMPLETION, process.pid,
            message=f"turnaround={process.turnaround_time:g}, waiting={process.waiting_time:g}"
        )
        if process.pid in self._rotation:
            self._rotation.remove(process.pid)
        if self._current == process.pid:
            self._current = None
            self._slice_used = 0.0
        if self.logger is not None:
            self.logger.log_completion(finish_time, process.pid, process.turnaround_time, process.waiting_time)

    def _extend_timeline(self, pid: Optional[str], start: float, end: float) -> None:
        if self.timeline:
            last = self.timeline[-1]
            if last.pid == pid and abs(last.end - start) <= EPSILON:
                last.end = end
                return
        self.timeline.append(ExecutionSlice(pid, start, end))
