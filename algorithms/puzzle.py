"""
Safe-sequence puzzle ("Hack the OS") for the OS Puzzle core.

The player finishes processes one at a time. A process may run only if
its whole remaining need fits in the available pool; when it finishes it
returns everything it holds. Finishing every process wins the level.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from models.process import ProcessState
from models.system_state import SystemState
from models.errors import ConfigurationError
from analysis.metrics import puzzle_score
from utils.generator import generate_puzzle, SeedLike

MAX_HINTS = 3


@dataclass
class PuzzleLevel:
    """Static description of one puzzle level."""
    level: int
    name: str
    description: str
    difficulty: str
    processes: int
    resources: int
    time_limit: float
    min_moves: int


LEVELS = [
    PuzzleLevel(1, "Safe Escape", "Simple 3-process scenario. One solution path.",
                "Easy", 3, 2, 120, 3),
    PuzzleLevel(2, "Double Trouble", "Two possible solutions. Choose the most optimal path.",
                "Medium", 4, 2, 180, 4),
    PuzzleLevel(3, "Hidden Trap", "System looks safe, but one process causes circular wait. Identify it.",
                "Medium", 4, 3, 240, 4),
    PuzzleLevel(4, "Chain Reaction", "Resource release order impacts future allocations.",
                "Hard", 5, 3, 300, 5),
    PuzzleLevel(5, "Minimal Moves", "Solve the puzzle in the least number of steps.",
                "Expert", 5, 4, 360, 5),
]


def get_level(level: Union[int, PuzzleLevel]) -> PuzzleLevel:
    """Look up a level by number (1-based)."""
    if isinstance(level, PuzzleLevel):
        return level
    if not 1 <= level <= len(LEVELS):
        raise ConfigurationError(f"Puzzle level must be between 1 and {len(LEVELS)}, got {level}")
    return LEVELS[level - 1]


@dataclass
class MoveResult:
    accepted: bool
    message: str
    solved: bool = False


class BankerPuzzle:
    """
    One play-through of a safe-sequence puzzle.

    Attributes:
        system_state: Ledger being played
        level: PuzzleLevel (time limit and par moves)
        sequence: Processes finished so far, in order
        moves: Accepted executions plus resets
        hints_used: Hints consumed (at most MAX_HINTS)
        elapsed: Seconds of play so far
        score: Final score once solved, else None
    """

    def __init__(self, system_state: SystemState, level: Union[int, PuzzleLevel] = 1, logger=None):
        self.system_state = system_state
        self.level = get_level(level)
        self.logger = logger if logger is not None else system_state.logger

        self.sequence: List[str] = []
        self.moves = 0
        self.hints_used = 0
        self.elapsed = 0.0
        self.score: Optional[float] = None

        self._initial_allocation: Dict[str, Dict[str, int]] = {
            p.pid: dict(p.allocation) for p in system_state.processes
        }

    @classmethod
    def generate(cls, level: Union[int, PuzzleLevel] = 1, seed: SeedLike = None, logger=None) -> "BankerPuzzle":
        """
        Build a random puzzle for a level.

        Level 1 keeps whatever the generator draws; harder levels get the
        adjustment phase when the draw came out safe.
        """
        chosen = get_level(level)
        state, verdict = generate_puzzle(
            chosen.processes,
            chosen.resources,
            seed=seed,
            adjust=chosen.level > 1,
            logger=logger,
        )
        if logger is not None:
            logger.log(
                f"Level {chosen.level} ({chosen.name}) generated: "
                f"{'safe' if verdict.safe else 'unsafe'} start", "debug"
            )
        return cls(state, chosen, logger)

    # ------------------------------------------------------------------
    # Status

    @property
    def hints_remaining(self) -> int:
        return MAX_HINTS - self.hints_used

    @property
    def time_up(self) -> bool:
        return self.elapsed >= self.level.time_limit

    def is_solved(self) -> bool:
        """True once every process has finished."""
        return all(p.is_finished() for p in self.system_state.processes)

    def can_execute(self, pid: str) -> bool:
        """True if the process is unfinished and its need fits in available."""
        process = self.system_state.get_process(pid)
        if process.is_finished():
            return False
        return all(
            process.need_for(r.resource_id) <= r.available
            for r in self.system_state.resources
        )

    # ------------------------------------------------------------------
    # Actions

    def tick(self, seconds: float) -> None:
        """Advance the play clock."""
        self.elapsed = min(self.elapsed + seconds, self.level.time_limit)

    def execute(self, pid: str) -> MoveResult:
        """
        Finish one process if its need fits in the available pool.

        A rejected execution costs nothing. An accepted one counts as a
        move, releases everything the process holds and, if it was the
        last one, computes the final score.
        """
        if self.score is not None:
            return MoveResult(False, "Puzzle already solved.", solved=True)
        if self.time_up:
            return MoveResult(False, "Time is up.")

        process = self.system_state.get_process(pid)
        if process.is_finished():
            return MoveResult(False, f"{process.name} has already finished.")
        if not self.can_execute(pid):
            return MoveResult(False, f"Cannot execute {process.name}. Not enough resources available.")

        if process.state != ProcessState.RUNNING:
            if process.state in (ProcessState.NEW, ProcessState.WAITING):
                self.system_state.transition_state(pid, ProcessState.READY)
            self.system_state.transition_state(pid, ProcessState.RUNNING)
        self.system_state.transition_state(pid, ProcessState.TERMINATED)

        self.sequence.append(pid)
        self.moves += 1

        if self.is_solved():
            self.score = puzzle_score(
                self.level.time_limit, self.elapsed, self.level.min_moves,
                self.moves, self.hints_used
            )
            if self.logger is not None:
                self.logger.log(f"Puzzle solved: {' -> '.join(self.sequence)} (score {self.score:g})")
            return MoveResult(True, f"{process.name} finished. All processes complete!", solved=True)
        return MoveResult(True, f"{process.name} finished and released its resources.")

    def hint(self) -> Optional[str]:
        """
        Spend a hint. Returns None when none are left.

        Suggests the next process of the current safe sequence, or warns
        that no safe order remains.
        """
        if self.hints_remaining <= 0:
            return None
        self.hints_used += 1

        sequence = self.system_state.compute_safe_sequence()
        if not sequence:
            return (
                "Look for processes that need more resources than available. "
                "Try executing processes in a different order."
            )
        process = self.system_state.get_process(sequence[0])
        return f"Try executing {process.name} next. It has sufficient resources available."

    def reset(self) -> None:
        """
        Put every process back with its starting allocation.

        Counts as a move. Hints used and elapsed time are kept.
        """
        state = self.system_state
        state.rewind()
        for process in state.processes:
            state.transition_state(process.pid, ProcessState.READY)
            for resource_id, units in self._initial_allocation.get(process.pid, {}).items():
                if units > 0:
                    state.allocate(process.pid, resource_id, units)

        self.sequence = []
        self.score = None
        self.moves += 1
