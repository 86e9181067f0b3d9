"""
Challenge model for the OS Puzzle core.

A challenge is a tagged variant: ChallengeType names the kind and each
kind has its own dataclass carrying only the fields it uses.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union


class ChallengeType(Enum):
    """Kinds of catalog challenge."""
    SCHEDULING = "scheduling"
    RESOURCE = "resource"
    DEADLOCK = "deadlock"


@dataclass
class ChallengeProcess:
    """
    Process as described inside a challenge.

    Scheduling challenges use the timing fields; resource challenges use
    needs (resource names the process must end up holding).
    """
    pid: str
    name: str
    arrival_time: float = 0
    burst_time: float = 0
    priority: int = 0
    needs: List[str] = field(default_factory=list)
    kind: str = ""


@dataclass
class ChallengeResource:
    resource_id: str
    name: str
    units: int = 0


@dataclass
class SchedulingChallenge:
    """
    Pick the right algorithm (and, when check_order is set, the right
    execution order) for a process set.
    """
    challenge_id: str
    title: str
    description: str
    hint: str
    processes: List[ChallengeProcess]
    solution_algorithm: str
    check_order: bool = False
    solution_order: List[str] = field(default_factory=list)
    initial_order: List[str] = field(default_factory=list)
    challenge_type: ChallengeType = ChallengeType.SCHEDULING


@dataclass
class ResourceChallenge:
    """
    Hand out resources to processes. The answer maps each pid to the
    resource ids it holds; some wrong answers are known deadlocks.
    """
    challenge_id: str
    title: str
    description: str
    hint: str
    processes: List[ChallengeProcess]
    resources: List[ChallengeResource]
    solution: Dict[str, List[str]]
    deadlock_scenarios: List[Dict[str, List[str]]] = field(default_factory=list)
    initial_allocation: Dict[str, List[str]] = field(default_factory=dict)
    challenge_type: ChallengeType = ChallengeType.RESOURCE


@dataclass
class DeadlockChallenge:
    """
    Find the expected finish order for an allocation / request / available
    snapshot.
    """
    challenge_id: str
    title: str
    description: str
    hint: str
    processes: List[ChallengeProcess]
    resources: List[ChallengeResource]
    allocation: Dict[str, Dict[str, int]]
    request: Dict[str, Dict[str, int]]
    available: Dict[str, int]
    solution: List[str]
    challenge_type: ChallengeType = ChallengeType.DEADLOCK


Challenge = Union[SchedulingChallenge, ResourceChallenge, DeadlockChallenge]


@dataclass
class ChallengeResult:
    """Verdict on a submitted answer."""
    correct: bool
    message: str
    valid: Optional[bool] = None

    def __bool__(self) -> bool:
        return self.correct
