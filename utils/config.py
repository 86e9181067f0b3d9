"""
Run configuration for the OS Puzzle core.

Values are layered: dataclass defaults, then a scenario file's optional
"config" block, then command line flags.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from models.errors import ConfigurationError

VALID_POLICIES = ("FCFS", "SJF", "Priority", "RR")


@dataclass
class SimulationConfig:
    """
    Settings for one run.

    Attributes:
        policy: Scheduling policy name (FCFS, SJF, Priority, RR)
        time_quantum: Round Robin slice length
        tick: Simulated time per scheduler tick
        max_ticks: Safety stop for run_to_completion
        seed: Seed for generated scenarios (None = fresh entropy)
        verbose: Show debug log lines
        log_file: Optional path the logger mirrors its output to
        validate_max_demand: Reject max demand above a resource's total
    """
    policy: str = "FCFS"
    time_quantum: float = 2
    tick: float = 1
    max_ticks: int = 10000
    seed: Optional[int] = None
    verbose: bool = False
    log_file: Optional[str] = None
    validate_max_demand: bool = True

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: On an unknown policy or non-positive timing value
        """
        names = {p.lower(): p for p in VALID_POLICIES}
        names.update({"round_robin": "RR", "srtf": "SJF"})
        key = str(self.policy).lower()
        if key not in names:
            raise ConfigurationError(
                f"Invalid policy '{self.policy}'. Must be one of: {', '.join(VALID_POLICIES)}"
            )
        self.policy = names[key]

        if self.time_quantum <= 0:
            raise ConfigurationError(f"time_quantum must be positive, got {self.time_quantum}")
        if self.tick <= 0:
            raise ConfigurationError(f"tick must be positive, got {self.tick}")
        if self.max_ticks <= 0:
            raise ConfigurationError(f"max_ticks must be positive, got {self.max_ticks}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]], base: Optional["SimulationConfig"] = None) -> "SimulationConfig":
        """
        Overlay a mapping (e.g. a scenario's "config" block) on a base config.

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        base = base or cls()
        if not data:
            return replace(base)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}")
        return replace(base, **data)

    def merge_args(self, args) -> "SimulationConfig":
        """
        Overlay parsed command line arguments.

        Only attributes that exist on args and are not None win, so flags
        the user did not pass leave earlier layers alone.
        """
        overrides = {}
        for f in fields(self):
            value = getattr(args, f.name, None)
            if value is None:
                continue
            if f.name == "verbose" and value is False:
                continue
            overrides[f.name] = value
        return replace(self, **overrides)
