"""
Logger utility for the OS Puzzle core.

Console output stamped with the simulated clock, mirrored to an optional
log file. Debug lines only appear in verbose mode.
"""

from typing import Iterable, Optional
from datetime import datetime

# Prefix per level; info lines are printed bare
LEVEL_PREFIXES = {
    "error": "[ERROR] ",
    "warning": "[WARNING] ",
    "debug": "[DEBUG] ",
    "info": "",
}


class SimulatorLogger:
    """
    Logger for ledger mutations, scheduling decisions and verdicts.

    Format: "Step T: p-0 requests r-1[2] - GRANTED/DENIED (reason)"

    Usable as a context manager so the log file is closed on exit.
    """

    def __init__(self, verbose: bool = False, log_file: Optional[str] = None):
        """
        Args:
            verbose: Show debug lines
            log_file: Optional path the output is mirrored to
        """
        self.verbose = verbose
        self.log_file = log_file
        self.file_handle = None

        if self.log_file:
            self.file_handle = open(self.log_file, 'w', encoding='utf-8')
            started = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
            self.file_handle.write(f"OS Puzzle Log - {started}\n{'='*60}\n\n")

    def __enter__(self) -> "SimulatorLogger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def log(self, message: str, level: str = "info") -> None:
        """
        Print a message and mirror it to the log file.

        Args:
            message: Text to log
            level: info, debug, warning or error
        """
        if level == "debug" and not self.verbose:
            return

        line = LEVEL_PREFIXES.get(level, "") + message
        print(line)
        if self.file_handle:
            self.file_handle.write(line + "\n")
            self.file_handle.flush()

    def log_step(self, step: float, message: str) -> None:
        """Log a message stamped with the simulated clock."""
        self.log(f"Step {step:g}: {message}")

    def log_request(
        self,
        step: float,
        pid: str,
        resource_id: str,
        amount: int,
        granted: bool,
        reason: str
    ) -> None:
        """
        Log the decision on a Banker's-guarded request.

        Args:
            step: Current simulated time
            pid: Requesting process
            resource_id: Requested resource
            amount: Units requested
            granted: Whether the request was granted
            reason: Why
        """
        status = "GRANTED" if granted else "DENIED"
        self.log_step(step, f"{pid} requests {resource_id}[{amount}] - {status} ({reason})")

    def log_deadlock(self, step: float, deadlocked_pids: Iterable[str]) -> None:
        """Log the moment the deadlock flag turns on."""
        pids = ", ".join(deadlocked_pids)
        self.log_step(step, f"DEADLOCK DETECTED - Processes in deadlock: [{pids}]")

    def log_tick(self, step: float, pid: Optional[str]) -> None:
        """Per-tick trace, shown only in verbose mode."""
        self.log(f"t={step:g}: {pid if pid else 'CPU idle'}", "debug")

    def log_dispatch(self, step: float, pid: str, policy: str) -> None:
        self.log_step(step, f"{policy} dispatches {pid}")

    def log_completion(self, step: float, pid: str, turnaround: float, waiting: float) -> None:
        self.log_step(step, f"{pid} FINISHED (turnaround={turnaround:g}, waiting={waiting:g})")

    def log_system_state(self, step: float, state_str: str) -> None:
        """Dump a rendered SystemState (verbose mode only)."""
        if self.verbose:
            self.log_step(step, f"System State:\n{state_str}")

    def close(self) -> None:
        """Close log file if open."""
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def __del__(self):
        self.close()
