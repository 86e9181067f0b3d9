"""
Error taxonomy for the OS Puzzle core.

Every rejected operation raises one of these and leaves the previous
state untouched.
"""


class SimulationError(Exception):
    """Base class for all errors raised by the simulation core."""
    pass


class InsufficientResource(SimulationError):
    """Allocation asked for more units than the resource has available."""

    def __init__(self, resource_id: str, requested: int, available: int):
        self.resource_id = resource_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient {resource_id}: requested {requested}, available {available}"
        )


class InvalidTransition(SimulationError):
    """Illegal lifecycle state change."""

    def __init__(self, pid: str, current, target):
        self.pid = pid
        self.current = current
        self.target = target
        super().__init__(
            f"{pid}: transition {current.value} -> {target.value} is not allowed"
        )


class ConfigurationError(SimulationError):
    """Scenario or configuration values that can never be satisfied."""
    pass


class InvariantViolation(SimulationError):
    """Internal consistency failure. Fatal: the operation is aborted."""
    pass


class UnknownEntity(SimulationError, KeyError):
    """Process or resource id not present in the state."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "unknown entity"
