"""
Scenario Loader for the OS Puzzle core.

Loads and validates JSON scenario files and the challenge catalog.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from models.process import Process, ProcessState
from models.resource import Resource
from models.system_state import SystemState
from models.errors import SimulationError
from models.challenge import (
    Challenge,
    ChallengeProcess,
    ChallengeResource,
    ChallengeType,
    DeadlockChallenge,
    ResourceChallenge,
    SchedulingChallenge,
)
from utils.config import SimulationConfig


class ScenarioLoadError(Exception):
    """Exception raised when scenario file cannot be loaded or is invalid."""
    pass


def _read_json(file_path: str) -> Any:
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        raise ScenarioLoadError(f"Scenario file not found: {file_path}")
    except json.JSONDecodeError as e:
        raise ScenarioLoadError(f"Invalid JSON in scenario file: {e}")


def load_scenario(
    file_path: str,
    base_config: Optional[SimulationConfig] = None,
    logger=None
) -> Tuple[SystemState, SimulationConfig]:
    """
    Load scenario from JSON file.

    Args:
        file_path: Path to scenario JSON file
        base_config: Config the file's "config" block is layered on
        logger: Optional SimulatorLogger attached to the state

    Returns:
        Tuple of (SystemState, SimulationConfig)

    Raises:
        ScenarioLoadError: If file cannot be loaded or is invalid
    """
    data = _read_json(file_path)
    return build_scenario(data, base_config, logger)


def build_scenario(
    data: Dict,
    base_config: Optional[SimulationConfig] = None,
    logger=None
) -> Tuple[SystemState, SimulationConfig]:
    """
    Build a SystemState from already parsed scenario data.

    Raises:
        ScenarioLoadError: If the data is invalid
    """
    if not isinstance(data, dict):
        raise ScenarioLoadError("Scenario must be a JSON object")
    if 'processes' not in data:
        raise ScenarioLoadError("Scenario missing 'processes' field")
    if 'resources' not in data:
        raise ScenarioLoadError("Scenario missing 'resources' field")

    try:
        config = SimulationConfig.from_dict(data.get('config'), base_config)
    except SimulationError as e:
        raise ScenarioLoadError(f"Invalid config block: {e}")

    resources = _load_resources(data['resources'])
    lookup = _resource_lookup(resources)

    processes = []
    for index, proc_data in enumerate(data['processes']):
        process = _load_process(proc_data, index, lookup)
        if any(p.pid == process.pid for p in processes):
            raise ScenarioLoadError(f"Duplicate process id: {process.pid}")
        processes.append(process)

    _validate_demands(processes, resources, config.validate_max_demand)
    _validate_initial_allocations(processes, resources)

    try:
        system_state = SystemState(
            processes=processes,
            resources=resources,
            validate_max_demand=config.validate_max_demand,
            logger=logger,
        )
    except SimulationError as e:
        raise ScenarioLoadError(f"Inconsistent scenario: {e}")

    return system_state, config


def _load_resources(resource_data: List[Dict]) -> List[Resource]:
    """
    Load resource definitions from scenario data.

    Args:
        resource_data: List of resource dictionaries

    Returns:
        List of Resource objects, all units available
    """
    resources = []

    for index, res in enumerate(resource_data):
        if 'name' not in res:
            raise ScenarioLoadError(f"Resource #{index} missing 'name' field")
        if 'total' not in res:
            raise ScenarioLoadError(f"Resource {res['name']} missing 'total'")

        total = res['total']
        if not isinstance(total, int) or isinstance(total, bool) or total <= 0:
            raise ScenarioLoadError(f"Resource {res['name']}: total must be a positive integer")

        resource_id = str(res.get('id', res['name']))
        if any(r.resource_id == resource_id for r in resources):
            raise ScenarioLoadError(f"Duplicate resource id: {resource_id}")

        resources.append(Resource(resource_id=resource_id, name=res['name'], total=total))

    return resources


def _resource_lookup(resources: List[Resource]) -> Dict[str, str]:
    """Map both ids and names to resource ids."""
    lookup = {r.name: r.resource_id for r in resources}
    lookup.update({r.resource_id: r.resource_id for r in resources})
    return lookup


def _load_vector(values: Dict, pid: str, field_name: str, lookup: Dict[str, str]) -> Dict[str, int]:
    if not isinstance(values, dict):
        raise ScenarioLoadError(f"Process {pid}: '{field_name}' must be an object")

    vector = {}
    for key, amount in values.items():
        if key not in lookup:
            raise ScenarioLoadError(f"Process {pid}: unknown resource '{key}' in {field_name}")
        if not isinstance(amount, int) or amount < 0:
            raise ScenarioLoadError(f"Process {pid}: {field_name}[{key}] must be a non-negative integer")
        if amount > 0:
            vector[lookup[key]] = amount
    return vector


def _load_process(proc_data: Dict, index: int, lookup: Dict[str, str]) -> Process:
    """
    Load a single process from scenario data.

    Args:
        proc_data: Process dictionary from scenario
        index: Position in the file (default id "p-<index>")
        lookup: Resource id/name -> id

    Returns:
        Process object
    """
    pid = str(proc_data.get('id', f"p-{index}"))

    arrival = proc_data.get('arrival_time', 0)
    burst = proc_data.get('burst_time', 0)
    if arrival < 0 or burst < 0:
        raise ScenarioLoadError(f"Process {pid}: arrival_time and burst_time must be >= 0")

    try:
        state = ProcessState(proc_data.get('state', 'new'))
    except ValueError:
        raise ScenarioLoadError(
            f"Process {pid}: unknown state '{proc_data.get('state')}'. "
            f"Valid states: {', '.join(s.value for s in ProcessState)}"
        )

    max_demand = _load_vector(proc_data.get('max_demand', {}), pid, 'max_demand', lookup)
    allocation = _load_vector(proc_data.get('allocation', {}), pid, 'allocation', lookup)
    pending = _load_vector(proc_data.get('pending', {}), pid, 'pending', lookup)
    if state == ProcessState.TERMINATED and (allocation or pending):
        raise ScenarioLoadError(f"Process {pid}: a terminated process cannot hold or wait on resources")

    return Process(
        pid=pid,
        name=proc_data.get('name', pid),
        arrival_time=arrival,
        burst_time=burst,
        priority=proc_data.get('priority', 0),
        max_demand=max_demand,
        allocation=allocation,
        state=state,
        pending=pending,
    )


def _validate_demands(processes: List[Process], resources: List[Resource], validate_max: bool) -> None:
    """
    Check declared maxima and record them on the ledger.

    Raises:
        ScenarioLoadError: If a max exceeds the resource's total
            (when validating)
    """
    by_id = {r.resource_id: r for r in resources}
    for process in processes:
        for resource_id, amount in process.max_demand.items():
            resource = by_id[resource_id]
            if validate_max and amount > resource.total:
                raise ScenarioLoadError(
                    f"Process {process.pid}: max_demand for {resource_id} ({amount}) "
                    f"exceeds its total ({resource.total})"
                )
            resource.maximum[process.pid] = amount


def _validate_initial_allocations(processes: List[Process], resources: List[Resource]) -> None:
    """
    Validate that initial allocations don't exceed total units and copy
    them into the ledger.

    Critical validation: For each resource r, sum(allocation[:,r]) <= total[r]

    Raises:
        ScenarioLoadError: If initial allocations are invalid
    """
    for resource in resources:
        held = {
            p.pid: p.held(resource.resource_id)
            for p in processes if p.held(resource.resource_id) > 0
        }
        total_allocated = sum(held.values())

        if total_allocated > resource.total:
            raise ScenarioLoadError(
                f"VALIDATION FAILED: Resource {resource.resource_id} initial allocations "
                f"({total_allocated}) exceed total units ({resource.total})"
            )

        resource.allocated = held
        resource.available = resource.total - total_allocated


def load_challenges(file_path: str) -> List[Challenge]:
    """
    Load the challenge catalog.

    Args:
        file_path: Path to a JSON list of challenges (or {"challenges": [...]})

    Returns:
        List of challenge dataclasses, in file order

    Raises:
        ScenarioLoadError: If the file is missing, malformed, or a
            challenge has an unknown type
    """
    data = _read_json(file_path)
    if isinstance(data, dict):
        data = data.get('challenges', [])
    if not isinstance(data, list):
        raise ScenarioLoadError("Challenge catalog must be a list")
    return [parse_challenge(item) for item in data]


def parse_challenge(data: Dict) -> Challenge:
    """
    Build one challenge from its JSON object, dispatching on "type".

    Raises:
        ScenarioLoadError: On an unknown type or a missing field
    """
    try:
        kind = ChallengeType(data.get('type'))
    except ValueError:
        raise ScenarioLoadError(f"Challenge {data.get('id')}: unknown type '{data.get('type')}'")

    try:
        common = dict(
            challenge_id=data['id'],
            title=data.get('title', data['id']),
            description=data.get('description', ''),
            hint=data.get('hint', ''),
            processes=[_challenge_process(p) for p in data['processes']],
        )
        solution = data['solution']

        if kind == ChallengeType.SCHEDULING:
            return SchedulingChallenge(
                **common,
                solution_algorithm=solution['algorithm'],
                check_order=solution.get('check_order', False),
                solution_order=list(solution.get('order', [])),
                initial_order=list(data.get('initial_order', [])),
            )

        resources = [
            ChallengeResource(r['id'], r.get('name', r['id']), r.get('units', 0))
            for r in data['resources']
        ]
        if kind == ChallengeType.RESOURCE:
            return ResourceChallenge(
                **common,
                resources=resources,
                solution={pid: list(rids) for pid, rids in solution.items()},
                deadlock_scenarios=data.get('deadlock_scenarios', []),
                initial_allocation=data.get('initial_allocation', {}),
            )

        return DeadlockChallenge(
            **common,
            resources=resources,
            allocation=data['allocation'],
            request=data['request'],
            available=data['available'],
            solution=list(solution),
        )
    except KeyError as e:
        raise ScenarioLoadError(f"Challenge {data.get('id')}: missing field {e}")


def _challenge_process(data: Dict) -> ChallengeProcess:
    return ChallengeProcess(
        pid=data['id'],
        name=data.get('name', data['id']),
        arrival_time=data.get('arrival_time', 0),
        burst_time=data.get('burst_time', 0),
        priority=data.get('priority', 0),
        needs=list(data.get('needs', [])),
        kind=data.get('kind', ''),
    )


def get_scenario_description(file_path: str) -> str:
    """
    Get description from scenario file without full loading.

    Args:
        file_path: Path to scenario JSON file

    Returns:
        Description string, or empty string if not present or unreadable
    """
    try:
        data = _read_json(file_path)
    except ScenarioLoadError:
        return ''
    if not isinstance(data, dict):
        return ''
    return data.get('description', '')
