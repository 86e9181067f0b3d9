#!/usr/bin/env python3
"""
OS Puzzle core
Main entry point for the simulation system.

Educational tool for resource management puzzles: Banker's safety
checks, deadlock detection, CPU scheduling and the safe-sequence puzzle.
"""

import argparse
import json
import sys
from typing import List, Optional, Tuple

from models.system_state import SystemState
from models.errors import SimulationError
from utils.scenario_loader import load_scenario, load_challenges, ScenarioLoadError
from utils.logger import SimulatorLogger
from utils.config import SimulationConfig
from utils.generator import generate_processes
from algorithms.avoidance import request_resources, run_safety_algorithm
from algorithms.detection import find_deadlocked_processes
from algorithms.scheduling import ExecutionSlice, Scheduler
from algorithms.puzzle import BankerPuzzle
from algorithms.challenges import evaluate
from analysis.analyzer import compare_policies, generate_comparison_report
from analysis.metrics import format_metrics_report, simulation_score


def run_safety(system_state: SystemState, logger: SimulatorLogger) -> bool:
    """
    Report Banker's verdict and the live deadlock check for a snapshot.

    Returns:
        True if the state is safe
    """
    logger.log(system_state.display())

    result = run_safety_algorithm(system_state)
    if result.safe:
        logger.log(f"SAFE - sequence: {' -> '.join(result.sequence)}")
    else:
        finished = ' -> '.join(result.sequence) or 'none'
        logger.log(f"UNSAFE - could finish: {finished}; stuck: {', '.join(result.blocked)}")

    report = system_state.detect_deadlock()
    if report.deadlocked:
        logger.log(f"Deadlock heuristic: {report.explanation}", "warning")
    deadlocked = find_deadlocked_processes(system_state)
    if deadlocked:
        logger.log(f"Work/Finish detection: processes {', '.join(deadlocked)} can never proceed", "warning")
    else:
        logger.log("Work/Finish detection: no deadlock")
    return result.safe


def run_request(
    system_state: SystemState,
    pid: str,
    resource_id: str,
    amount: int,
    logger: SimulatorLogger
) -> bool:
    """Run one Banker's-guarded request and log the decision."""
    granted, reason = request_resources(system_state, pid, resource_id, amount)
    logger.log_request(system_state.clock, pid, resource_id, amount, granted, reason)
    logger.log_system_state(system_state.clock, system_state.display())
    return granted


def run_schedule(
    system_state: SystemState,
    config: SimulationConfig,
    logger: SimulatorLogger,
    scenario_path: str = None
) -> Scheduler:
    """
    Schedule every process of the state to completion (or max_ticks).

    Returns:
        The Scheduler, with its timeline and per-process timing filled in
    """
    scheduler = Scheduler.from_config(system_state, config, logger)

    logger.log(f"\n{'='*60}")
    logger.log(f"SCHEDULING START: {scheduler.policy.value}")
    if scenario_path:
        logger.log(f"Scenario: {scenario_path}")
    logger.log(f"{'='*60}\n")

    metrics = scheduler.run_to_completion(config.max_ticks)

    logger.log("\nGantt chart:")
    logger.log(format_timeline(scheduler.timeline))
    logger.log(format_metrics_report(
        metrics,
        scheduler.processes,
        verbose=config.verbose,
        policy=scheduler.policy.value,
        scenario=scenario_path,
    ))
    score = simulation_score(system_state, metrics)
    logger.log(f"Simulation score: {score.total}")
    return scheduler


def format_timeline(timeline: List[ExecutionSlice]) -> str:
    """Render a Gantt chart as one line of "| pid start-end |" cells."""
    if not timeline:
        return "(empty)"
    cells = [
        f" {slice_.pid or 'idle'} {slice_.start:g}-{slice_.end:g} "
        for slice_ in timeline
    ]
    return "|" + "|".join(cells) + "|"


def run_puzzle(
    level: int,
    seed: Optional[int],
    moves: Optional[List[str]],
    logger: SimulatorLogger
) -> BankerPuzzle:
    """
    Generate a puzzle and play it.

    With explicit moves they are executed in order; without, the
    Banker's safe sequence of the starting state is played.
    """
    puzzle = BankerPuzzle.generate(level, seed=seed, logger=logger)
    logger.log(f"Level {puzzle.level.level}: {puzzle.level.name} ({puzzle.level.difficulty})")
    logger.log(puzzle.system_state.display())

    if moves is None:
        moves = puzzle.system_state.compute_safe_sequence()
        if not moves:
            logger.log("No safe sequence exists for this draw.", "warning")

    for pid in moves:
        result = puzzle.execute(pid)
        logger.log(f"{pid}: {result.message}", "info" if result.accepted else "warning")
        if result.solved:
            break

    if puzzle.score is not None:
        logger.log(f"Final score: {puzzle.score}")
    else:
        logger.log(f"Unsolved after {puzzle.moves} moves")
    return puzzle


def run_challenge(catalog_path: str, challenge_id: str, answer, logger: SimulatorLogger) -> bool:
    """Evaluate one answer against the challenge catalog."""
    challenges = {c.challenge_id: c for c in load_challenges(catalog_path)}
    if challenge_id not in challenges:
        raise ScenarioLoadError(f"No challenge '{challenge_id}' in {catalog_path}")

    challenge = challenges[challenge_id]
    result = evaluate(challenge, answer)
    logger.log(f"{challenge.title}: {result.message}", "info" if result.correct else "warning")
    return result.correct


def _load_inputs(args, logger: SimulatorLogger) -> Tuple[SystemState, SimulationConfig]:
    """Scenario file or generated process set, plus the layered config."""
    base = SimulationConfig().merge_args(args)
    if getattr(args, 'scenario', None):
        system_state, config = load_scenario(args.scenario, base, logger)
        return system_state, config.merge_args(args)

    count = getattr(args, 'generate', None) or 5
    processes = generate_processes(count, seed=base.seed)
    return SystemState(processes=processes, logger=logger), base


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='OS Puzzle core: resource safety and CPU scheduling simulator'
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--verbose', action='store_true', help='Enable verbose logging')
    common.add_argument('--log-file', dest='log_file', type=str, help='Mirror log output to a file')

    subparsers = parser.add_subparsers(dest='command', required=True)

    safety = subparsers.add_parser('safety', parents=[common], help="Banker's safety check and deadlock detection")
    safety.add_argument('--scenario', type=str, required=True, help='Path to scenario JSON file')

    request = subparsers.add_parser('request', parents=[common], help="Banker's-guarded resource request")
    request.add_argument('--scenario', type=str, required=True, help='Path to scenario JSON file')
    request.add_argument('--process', type=str, required=True, help='Requesting process id')
    request.add_argument('--resource', type=str, required=True, help='Resource id or name')
    request.add_argument('--amount', type=int, required=True, help='Units requested')

    for name, help_text in (('schedule', 'Run one scheduling policy'),
                            ('compare', 'Compare all scheduling policies')):
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        source = sub.add_mutually_exclusive_group()
        source.add_argument('--scenario', type=str, help='Path to scenario JSON file')
        source.add_argument('--generate', type=int, help='Generate N random processes instead')
        sub.add_argument('--seed', type=int, help='Seed for --generate')
        sub.add_argument('--quantum', dest='time_quantum', type=float, help='Round Robin time quantum')
        sub.add_argument('--tick', type=float, help='Tick length')
        sub.add_argument('--max-ticks', dest='max_ticks', type=int, help='Stop after this many ticks')
        if name == 'schedule':
            sub.add_argument('--policy', choices=['FCFS', 'SJF', 'Priority', 'RR'], help='Scheduling policy')

    puzzle = subparsers.add_parser('puzzle', parents=[common], help='Play a generated safe-sequence puzzle')
    puzzle.add_argument('--level', type=int, default=1, help='Puzzle level (1-5)')
    puzzle.add_argument('--seed', type=int, help='Random seed')
    puzzle.add_argument('--moves', type=str, help='Comma-separated pids to execute (default: safe sequence)')

    challenge = subparsers.add_parser('challenge', parents=[common], help='Check an answer to a catalog challenge')
    challenge.add_argument('--catalog', type=str, default='scenarios/challenges.json', help='Challenge catalog JSON')
    challenge.add_argument('--id', dest='challenge_id', type=str, required=True, help='Challenge id')
    challenge.add_argument('--answer', type=str, required=True, help='Answer as JSON')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the simulator."""
    parser = build_parser()
    args = parser.parse_args(argv)

    with SimulatorLogger(verbose=args.verbose, log_file=args.log_file) as logger:
        return _dispatch(args, parser, logger)


def _dispatch(args, parser: argparse.ArgumentParser, logger: SimulatorLogger) -> int:
    """Run one subcommand; returns the exit status."""
    try:
        if args.command == 'safety':
            system_state, _ = load_scenario(args.scenario, logger=logger)
            run_safety(system_state, logger)

        elif args.command == 'request':
            system_state, _ = load_scenario(args.scenario, logger=logger)
            run_request(system_state, args.process, args.resource, args.amount, logger)

        elif args.command == 'schedule':
            system_state, config = _load_inputs(args, logger)
            scheduler = run_schedule(system_state, config, logger, args.scenario)
            if not scheduler.is_complete:
                return 2

        elif args.command == 'compare':
            system_state, config = _load_inputs(args, logger)
            results, winner = compare_policies(
                system_state.processes,
                time_quantum=config.time_quantum,
                tick=config.tick,
                max_ticks=config.max_ticks,
                logger=logger,
            )
            logger.log(generate_comparison_report(results, winner, args.scenario, config.time_quantum))

        elif args.command == 'puzzle':
            moves = [m.strip() for m in args.moves.split(',')] if args.moves else None
            run_puzzle(args.level, args.seed, moves, logger)

        elif args.command == 'challenge':
            try:
                answer = json.loads(args.answer)
            except json.JSONDecodeError as e:
                parser.error(f'--answer must be JSON: {e}')
            if not run_challenge(args.catalog, args.challenge_id, answer, logger):
                return 2

    except ScenarioLoadError as e:
        logger.log(f"Failed to load scenario: {e}", "error")
        return 1
    except SimulationError as e:
        logger.log(str(e), "error")
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
