import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger

from agent_teams_monitor.app_config import default_claude_dir, load_json_config, parse_app_config
from agent_teams_monitor.bootstrap import bootstrap_runtime
from agent_teams_monitor.logging_config import setup_logging
from agent_teams_monitor.simulation.runner import ScenarioRunner
from agent_teams_monitor.simulation.scenarios import SCENARIOS, get_scenario

_PROMPT = "teams> "


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agent-teams-monitor",
        description="Watch, record, replay and archive multi-agent team sessions.",
    )
    subparsers = parser.add_subparsers(dest="command")

    simulate = subparsers.add_parser("simulate", help="Write a scripted session into a teams/tasks root")
    simulate.add_argument("scenario", choices=sorted(SCENARIOS))
    simulate.add_argument("--speed", type=float, default=1.0, help="Delay divisor; 0 applies every step at once")
    simulate.add_argument("--claude-dir", type=Path, default=None, help="Root holding teams/ and tasks/")
    simulate.add_argument("--clean", action="store_true", help="Remove the scenario's files instead of running it")
    return parser


async def run_monitor() -> None:
    config = load_json_config()
    app = parse_app_config(config)
    runtime = bootstrap_runtime(app)
    monitor = runtime.monitor

    pruned = monitor.prune()
    await monitor.start()

    print("agent-teams-monitor (type 'exit' to quit, '/help' for commands)")
    print(f"Teams: {app.teams_dir}")
    print(f"Tasks: {app.tasks_dir}")
    print(f"Recording: {app.recordings_dir if runtime.recorder is not None else 'off'}")
    print(f"History: {app.history_dir if runtime.archiver is not None else 'off'}")
    if pruned:
        print(f"Pruned {pruned} archived session(s) older than {app.history_retention_days} days")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                user_input = await loop.run_in_executor(None, input, _PROMPT)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                if not await monitor.handle_command(trimmed):
                    print("Commands start with '/'. Try /help.")
            except Exception as ex:
                logger.error(f"Command failed: {ex}")
    finally:
        await monitor.dispose()


async def run_simulation(args: argparse.Namespace) -> None:
    config = load_json_config()
    setup_logging(level=config.get("LogLevel", "INFO"), consumers=[{"type": "console"}])
    claude_dir = args.claude_dir.expanduser() if args.claude_dir else default_claude_dir()
    runner = ScenarioRunner(claude_dir / "teams", claude_dir / "tasks", speed=args.speed)
    scenario = get_scenario(args.scenario)
    if args.clean:
        runner.clean(scenario)
        print(f"Removed files for {', '.join(scenario.team_names)}")
        return
    await runner.run(scenario)


def run(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = _build_parser().parse_args(argv)
    try:
        if args.command == "simulate":
            asyncio.run(run_simulation(args))
        else:
            asyncio.run(run_monitor())
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
