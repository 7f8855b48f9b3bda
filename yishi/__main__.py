"""
YISHI console entry point.

Usage:
    python -m yishi check [--data DIR] [--json]
    python -m yishi anchors [--data DIR] [--saves DIR] [--slot N]
    python -m yishi hints [--data DIR] [--saves DIR] [--slot N]
    python -m yishi play STORY_ID [--data DIR] [--saves DIR] [--slot N] [--offline]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import apply_world_flags, load_config
from .context import GameContext
from .errors import DataError
from .interface.console import ConsoleInvoker
from .interface.renderer import console, render_anchors, render_audit, render_hints
from .llm import create_llm_client
from .state.event_bus import EventBus
from .state.repo import DataRepo
from .state.store import JsonSaveStore, SaveManager, install_autosave
from .state.world import WorldState
from .systems.hints import HintDeriver
from .systems.integrity import IntegrityAuditor
from .systems.options import LocalOptionSource, ProviderOptionSource
from .systems.spawn import SpawnDirector
from .systems.story import StoryInterpreter

logger = logging.getLogger("yishi")


def build_context(args: argparse.Namespace) -> tuple[GameContext, SaveManager]:
    """Load data, settings and the save slot into a ready context."""
    config = load_config(args.saves)
    if getattr(args, "offline", False):
        config["offline_mode"] = True

    data = DataRepo(args.data).load()
    bus = EventBus()
    world = WorldState(bus=bus)
    manager = SaveManager(world, JsonSaveStore(args.saves))
    if manager.load(args.slot):
        logger.info("Loaded slot %d", args.slot)
    apply_world_flags(config, world)

    local = LocalOptionSource()
    client = None if config["offline_mode"] else create_llm_client(
        api_url=config.get("provider_url"), model=config.get("provider_model")
    )
    options = ProviderOptionSource(client, fallback=local) if client else local

    context = GameContext(world=world, data=data, options=options, bus=bus, config=config)
    return context, manager


def cmd_check(args: argparse.Namespace) -> int:
    result = IntegrityAuditor(DataRepo(args.data)).run()
    if args.json:
        print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    else:
        render_audit(result)
    return result.exit_code


def cmd_anchors(args: argparse.Namespace) -> int:
    context, _ = build_context(args)
    render_anchors(SpawnDirector(context).list_accessible_anchors())
    return 0


def cmd_hints(args: argparse.Namespace) -> int:
    context, _ = build_context(args)
    render_hints(HintDeriver(context).gather())
    return 0


def cmd_play(args: argparse.Namespace) -> int:
    context, manager = build_context(args)
    invoker = ConsoleInvoker(context)
    context.invoker = invoker
    install_autosave(context.bus, manager, args.slot)

    result = asyncio.run(StoryInterpreter(context).run(args.story_id))
    if result.aborted:
        return 2
    console.print(f"[dim]Story {result.story_id} finished; flags updated: "
                  f"{', '.join(result.flags_updated) or 'none'}[/dim]")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="yishi", description="YISHI narrative core")
    parser.add_argument("--data", type=Path, default=Path("assets/data"), help="Game data directory")
    parser.add_argument("--saves", type=Path, default=Path("saves"), help="Save directory")
    parser.add_argument("--slot", type=int, default=0, help="Save slot to load")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Audit game data integrity")
    check.add_argument("--json", action="store_true", help="Output results as JSON")
    check.set_defaults(func=cmd_check)

    sub.add_parser("anchors", help="List reachable anchors").set_defaults(func=cmd_anchors)
    sub.add_parser("hints", help="List current hints").set_defaults(func=cmd_hints)

    play = sub.add_parser("play", help="Play a story in the console")
    play.add_argument("story_id")
    play.add_argument("--offline", action="store_true", help="Never call the remote provider")
    play.set_defaults(func=cmd_play)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except DataError as e:
        console.print(f"[red]Data error:[/red] {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
