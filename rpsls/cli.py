"""
RPSLS CLI - Command-line interface for the local game store.

Usage:
    rpsls games [--status S] [--role R]   List tracked games
    rpsls show <game_id>                  Show one game
    rpsls clear [--yes]                   Forget all local game data
    rpsls serve [--host H] [--port P]     REST server over the simulated ledger
"""

import argparse
import logging
import sys

from .config import Settings
from .engine_core.reducer import GameStateMachine
from .engine_core.state import Role
from .session import presentation
from .store import GameStore, JsonFileBackend


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="RPSLS - Commit-reveal Rock-Paper-Scissors-Lizard-Spock wagers",
        prog="rpsls",
    )
    parser.add_argument("--store-dir", help="Directory of the local game store")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Games command
    games_parser = subparsers.add_parser("games", help="List tracked games")
    games_parser.add_argument("--status", help="active, completed, or a phase name")
    games_parser.add_argument("--role", choices=[r.value for r in Role], help="Filter by role")

    # Show command
    show_parser = subparsers.add_parser("show", help="Show one game")
    show_parser.add_argument("game_id", help="Game id (ledger address)")

    # Clear command
    clear_parser = subparsers.add_parser("clear", help="Forget all local game data")
    clear_parser.add_argument("--yes", action="store_true", help="Do not ask for confirmation")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the REST API over the simulated ledger")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--persist", action="store_true", help="Keep games in the store directory")
    serve_parser.add_argument("--account", help="Local account address (defaults to the sandbox account)")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    settings = Settings.from_env()
    if args.store_dir:
        settings.store_dir = args.store_dir

    if args.command == "games":
        return cmd_games(args, settings)
    elif args.command == "show":
        return cmd_show(args, settings)
    elif args.command == "clear":
        return cmd_clear(args, settings)
    elif args.command == "serve":
        return cmd_serve(args, settings)
    else:
        parser.print_help()
        sys.exit(1)


def open_store(settings: Settings) -> GameStore:
    return GameStore(JsonFileBackend(settings.store_dir), storage_key=settings.storage_key)


def cmd_games(args, settings):
    """List tracked games."""
    store = open_store(settings)
    try:
        games = store.select(role=Role(args.role) if args.role else None, status=args.status)
    except ValueError:
        print(f"Error: Unknown status: {args.status}")
        sys.exit(1)

    if not games:
        print("No games found")
        return 0

    machine = GameStateMachine(timeout_seconds=settings.timeout_seconds)
    for game in games:
        view = presentation.summarize(game, machine)
        line = f"{view['id']}  {view['role']:<8} vs {view['opponent']}  {view['stake']:<12} {view['status']}"
        if view["countdown"]:
            line += f"  ({view['countdown']})"
        print(line)
    print(f"\n{len(games)} game(s)")
    return 0


def cmd_show(args, settings):
    """Show one game."""
    store = open_store(settings)
    game = store.get(args.game_id)
    if game is None:
        print(f"Error: Game not found: {args.game_id}")
        sys.exit(1)

    machine = GameStateMachine(timeout_seconds=settings.timeout_seconds)
    view = presentation.summarize(game, machine)
    for key, value in view.items():
        if value in (None, {}):
            continue
        print(f"{key:>10}: {value}")
    return 0


def cmd_clear(args, settings):
    """Forget all local game data."""
    store = open_store(settings)
    if not args.yes:
        answer = input(f"Delete {len(store)} tracked game(s)? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted")
            return 1
    store.clear()
    print("Local game data cleared")
    return 0


def cmd_serve(args, settings):
    """Run the REST API over the simulated ledger."""
    try:
        import uvicorn
    except ImportError:
        print("Error: uvicorn not installed. Install with: pip install uvicorn")
        sys.exit(1)

    from .api import create_app
    from .session.sandbox import SANDBOX_ACCOUNT, sandbox_manager

    account = args.account or SANDBOX_ACCOUNT
    manager = sandbox_manager(settings, account=account, persist=args.persist)
    print(f"Sandbox account: {account}")
    uvicorn.run(create_app(manager, settings), host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
