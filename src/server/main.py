#!/usr/bin/env python3
"""
Fleet User Console - Main entry point.

Runs the console API, or performs a single operation from the command line.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from http.server import ThreadingHTTPServer
from typing import Callable, List, Optional

from .config import Config
from .routes import ConsoleRequestHandler
from ..data.models import NewUser
from ..fleet.aggregator import FleetUserAggregator
from ..fleet.directory import ServerDirectory
from ..fleet.mutations import MutationCoordinator
from ..fleet.state import FleetState
from ..gateway.base import BackendGateway
from ..gateway.client import HttpBackendClient


@dataclass
class Console:
    """Wired-up fleet core shared by the API handler and the CLI."""

    gateway: BackendGateway
    state: FleetState
    directory: ServerDirectory
    aggregator: FleetUserAggregator
    coordinator: MutationCoordinator


def build_console(
    config: Config,
    gateway: Optional[BackendGateway] = None,
    notify: Optional[Callable[[str], None]] = None,
) -> Console:
    """Create the fleet core from config.

    Args:
        config: Loaded configuration
        gateway: Backend gateway to use instead of an HTTP client
        notify: Callback receiving mutation failure messages
    """
    if gateway is None:
        gateway = HttpBackendClient(
            base_url=config.backend.base_url,
            timeout=config.backend.timeout,
            retries=config.backend.retries,
            verify=config.backend.verify,
        )
    state = FleetState()
    directory = ServerDirectory(gateway)
    aggregator = FleetUserAggregator(directory, state, max_workers=config.fleet.max_workers)
    coordinator = MutationCoordinator(gateway, state, notify=notify)
    return Console(
        gateway=gateway,
        state=state,
        directory=directory,
        aggregator=aggregator,
        coordinator=coordinator,
    )


def run_server(config: Config) -> int:
    """Run the console API."""
    console = build_console(config)

    print("[console] Loading fleet users...")
    result = console.aggregator.load_all_users()
    if result.success:
        print(f"[console] Loaded {len(result.data)} users")
    else:
        print(f"[console] Initial load failed: {result.error} "
              f"Ensure the backend is running at {config.backend.base_url}.")

    ConsoleRequestHandler.console = console
    ConsoleRequestHandler.config = config.to_dict()

    server = ThreadingHTTPServer((config.server.host, config.server.port), ConsoleRequestHandler)
    print(f"[console] Serving on http://{config.server.host}:{config.server.port}")
    print(f"[console] Backend: {config.backend.base_url}")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\n[console] Shutting down...")
    finally:
        server.server_close()
        if isinstance(console.gateway, HttpBackendClient):
            console.gateway.close()
    return 0


# --- One-shot commands ---


def _print_error(message: str) -> None:
    print(message, file=sys.stderr, flush=True)


def cmd_servers(console: Console, args) -> int:
    result = console.directory.load_servers()
    if not result.success:
        _print_error(f"Error: {result.error}")
        return 1
    for server in result.data:
        print(f"{server.id}\t{server.name}")
    return 0


def cmd_users(console: Console, args) -> int:
    result = console.aggregator.load_all_users()
    if not result.success:
        _print_error(f"Error: {result.error}")
        return 1
    for user in console.state.search(args.search or ""):
        print(f"{user.server_name}\t{user.username}\t{user.uid}\t{user.gid}\t{user.status.value}")
    return 0


def _set_lock(console: Console, args, want_locked: bool) -> int:
    # The snapshot decides the direction of a toggle, so load it first.
    loaded = console.aggregator.load_all_users()
    if not loaded.success:
        _print_error(f"Error: {loaded.error}")
        return 1
    user = console.state.find((args.server, args.username))
    if user is None:
        _print_error(f"Error: user {args.username!r} not found on server {args.server!r}")
        return 1
    if user.is_locked == want_locked:
        print(f"{user.username} on {user.server_name} is already {user.status.value}")
        return 0
    result = console.coordinator.toggle_lock(user)
    if not result.success:
        return 1
    print(f"{user.username} on {user.server_name} is now {user.status.inverse.value}")
    return 0


def cmd_lock(console: Console, args) -> int:
    return _set_lock(console, args, want_locked=True)


def cmd_unlock(console: Console, args) -> int:
    return _set_lock(console, args, want_locked=False)


def cmd_create(console: Console, args) -> int:
    new_user = NewUser(
        username=args.username,
        password=args.password,
        full_name=args.full_name,
        shell=args.shell,
        groups=list(args.group or []),
    )
    result = console.coordinator.create_user(args.server, new_user)
    if not result.success:
        return 1
    print(f"Created {args.username} on {args.server}")
    return 0


def cmd_export_url(console: Console, args) -> int:
    print(console.gateway.export_url())
    return 0


COMMANDS = {
    "servers": cmd_servers,
    "users": cmd_users,
    "lock": cmd_lock,
    "unlock": cmd_unlock,
    "create": cmd_create,
    "export-url": cmd_export_url,
}


def parse_args(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(
        description="Fleet User Console",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=str, help="Path to config YAML file")
    parser.add_argument("--backend-url", default=None, help="Override the backend base URL")
    parser.add_argument("--timeout", type=float, default=None, help="HTTP timeout in seconds")

    sub = parser.add_subparsers(dest="command")

    serve = sub.add_parser("serve", help="Run the console API")
    serve.add_argument("--host", default=None, help="Bind address")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on")

    sub.add_parser("servers", help="List servers in the directory")

    users = sub.add_parser("users", help="List users across the fleet")
    users.add_argument("--search", default="", help="Filter by username or server name")

    for name, verb in (("lock", "Lock"), ("unlock", "Unlock")):
        p = sub.add_parser(name, help=f"{verb} a user on a server")
        p.add_argument("server", help="Server id")
        p.add_argument("username", help="Account name")

    create = sub.add_parser("create", help="Create a user on a server")
    create.add_argument("server", help="Server id")
    create.add_argument("username", help="Account name")
    create.add_argument("--password", default=None)
    create.add_argument("--full-name", default=None)
    create.add_argument("--shell", default=None)
    create.add_argument("--group", action="append", help="Supplementary group (repeatable)")

    sub.add_parser("export-url", help="Print the user export download URL")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the fleet-console command."""
    args = parse_args(argv)
    config = Config.load(args.config)

    if args.backend_url:
        config.backend.base_url = args.backend_url
    if args.timeout is not None:
        config.backend.timeout = args.timeout

    command = args.command or "serve"
    if command == "serve":
        if getattr(args, "host", None) is not None:
            config.server.host = args.host
        if getattr(args, "port", None) is not None:
            config.server.port = args.port
        return run_server(config)

    console = build_console(config, notify=_print_error)
    return COMMANDS[command](console, args)


if __name__ == "__main__":
    raise SystemExit(main())
