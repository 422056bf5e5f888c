"""CLI entrypoint: python -m signalroute {run|init-db|stats|test-webhooks}."""

from __future__ import annotations

import asyncio
import json
import logging
import logging.handlers
import os
import sys
from pathlib import Path

from signalroute.config import get_db_path, load_config
from signalroute.db import get_connection, get_recent_runs, get_route_counts, init_db


def setup_logging(config: dict) -> None:
    """Configure logging with console + rotating file output."""
    root = logging.getLogger()
    root.setLevel(logging.INFO)

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setFormatter(fmt)
    root.addHandler(console)

    # File handler (rotate at 5MB, keep 3 backups)
    db_path = get_db_path(config)
    log_dir = Path(db_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "signalroute.log"

    file_handler = logging.handlers.RotatingFileHandler(
        str(log_file), maxBytes=5 * 1024 * 1024, backupCount=3,
    )
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)


logger = logging.getLogger("signalroute")


def cmd_init_db(config: dict, args: list[str]) -> None:
    """Initialize the SQLite database."""
    db_path = get_db_path(config)
    init_db(db_path)
    print(f"Database initialized at {db_path}")


async def cmd_run(config: dict, args: list[str]) -> None:
    """Process an input file of records."""
    from signalroute.pipeline import run_pipeline

    run, snapshot = await run_pipeline(config, args[0] if args else None)
    print(
        f"Run #{run.id} {run.status}: {run.events_received} events, "
        f"{run.duplicates} duplicates, {run.rejected} rejected, {run.decisions} decisions"
    )
    print(f"Actions: {run.actions_executed} executed, {run.actions_failed} failed")
    print(f"Routes: {json.dumps(snapshot['routing']['routes'])}")


async def cmd_test_webhooks(config: dict, args: list[str]) -> None:
    """Send a test delivery to every configured webhook endpoint."""
    from signalroute.integrations.webhooks import WebhookDispatcher

    dispatcher = WebhookDispatcher(config)
    if not dispatcher.endpoints:
        print("No webhook endpoints configured")
        return

    deliveries = await dispatcher.send_test()
    for d in deliveries:
        state = "ok" if d.success else f"FAILED ({d.error})"
        print(f"  {d.endpoint}: {state} after {d.attempts} attempt(s)")
    if not all(d.success for d in deliveries):
        sys.exit(1)


def cmd_stats(config: dict, args: list[str]) -> None:
    """Show recent pipeline runs and route counts."""
    db_path = get_db_path(config)
    init_db(db_path)
    conn = get_connection(db_path)
    runs = get_recent_runs(conn, limit=10)
    routes = get_route_counts(conn)
    conn.close()

    if not runs:
        print("No pipeline runs yet.")
        return

    header = (
        f"{'Run':>4} {'Status':<10} {'Events':<8} {'Dups':<6} "
        f"{'Rejected':<9} {'Actions':<8} {'Failed':<7} {'Started'}"
    )
    print(header)
    print("-" * 80)
    for r in runs:
        print(
            f"{r['id']:>4} {r['status']:<10} "
            f"{r['events_received']:<8} {r['duplicates']:<6} "
            f"{r['rejected']:<9} {r['actions_executed']:<8} "
            f"{r['actions_failed']:<7} {r['started_at']}"
        )

    if routes:
        print()
        for route, count in sorted(routes.items()):
            print(f"  {route:<15} {count}")


COMMANDS = {
    "run": cmd_run,
    "init-db": cmd_init_db,
    "stats": cmd_stats,
    "test-webhooks": cmd_test_webhooks,
}


def main() -> None:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        available = ", ".join(COMMANDS)
        print(f"Usage: python -m signalroute {{{available}}} [input.jsonl]")
        sys.exit(1)

    command = sys.argv[1]
    config = load_config(os.environ.get("CONFIG_PATH", "config.yaml"))
    setup_logging(config)
    handler = COMMANDS[command]

    if asyncio.iscoroutinefunction(handler):
        asyncio.run(handler(config, sys.argv[2:]))
    else:
        handler(config, sys.argv[2:])


if __name__ == "__main__":
    main()
