"""
Command-line interface for the pen-pal exchange server.

Provides CLI commands for server management:
- init-db: Initialize the database schema (and seed configured administrators)
- add-admin: Register an administrator identity
- sweep: Run one timeout sweep and print the report
- run: Start the API server (with the background sweep worker)

Usage:
    penpal-server init-db
    penpal-server add-admin ADMIN_ID
    penpal-server sweep [--json]
    penpal-server run [--port PORT] [--host HOST] [--no-sweep]

Environment Variables:
    PENPAL_ADMIN_IDS: Comma-separated administrator ids seeded by init-db
    PENPAL_HOST: Host to bind the API server (default: 0.0.0.0)
    PENPAL_PORT: Port for the API server (default: 8000)
    PENPAL_DB_PATH: SQLite database path
"""

import argparse
import json
import sys


def cmd_init_db(args: argparse.Namespace) -> int:
    """
    Initialize the database schema.

    Returns:
        0 on success, 1 on error
    """
    from penpal_server.db.errors import DatabaseError
    from penpal_server.db.schema import init_database

    try:
        init_database()
    except (DatabaseError, OSError, ValueError) as e:
        print(f"Error initializing database: {e}", file=sys.stderr)
        return 1
    print("Database initialized successfully.")
    return 0


def cmd_add_admin(args: argparse.Namespace) -> int:
    """Register ``args.admin_id`` as an administrator."""
    from penpal_server.db.errors import DatabaseError
    from penpal_server.db.schema import init_database
    from penpal_server.services.letter_exchange import LetterExchangeService

    admin_id = (args.admin_id or "").strip()
    if not admin_id:
        print("Error: admin id must not be empty.", file=sys.stderr)
        return 1

    try:
        init_database()
        added = LetterExchangeService().add_administrator(admin_id)
    except DatabaseError as e:
        print(f"Error registering administrator: {e}", file=sys.stderr)
        return 1

    if added:
        print(f"Administrator '{admin_id}' registered.")
    else:
        print(f"Administrator '{admin_id}' was already registered.")
    return 0


def cmd_sweep(args: argparse.Namespace) -> int:
    """
    Run one timeout sweep (reminders, escalations, auto-verification).

    Returns:
        0 when every entry was processed, 1 if any entry failed
    """
    from penpal_server.db.schema import init_database
    from penpal_server.services.letter_exchange import LetterExchangeService

    init_database()
    report = LetterExchangeService().run_sweep()

    if getattr(args, "json", False):
        print(json.dumps(report.as_dict(), sort_keys=True))
    else:
        print(
            f"Inspected {report.inspected} letters: "
            f"{report.reminders} reminders, {report.escalations} escalations, "
            f"{report.auto_verified} auto-verified, {report.failures} failures."
        )
    return 1 if report.failures else 0


def cmd_run(args: argparse.Namespace) -> int:
    """
    Run the API server.

    Prints the effective configuration, then starts the server. The
    database is initialized if needed. The background sweep worker
    follows ``config.scheduler.enabled`` unless ``--no-sweep`` is given.

    Returns:
        0 on clean shutdown (Ctrl+C), 1 on startup error
    """
    from penpal_server.api.server import start_server
    from penpal_server.config import config, print_config_summary

    if getattr(args, "no_sweep", False):
        config.scheduler.enabled = False
    print_config_summary()

    try:
        start_server(host=getattr(args, "host", None), port=getattr(args, "port", None))
        return 0
    except KeyboardInterrupt:
        print("\nServer stopped.")
        return 0
    except OSError as e:
        print(f"Error starting server: {e}", file=sys.stderr)
        return 1


def main() -> int:
    """Main entry point for the CLI."""
    from penpal_server.logging_config import configure_logging

    parser = argparse.ArgumentParser(
        prog="penpal-server",
        description="Pen-pal letter exchange server",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    init_parser = subparsers.add_parser(
        "init-db",
        help="Initialize the database schema",
        description=(
            "Create the tables, indexes and invariant triggers. "
            "Administrators listed in PENPAL_ADMIN_IDS are registered."
        ),
    )
    init_parser.set_defaults(func=cmd_init_db)

    admin_parser = subparsers.add_parser("add-admin", help="Register an administrator id")
    admin_parser.add_argument("admin_id", help="Identity that may adjudicate disputes")
    admin_parser.set_defaults(func=cmd_add_admin)

    sweep_parser = subparsers.add_parser("sweep", help="Run one timeout sweep now")
    sweep_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    sweep_parser.set_defaults(func=cmd_sweep)

    run_parser = subparsers.add_parser("run", help="Start the API server")
    run_parser.add_argument("--port", "-p", type=int, default=None, help="API server port")
    run_parser.add_argument("--host", type=str, default=None, help="Host to bind")
    run_parser.add_argument(
        "--no-sweep", action="store_true", help="Do not start the background sweep worker"
    )
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
