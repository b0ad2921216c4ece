#!/usr/bin/env python3
"""
lawlzer - recipe tracker site with OAuth sign-in.
Command line entry point for the HTTP server and database maintenance.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep lawlzer imports lazy (inside functions) so maintenance modes do not
# import the web stack.
#


def migrate() -> int:
    """Apply pending SQL migrations. Returns a process exit code."""
    from lawlzer.db.config import load_db_config
    from lawlzer.db.migrate import apply_migrations

    cfg = load_db_config()
    if not cfg.enabled:
        print("Postgres is not configured (set POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD)", file=sys.stderr)
        return 2
    applied = apply_migrations(cfg.dsn)
    for m in applied:
        print(f"{m.version}: {', '.join(m.tables) or '(no new tables)'}")
    if not applied:
        print("No pending migrations")
    return 0


def purge_sessions() -> int:
    """Delete expired session records. Returns a process exit code."""
    from lawlzer.auth.config import load_auth_config
    from lawlzer.auth.session import build_session_store

    removed = build_session_store(load_auth_config()).purge_expired()
    print(f"Purged {removed} expired session(s)")
    return 0


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="lawlzer web server and maintenance commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP server
  python main.py --serve --port 8080

  # Apply database migrations
  python main.py --migrate

  # Remove expired sessions (run periodically)
  python main.py --purge-sessions
        """,
    )

    parser.add_argument("--serve", action="store_true", help="Run the HTTP server")
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8080, help="Server listen port (default: 8080)")
    parser.add_argument("--migrate", action="store_true", help="Apply pending Postgres migrations and exit")
    parser.add_argument("--purge-sessions", action="store_true", help="Delete expired sessions and exit")

    args = parser.parse_args()

    try:
        if args.migrate:
            sys.exit(migrate())

        if args.purge_sessions:
            sys.exit(purge_sessions())

        if args.serve:
            from lawlzer.api.server import run

            run(host=args.host, port=args.port)
            return

        # No arguments provided
        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
