#!/usr/bin/env python3
"""
wetube accounts - login, signup and profile service.
"""

import argparse
import logging
import sys

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", stream=sys.stderr
)

#
# NOTE: Keep wetube imports lazy (inside functions) so `--help` works without the
# server dependencies installed.
#


def init_db() -> None:
    """Create the users table in the configured Postgres database."""
    import psycopg

    from wetube.store.config import build_postgres_dsn, load_store_config
    from wetube.store.postgres import ensure_schema

    dsn = build_postgres_dsn(load_store_config())
    if not dsn:
        raise SystemExit("POSTGRES_DSN or POSTGRES_HOST/DB/USER/PASSWORD must be set")
    with psycopg.connect(dsn) as conn:
        ensure_schema(conn)
    print("users table ready")


def print_authorize_url(provider_name: str) -> None:
    """Print the authorize URL a browser would be sent to (checks OAuth app config)."""
    from wetube.auth.config import load_auth_config
    from wetube.auth.oauth import build_authorize_url, get_provider

    print(build_authorize_url(get_provider(load_auth_config(), provider_name)))


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="wetube account service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP server (in-memory store unless USER_STORE=postgres)
  python main.py --serve --port 4000

  # Create the users table
  USER_STORE=postgres POSTGRES_DSN=... python main.py --init-db

  # Show the Kakao authorize URL for the current APP_ENV
  python main.py --authorize-url kakao
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the account HTTP server")
    parser.add_argument("--init-db", action="store_true", help="Create the Postgres users table (idempotent)")
    parser.add_argument(
        "--authorize-url", metavar="PROVIDER", choices=["github", "kakao"], help="Print a provider authorize URL"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Server bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=4000, help="Server listen port (default: 4000)")

    args = parser.parse_args()

    try:
        if args.init_db:
            init_db()
            return

        if args.authorize_url:
            print_authorize_url(args.authorize_url)
            return

        if args.serve:
            from wetube.api.server import run

            run(host=args.host, port=args.port)
            return

        parser.print_help()

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        raise


if __name__ == "__main__":
    main()
