"""
Command line entry point

    storefront serve products --port 8080
    storefront serve users
    storefront serve orders --host 127.0.0.1 --reload
    storefront hash-password secret123
"""
import argparse
import os
import sys
from typing import List, Optional

import uvicorn

SERVICES = {
    "products": ("storefront.apps.products:create_app", 8080),
    "users": ("storefront.apps.users:create_app", 8081),
    "orders": ("storefront.apps.orders:create_app", 8083),
}


def _read_port(value: Optional[str], default: int) -> int:
    """Explicit --port wins over PORT env var, which wins over the default."""
    value = value or os.environ.get("PORT")
    if not value:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise SystemExit(f"Invalid port '{value}': {exc}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storefront", description="Storefront services")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run one service with uvicorn")
    serve.add_argument("service", choices=sorted(SERVICES))
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port")
    serve.add_argument("--reload", action="store_true")

    hash_pw = sub.add_parser("hash-password", help="Print a bcrypt hash for a password")
    hash_pw.add_argument("password")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        target, default_port = SERVICES[args.service]
        uvicorn.run(
            target,
            factory=True,
            host=args.host,
            port=_read_port(args.port, default_port),
            reload=args.reload,
        )
        return 0

    if args.command == "hash-password":
        from storefront.core.security import get_password_hash

        print(get_password_hash(args.password))
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
