"""Aviary CLI — route listing and dev server.

Entry point registered as ``aviary`` in ``pyproject.toml``::

    [project.scripts]
    aviary = "aviary.cli:main"
"""

import argparse
import sys


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``aviary`` command."""
    parser = argparse.ArgumentParser(
        prog="aviary",
        description="Aviary — compose sites from typed, mountable bundles.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- aviary routes ----------------------------------------------------
    routes_parser = subparsers.add_parser(
        "routes", help="List every route, including mounted bundles"
    )
    routes_parser.add_argument("app", help="Import string (e.g. mysite:app)")

    # -- aviary run -------------------------------------------------------
    run_parser = subparsers.add_parser("run", help="Start the dev server")
    run_parser.add_argument("app", help="Import string (e.g. mysite:app)")
    run_parser.add_argument("--host", default=None, help="Bind host address")
    run_parser.add_argument("--port", type=int, default=None, help="Bind port number")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "routes":
        from aviary.cli._routes import run_routes

        run_routes(args)
    elif args.command == "run":
        from aviary.cli._run import run_server

        run_server(args)
