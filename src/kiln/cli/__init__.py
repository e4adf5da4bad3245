"""kiln command line.

Registered as the ``kiln`` script::

    kiln run myapp:app --port 3000
"""

import argparse
import sys


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kiln",
        description="Streaming server render with state hydration.",
    )
    commands = parser.add_subparsers(dest="command")

    run = commands.add_parser("run", help="Serve an app with pounce")
    run.add_argument("app", help="Import string, e.g. myapp:app (a factory works too)")
    run.add_argument("--host", help="Bind address (default: config.host)")
    run.add_argument("--port", type=int, help="Bind port (default: config.port)")
    run.add_argument("--reload", action="store_true", help="Reload on file changes even without debug")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``kiln`` script."""
    parser = build_parser()
    args = parser.parse_args(argv)

    match args.command:
        case "run":
            from kiln.cli._run import run_server

            run_server(args)
        case _:
            parser.print_help()
            sys.exit(0)
