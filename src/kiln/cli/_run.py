"""``kiln run`` — serve an app with pounce.

Resolves an import string to a kiln App, validates its configuration, and
starts a single-worker pounce server.
"""

import argparse
import sys

from kiln.cli._resolve import resolve_app
from kiln.errors import ConfigurationError


def run_server(args: argparse.Namespace) -> None:
    """Start the kiln server for ``args.app``.

    ``--host``/``--port`` override the app config; ``--reload`` forces
    reload even when the app is not in debug mode.
    """
    try:
        app = resolve_app(args.app)
        app.config.validate()
    except (ModuleNotFoundError, AttributeError, TypeError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    from kiln.server.dev import run_server as _serve

    _serve(app, args.host, args.port, reload=args.reload or None, app_path=args.app)
