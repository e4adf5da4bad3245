"""Turn ``"module:attribute"`` into a kiln App."""

import importlib

from kiln.app import App


def resolve_app(import_string: str) -> App:
    """Import the App named by *import_string*.

    ``"pkg.module:name"`` looks up ``name``; a bare ``"pkg.module"`` looks
    up ``app``. A callable that is not itself an App is a factory and is
    called with no arguments.

    Raises ``ModuleNotFoundError`` or ``AttributeError`` when the target
    does not exist, ``TypeError`` when it is not (and does not build) an App.
    """
    module_name, _, attribute = import_string.partition(":")
    target = getattr(importlib.import_module(module_name), attribute or "app")

    if not isinstance(target, App) and callable(target):
        try:
            target = target()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if isinstance(target, App):
        return target
    msg = f"{import_string!r} resolved to {type(target).__name__}, not a kiln.App instance"
    raise TypeError(msg)
