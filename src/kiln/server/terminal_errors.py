"""Render error output for the terminal.

Render failures are logged once, where the coordinator catches them, in
one of three shapes picked by the ``KILN_TRACEBACK`` environment variable:

- ``compact`` (default): the error line plus the last few frames that
  belong to the application, not to the stdlib or site-packages
- ``full``: the standard traceback
- ``minimal``: one line with the raising location

Kida template errors always get their own banner with kida's compact
rendering of the template location.
"""

import logging
import os
import sysconfig
import traceback

logger = logging.getLogger("kiln.server")

KILN_TRACEBACK = "KILN_TRACEBACK"

_RULE = "-" * 65
_MAX_FRAMES = 5
_LIBRARY_PATHS = tuple(
    path for path in {sysconfig.get_paths().get("stdlib"), sysconfig.get_paths().get("purelib")} if path
)


def _from_kida(exc: BaseException) -> bool:
    return (type(exc).__module__ or "").split(".")[0] == "kida"


def _own_frame(frame: traceback.FrameSummary) -> bool:
    filename = frame.filename
    if filename.startswith("<") or "site-packages" in filename:
        return False
    return not filename.startswith(_LIBRARY_PATHS)


def format_template_error(exc: BaseException, context: str | None = None) -> str:
    """Banner for a kida error, with the render it happened in."""
    detail = exc.format_compact() if hasattr(exc, "format_compact") else str(exc)
    lines = [f"-- Template Error {_RULE[18:]}", detail]
    if context is not None:
        lines += ["", f"  Render: {context}"]
    lines.append(_RULE)
    return "\n".join(lines)


def format_compact_traceback(exc: BaseException) -> str:
    """The error line, then up to five application frames."""
    frames = traceback.extract_tb(exc.__traceback__)
    shown = [frame for frame in frames if _own_frame(frame)] or frames[-3:]

    lines = [f"{type(exc).__name__}: {exc}"]
    if shown:
        lines.append("  Trace (app frames):")
    for frame in shown[-_MAX_FRAMES:]:
        lines.append(f"    {frame.filename}:{frame.lineno} in {frame.name}")
        if frame.line:
            lines.append(f"      {frame.line.strip()}")
    return "\n".join(lines)


def format_minimal_error(exc: BaseException) -> str:
    frames = traceback.extract_tb(exc.__traceback__)
    where = f" at {frames[-1].filename}:{frames[-1].lineno}" if frames else ""
    return f"{type(exc).__name__}{where}: {exc}"


def log_error(exc: BaseException, context: str | None = None) -> None:
    """Log *exc* at error level on ``kiln.server``.

    *context* names the render, e.g. ``"POST /options (recovering)"``.
    """
    prefix = f"Render error in {context}" if context else "Render error"

    if _from_kida(exc):
        logger.error("%s\n%s", prefix, format_template_error(exc, context))
        return

    match os.environ.get(KILN_TRACEBACK, "compact").lower():
        case "full":
            logger.error(prefix, exc_info=exc)
        case "minimal":
            logger.error("%s: %s", prefix, format_minimal_error(exc))
        case _:
            logger.error("%s\n%s", prefix, format_compact_traceback(exc))
