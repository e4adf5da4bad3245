"""Hydration payload — the state snapshot embedded in the document.

The payload is a single statement, ``window.__STATE__ = <json>;``, wrapped
in a ``<script>`` element. ``<``, ``>`` and ``&`` inside the JSON are
written as ``\\u003c``/``\\u003e``/``\\u0026`` so no state value can close the
script element early (``</script>``) or open an HTML comment (``<!--``).
The escapes are valid JSON, so the client decodes the exact snapshot.
"""

import json
import re
from collections.abc import Mapping
from typing import Any

_SCRIPT_UNSAFE = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_UNSAFE_RE = re.compile("[<>&\u2028\u2029]")


def encode_state(snapshot: Mapping[str, Any]) -> str:
    """Compact JSON for *snapshot*, safe to place inside ``<script>``."""
    raw = json.dumps(snapshot, separators=(",", ":"), ensure_ascii=False, default=str)
    return _UNSAFE_RE.sub(lambda m: _SCRIPT_UNSAFE[m.group(0)], raw)


def hydration_statement(snapshot: Mapping[str, Any], global_name: str = "__STATE__") -> str:
    """The global-assignment statement: ``window.<name> = <json>;``."""
    return f"window.{global_name} = {encode_state(snapshot)};"


def hydration_script(snapshot: Mapping[str, Any], global_name: str = "__STATE__") -> str:
    """The full ``<script>`` element carrying the hydration statement."""
    return f"<script>{hydration_statement(snapshot, global_name)}</script>"


def extract_hydration_state(document: str | bytes, global_name: str = "__STATE__") -> dict[str, Any] | None:
    """Read the embedded snapshot back out of a rendered document.

    Returns ``None`` when the document carries no hydration payload (for
    example the minimal fallback document).
    """
    if isinstance(document, bytes):
        document = document.decode("utf-8")
    pattern = re.compile(
        rf"window\.{re.escape(global_name)}\s*=\s*(.*?);\s*</script>",
        re.DOTALL,
    )
    match = pattern.search(document)
    if match is None:
        return None
    value = json.loads(match.group(1))
    if not isinstance(value, dict):
        return None
    return value
