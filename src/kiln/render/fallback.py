"""Minimal fallback document for the double-failure path.

Written without the render callback, without streaming, and without any
bootstrap content: the page must come out even when the renderer is
broken.
"""

from html import escape

from kiln.http.response import Response

FALLBACK_STATUS = 500


def fallback_document(message: str = "Internal Server Error", *, debug: bool = False, detail: str = "") -> str:
    body = f"<h1>{escape(message)}</h1>"
    if debug and detail:
        body += f"<pre>{escape(detail)}</pre>"
    return (
        "<!DOCTYPE html>"
        '<html><head><meta charset="utf-8"><title>Error</title></head>'
        f"<body>{body}</body></html>"
    )


def fallback_response(message: str = "Internal Server Error", *, debug: bool = False, detail: str = "") -> Response:
    return Response(
        body=fallback_document(message, debug=debug, detail=detail),
        status=FALLBACK_STATUS,
    )


def error_response(status: int, message: str) -> Response:
    """Plain non-streamed error page for requests rejected before rendering."""
    return Response(
        body=(
            "<!DOCTYPE html>"
            f'<html><head><meta charset="utf-8"><title>{status}</title></head>'
            f"<body><h1>{status}</h1><p>{escape(message)}</p></body></html>"
        ),
        status=status,
    )
