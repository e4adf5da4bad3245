"""Test utilities for kiln applications.

Provides an ASGI test client that records every message the app sends,
and an in-memory channel transport::

    from kiln.testing import MemoryTransport, TestClient
"""

from kiln.testing.channel import MemoryTransport, acknowledge
from kiln.testing.client import TestClient, TestResponse

__all__ = [
    "MemoryTransport",
    "TestClient",
    "TestResponse",
    "acknowledge",
]
