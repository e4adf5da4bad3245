"""Streaming render pipeline — coordinator, injector, and renderers."""
