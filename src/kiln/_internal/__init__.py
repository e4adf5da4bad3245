"""Internal helpers shared across kiln modules. Not public API."""
