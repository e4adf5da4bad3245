"""HTTP request and response values used by the render pipeline."""
