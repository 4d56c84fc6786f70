"""Service-layer orchestration for the pen-pal server."""
