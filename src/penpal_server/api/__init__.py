"""HTTP API (FastAPI) for the pen-pal exchange service."""
