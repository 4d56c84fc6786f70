"""Pen-pal letter exchange verification service.

Two matched children alternately mail physical letters. Each exchange step is
proven by the sender (photo of the sent letter) and confirmed by the receiver
(photo of the received letter). This package owns the protocol around that:
turn order, progress, timeout-driven auto-verification, disputes, cancellation
and the reputation score consumed by matchmaking.

Version Management
------------------
``__version__`` is read from the installed package metadata at import time.
The single source of truth is the ``version`` field in ``pyproject.toml``.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

try:
    __version__: str = version("penpal_server")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
