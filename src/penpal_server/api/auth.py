"""Caller identity from trusted headers.

Authentication happens upstream (the gateway in front of this service); the
headers below are taken at face value. Whether an ``X-Admin-Id`` really is an
administrator is checked against the ``administrators`` table by the
operations that need it.
"""

from typing import Annotated

from fastapi import Header, HTTPException


def require_user(x_user_id: Annotated[str | None, Header()] = None) -> str:
    """Return the calling participant's id (``X-User-Id``)."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=401,
            detail={"code": "missing_identity", "message": "X-User-Id header is required"},
        )
    return x_user_id.strip()


def require_admin(x_admin_id: Annotated[str | None, Header()] = None) -> str:
    """Return the calling administrator's id (``X-Admin-Id``)."""
    if not x_admin_id or not x_admin_id.strip():
        raise HTTPException(
            status_code=401,
            detail={"code": "missing_identity", "message": "X-Admin-Id header is required"},
        )
    return x_admin_id.strip()
