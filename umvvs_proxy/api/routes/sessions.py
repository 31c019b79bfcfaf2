"""
Sessions API - Inspect and drop cached token bundles.
"""

from typing import Any
from fastapi import APIRouter, Request

from ...core.errors import SessionNotFoundError


router = APIRouter()


@router.get("/{session_id}", response_model=dict)
async def get_session(
    session_id: str,
    req: Request
) -> dict[str, Any]:
    """
    Get session details.

    Args:
        session_id: Session ID
        req: FastAPI request

    Returns:
        Session summary (tokens are not included)
    """
    summary = req.app.state.session_store.summary(session_id)

    if not summary:
        raise SessionNotFoundError(f"Session '{session_id}' not found or expired")

    return summary


@router.get("/", response_model=dict)
async def session_stats(req: Request) -> dict[str, Any]:
    """Store-wide counters."""
    store = req.app.state.session_store
    store.purge_expired()
    return store.stats()


@router.delete("/{session_id}")
async def delete_session(
    session_id: str,
    req: Request
) -> dict[str, str]:
    """
    Delete a session.

    Args:
        session_id: Session ID
        req: FastAPI request

    Returns:
        Deletion confirmation
    """
    if not req.app.state.session_store.delete(session_id):
        raise SessionNotFoundError(f"Session '{session_id}' not found")

    return {"status": "deleted", "session_id": session_id}
