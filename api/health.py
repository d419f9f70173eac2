"""
Health endpoint for the Policy Assistant.

This module defines a minimal FastAPI router that exposes a liveness check at
"/health". It returns a static "UP" status, the service name and version, a UTC
timestamp, and the number of conversation sessions currently held in memory. The
handler only reads in-process state, so it stays reliable even when the LLM or
the capability backends are unavailable.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request

from version import __version__

router = APIRouter()

SERVICE_NAME = "Policy Assistant"


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    """
    Return a simple health status payload.

    Returns:
        Dict[str, Any]: "status", "service", "version", "timestamp" (ISO-8601, UTC)
        and "activeConversations" (0 before the session manager is created).
    """
    session_manager = getattr(request.app.state, "session_manager", None)
    return {
        "status": "UP",
        "service": SERVICE_NAME,
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "activeConversations": session_manager.active_count() if session_manager else 0,
    }
