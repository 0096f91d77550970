# celine/websub/api/dependencies.py
"""
FastAPI dependencies for request-scoped services.
"""
from __future__ import annotations

from fastapi import HTTPException, Request

from celine.websub.core.websub.subscriber import WebSubSubscriber


def get_subscriber(request: Request) -> WebSubSubscriber:
    """Return the application's subscriber, or 503 if it is not wired."""
    subscriber = getattr(request.app.state, "subscriber", None)
    if subscriber is None:
        raise HTTPException(status_code=503, detail="Subscriber not configured")
    return subscriber
