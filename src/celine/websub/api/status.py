# celine/websub/api/status.py
"""
Root-level health and subscription status endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    subscriber = getattr(request.app.state, "subscriber", None)
    return {
        "status": "healthy",
        "subscriptions": len(subscriber.registry) if subscriber else 0,
        "pending": len(subscriber.pending) if subscriber else 0,
    }


@router.get("/subscriptions")
async def list_subscriptions(request: Request) -> list[dict]:
    """List registered subscriptions, earliest expiration first."""
    subscriber = getattr(request.app.state, "subscriber", None)
    if subscriber is None:
        return []
    subscriptions = sorted(subscriber.registry, key=lambda s: s.expiration)
    return [
        {
            "id": s.id,
            "topic_url": s.topic_url,
            "hub_url": s.hub_url,
            "state": s.state.value,
            "expiration": s.expiration.isoformat(),
        }
        for s in subscriptions
    ]
