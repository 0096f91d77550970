# celine/websub/api/callback.py
"""
Callback router.

Mounted at the callback prefix, it turns ``{prefix}/{callback_id}`` requests
into ``CallbackRequest`` objects for the subscriber and writes back its
``CallbackResponse``. Methods other than GET/POST are routed too so the
subscriber can answer 405.
"""
from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Request, Response
from starlette.requests import ClientDisconnect

from celine.websub.api.dependencies import get_subscriber
from celine.websub.contracts.request import CallbackRequest
from celine.websub.core.websub.subscriber import WebSubSubscriber

logger = logging.getLogger(__name__)

CALLBACK_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def _query_params(request: Request) -> dict[str, list[str]]:
    params: dict[str, list[str]] = {}
    for name, value in request.query_params.multi_items():
        params.setdefault(name, []).append(value)
    return params


def build_callback_router() -> APIRouter:
    """Build the callback router; the caller chooses the mount prefix."""
    router = APIRouter(tags=["websub"])

    @router.api_route(
        "/{callback_id}", methods=CALLBACK_METHODS, include_in_schema=False
    )
    async def callback(
        callback_id: str,
        request: Request,
        subscriber: WebSubSubscriber = Depends(get_subscriber),
    ) -> Response:
        try:
            body = await request.body()
        except ClientDisconnect:
            logger.warning("Client disconnected while sending body for '%s'", callback_id)
            return Response(status_code=400)

        inbound = CallbackRequest(
            method=request.method,
            callback_id=callback_id,
            params=_query_params(request),
            headers=dict(request.headers),
            body=body,
        )
        # The subscriber and its hooks are synchronous.
        result = await asyncio.to_thread(subscriber.handle_request, inbound)
        return Response(
            content=result.body,
            status_code=result.status_code,
            media_type=result.media_type,
        )

    return router
