from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from fastapi import Depends, Header, HTTPException, Request, WebSocket, WebSocketDisconnect

from services.change_feed import Subscription
from services.container import Services
from services.identity import Identity


def get_services(request: Request) -> Services:
    return request.app.state.services


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_optional_identity(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
) -> Optional[Identity]:
    token = bearer_token(authorization)
    if token is None:
        return None
    return await services.identity.resolve(token)


async def get_current_identity(identity: Optional[Identity] = Depends(get_optional_identity)) -> Identity:
    if identity is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    return identity


async def require_account(identity: Identity = Depends(get_current_identity)) -> Identity:
    """A permanent (linked) account; anonymous wizard sessions are refused."""
    if identity.is_anonymous:
        raise HTTPException(status_code=401, detail="Please sign in to continue")
    return identity


async def require_staff(identity: Identity = Depends(require_account)) -> Identity:
    if not identity.is_staff:
        raise HTTPException(status_code=403, detail="Staff access required")
    return identity


async def websocket_identity(websocket: WebSocket, token: Optional[str]) -> Optional[Identity]:
    services: Services = websocket.app.state.services
    if not token:
        return None
    return await services.identity.resolve(token)


async def relay_events(
    websocket: WebSocket,
    subscription: Subscription,
    render: Optional[Callable[[dict[str, Any]], Awaitable[Any]]] = None,
) -> None:
    """
    Send each feed event, through render if given, to an accepted websocket
    until the client goes away. The client is watched for a disconnect at the
    same time, so an idle listener is released promptly. The subscription is
    always closed.
    """

    async def wait_for_disconnect() -> None:
        while (await websocket.receive())["type"] != "websocket.disconnect":
            pass

    disconnected = asyncio.create_task(wait_for_disconnect())
    next_event: Optional[asyncio.Task] = None
    try:
        while True:
            next_event = asyncio.create_task(subscription.get())
            await asyncio.wait({disconnected, next_event}, return_when=asyncio.FIRST_COMPLETED)
            if disconnected.done():
                return
            event = next_event.result()
            await websocket.send_json(event if render is None else await render(event))
    except WebSocketDisconnect:
        pass
    finally:
        disconnected.cancel()
        if next_event is not None:
            next_event.cancel()
        subscription.close()
