from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from api.deps import bearer_token, get_current_identity, get_services
from schemas.requests import LoginRequest
from services.container import Services
from services.errors import ProviderError
from services.identity import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def identity_to_response(identity: Identity) -> dict[str, Any]:
    return {
        "uid": identity.uid,
        "isAnonymous": identity.is_anonymous,
        "email": identity.email,
        "isStaff": identity.is_staff,
        "displayName": identity.display_name,
    }


@router.post("/anonymous", status_code=201)
async def start_anonymous_session(services: Services = Depends(get_services)):
    identity, token = await services.identity.create_anonymous()
    return {"token": token, "user": identity_to_response(identity)}


@router.post("/login")
async def login(body: LoginRequest, services: Services = Depends(get_services)):
    try:
        identity, token = await services.identity.sign_in(body.email, body.password)
    except ProviderError as e:
        logger.info("Sign-in failed: %s", e.code)
        raise HTTPException(status_code=401, detail="Invalid email or password")
    return {"token": token, "user": identity_to_response(identity)}


@router.post("/logout", status_code=204)
async def logout(
    authorization: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    token = bearer_token(authorization)
    if token:
        await services.identity.sign_out(token)


@router.get("/me")
async def me(identity: Identity = Depends(get_current_identity)):
    return identity_to_response(identity)
