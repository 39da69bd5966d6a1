from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from cliphub.core.auth import issue_token
from cliphub.core.config import Settings, get_settings


router = APIRouter(prefix="/admin", tags=["admin"])

_DEV_ENVIRONMENTS = {"development", "dev"}


class DevTokenRequest(BaseModel):
    user_id: str = Field(..., min_length=1, examples=["user-123"])
    scopes: list[str] = Field(default_factory=list, examples=[["worker"]])


class DevTokenResponse(BaseModel):
    token: str
    user_id: str


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint a session token for local testing")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in _DEV_ENVIRONMENTS:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")
    token = issue_token(payload.user_id, settings, scopes=payload.scopes)
    return DevTokenResponse(token=token, user_id=payload.user_id)


__all__ = ["router"]
