"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from guest_messaging.application.dto.principal import Principal
from guest_messaging.infrastructure.auth.hs256_verifier import HS256Verifier
from guest_messaging.infrastructure.db.session import AsyncSessionLocal
from guest_messaging.infrastructure.db.uow import SqlAlchemyUoW
from guest_messaging.infrastructure.waha.client import WahaClient

# Missing credentials are answered below with 401, not HTTPBearer's default.
_bearer = HTTPBearer(auto_error=False)


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session, SqlAlchemyUoW(session) as uow:
        yield uow


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


def get_waha(request: Request) -> WahaClient:
    return request.app.state.waha


WahaDep = Annotated[WahaClient, Depends(get_waha)]


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> Principal:
    if credentials is None:
        raise _unauthorized("Bearer token required")
    verifier: HS256Verifier = request.app.state.verifier
    try:
        return await verifier.verify(credentials.credentials)
    except jwt.InvalidTokenError as exc:
        raise _unauthorized(str(exc)) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


async def require_operator(principal: CurrentPrincipal) -> Principal:
    """Queue inspection is limited to operators (admin kind or role)."""
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operator access required")
    return principal


CurrentOperator = Annotated[Principal, Depends(require_operator)]
