"""
Auth Routes

Console login state. The cookie is kept in the AuthSession shared with
the CAPI client; nothing is persisted.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from nldb.api.container import ServiceContainer
from nldb.api.dependencies import get_container
from nldb.models.api import AuthStatusResponse, LoginRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/auth/login")
async def login(
    login_request: LoginRequest,
    container: ServiceContainer = Depends(get_container),
) -> dict[str, object]:
    cookie = login_request.cookie.strip()
    if not cookie:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="缺少 cookie")

    container.session.login(cookie, login_request.env_id)
    logger.info("Login state saved", extra={"env_id": container.session.env_id})
    return {"success": True, "message": "登录态已保存", "envId": container.session.env_id}


@router.post("/auth/logout")
async def logout(container: ServiceContainer = Depends(get_container)) -> dict[str, object]:
    container.session.logout()
    logger.info("Login state cleared")
    return {"success": True, "message": "已退出登录"}


@router.get("/auth/status", response_model=AuthStatusResponse)
async def auth_status(container: ServiceContainer = Depends(get_container)) -> AuthStatusResponse:
    session = container.session
    return AuthStatusResponse(
        logged_in=session.logged_in,
        env_id=session.env_id,
        has_token=bool(session.token),
    )
