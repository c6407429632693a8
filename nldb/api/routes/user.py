"""
User Routes

Per-user environment selection. Users are identified by the
``X-User-Id`` header.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from nldb.api.container import ServiceContainer
from nldb.api.dependencies import get_container, get_user_id
from nldb.clients import AuthRequiredError, CapiError
from nldb.models.api import EnvRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/user/env")
async def set_user_env(
    env_request: EnvRequest,
    container: ServiceContainer = Depends(get_container),
    user_id: str = Depends(get_user_id),
) -> dict[str, object]:
    if not env_request.env_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="缺少 envId")

    await container.preferences.set_env(user_id, env_request.env_id)
    logger.info("User environment saved", extra={"user_id": user_id, "env_id": env_request.env_id})
    return {"success": True, "userId": user_id, "envId": env_request.env_id}


@router.get("/user/env")
async def get_user_env(
    container: ServiceContainer = Depends(get_container),
    user_id: str = Depends(get_user_id),
) -> dict[str, object]:
    env_id = await container.preferences.get_env(user_id)
    if not env_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="未找到用户环境设置")
    return {"success": True, "userId": user_id, "envId": env_id}


@router.delete("/user/env")
async def clear_user_env(
    container: ServiceContainer = Depends(get_container),
    user_id: str = Depends(get_user_id),
) -> dict[str, object]:
    await container.preferences.clear_env(user_id)
    return {"success": True, "message": "已清除环境设置"}


@router.get("/user/env-list")
async def list_envs(container: ServiceContainer = Depends(get_container)) -> dict[str, object]:
    try:
        envs = await container.capi.describe_envs()
    except AuthRequiredError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message) from e
    except CapiError as e:
        logger.error("DescribeEnvs failed", extra={"code": e.code, "error": e.message})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return {"success": True, "envs": envs}
