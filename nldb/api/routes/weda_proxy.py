"""Pass-through proxy for raw gateway calls made by the front end."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status

from nldb.api.container import ServiceContainer
from nldb.api.dependencies import get_container
from nldb.clients import AuthRequiredError, CapiError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route("/weda/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def proxy(
    path: str,
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    if await request.body():
        payload = await request.json()
        if not isinstance(payload, dict):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="请求体必须是 JSON 对象"
            )

    try:
        result = await container.capi.forward(path, payload)
    except AuthRequiredError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.message) from e
    except CapiError as e:
        logger.error("Proxy call failed", extra={"path": path, "code": e.code})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e
    return {"success": True, "result": result}
