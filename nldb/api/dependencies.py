"""FastAPI dependencies shared by the routers."""

from fastapi import Header, HTTPException, Request, status

from nldb.api.container import ServiceContainer

DEFAULT_USER_ID = "default-user"


def get_container(request: Request) -> ServiceContainer:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services not initialized",
        )
    return container


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    return x_user_id or DEFAULT_USER_ID
