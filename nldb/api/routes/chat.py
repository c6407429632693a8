"""
Chat Routes

Natural language chat endpoint plus the confirmation step for
destructive operations.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from nldb.api.container import ServiceContainer
from nldb.api.dependencies import get_container, get_user_id
from nldb.models.agent import AgentResponse
from nldb.models.api import ChatQueryRequest, ConfirmRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat/query", response_model=AgentResponse)
async def chat_query(
    chat_request: ChatQueryRequest,
    container: ServiceContainer = Depends(get_container),
    user_id: str = Depends(get_user_id),
) -> AgentResponse:
    """
    Classify a message, route it to an agent and return the agent's reply.

    Raises:
        HTTPException: 400 when the message is empty
    """
    message = chat_request.message.strip()
    if not message:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="消息不能为空")

    logger.info(
        f"Chat request received: {message[:100]}",
        extra={"user_id": user_id, "session_id": chat_request.context.get("sessionId")},
    )
    return await container.pipeline.run(message, chat_request.context, user_id=user_id)


@router.post("/chat/confirm", response_model=AgentResponse)
async def chat_confirm(
    confirm_request: ConfirmRequest,
    container: ServiceContainer = Depends(get_container),
) -> AgentResponse:
    """Execute (or cancel) an operation previously returned as confirmation_required."""
    logger.info(
        "Confirmation received",
        extra={"operation": confirm_request.operation, "confirmed": confirm_request.confirmed},
    )
    return await container.pipeline.confirm(
        confirm_request.operation, confirm_request.params, confirm_request.confirmed
    )


@router.delete("/chat/context/{session_id}")
async def clear_context(
    session_id: str,
    container: ServiceContainer = Depends(get_container),
) -> dict[str, object]:
    await container.pipeline.clear(session_id)
    return {"success": True, "message": "对话上下文已清除"}
