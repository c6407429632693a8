"""Documentation Q&A route."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from nldb.api.container import ServiceContainer
from nldb.api.dependencies import get_container
from nldb.knowledge import RetrievalError
from nldb.models.api import DocQARequest, DocQAResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/doc-qa/query", response_model=DocQAResponse)
async def doc_qa_query(
    doc_request: DocQARequest,
    container: ServiceContainer = Depends(get_container),
) -> DocQAResponse:
    question = doc_request.question.strip()
    if not question:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="问题不能为空")

    try:
        result = await container.rag.answer(question)
    except RetrievalError as e:
        logger.error("Documentation search failed", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"文档检索失败: {e}",
        ) from e
    return DocQAResponse.model_validate(result)
