"""
Service Container

Builds every long-lived service once at startup and hands them to the
API routes and the CLI. Nothing here is a module-level singleton: tests
build their own container with fake clients and LLMs.

Usage:
    container = build_container(settings)
    response = await container.pipeline.run("查询 users 表", {"envId": "env-1"})
    await container.aclose()
"""

import logging
from dataclasses import dataclass

import httpx

from nldb.agents import (
    DataExplorerAgent,
    DocAssistantAgent,
    DocumentManagerAgent,
    FieldMutatorAgent,
    GeneralChatAgent,
    MySQLToolAgent,
    OperationAgent,
    ToolAgent,
)
from nldb.agents.classifier import create_classifier
from nldb.agents.react import ReActRunner
from nldb.clients import AuthSession, BaseDocumentStore, CapiClient, CapiDocumentStore, MySQLClient
from nldb.config import Settings, get_settings
from nldb.knowledge import DocumentationIndex, RAGService
from nldb.knowledge.rag import EmbeddingFunction
from nldb.llm.base import BaseLLMProvider
from nldb.llm.factory import LLMProviderFactory
from nldb.pipeline import AgentRouter, ChatPipeline, ContextManager
from nldb.prompts import PromptLoader
from nldb.storage import StorageAdapter, UserPreferenceStore, create_storage
from nldb.tools import ToolCategory, ToolExecutor, initialize_tools

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Everything a request handler needs."""

    settings: Settings
    session: AuthSession
    capi: CapiClient
    document_store: BaseDocumentStore
    mysql: MySQLClient
    storage: StorageAdapter
    preferences: UserPreferenceStore
    index: DocumentationIndex
    rag: RAGService
    pipeline: ChatPipeline

    async def aclose(self) -> None:
        await self.capi.aclose()
        await self.storage.aclose()
        logger.info("Service container closed")


def build_container(
    settings: Settings | None = None,
    *,
    llm: BaseLLMProvider | None = None,
    classifier_llm: BaseLLMProvider | None = None,
    embedding_function: EmbeddingFunction | None = None,
    document_store: BaseDocumentStore | None = None,
    mysql: MySQLClient | None = None,
    storage: StorageAdapter | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ServiceContainer:
    """
    Wire clients, agents and the chat pipeline.

    Every keyword argument replaces the service that would otherwise be
    created from settings.
    """
    settings = settings or get_settings()
    prompts = PromptLoader()

    session = AuthSession(cookie=settings.tcb.cookie, env_id=settings.tcb.env_id)
    capi = CapiClient(settings.tcb, session, http_client)
    document_store = document_store or CapiDocumentStore(capi)
    mysql = mysql or MySQLClient(capi)
    storage = storage or create_storage(settings.storage)
    preferences = UserPreferenceStore(storage)

    agent_llm = llm or LLMProviderFactory.create_agent_provider("agent", settings.llm)
    if settings.classifier.mode == "llm":
        classifier_llm = (
            classifier_llm
            or llm
            or LLMProviderFactory.create_agent_provider("classifier", settings.llm, "mini")
        )
    else:
        classifier_llm = None

    index = DocumentationIndex(settings.docs, embedding_function, settings.llm)
    rag = RAGService(index, agent_llm, prompts, top_k=settings.docs.top_k)

    initialize_tools()
    executor = ToolExecutor()
    services = {"document_store": document_store, "mysql": mysql}
    agent_settings = settings.agent

    operation_agent = OperationAgent(
        rag, agent_llm, document_store, prompts, top_k=agent_settings.fallback_top_k
    )
    tool_agent = ToolAgent(
        ReActRunner(
            agent_llm,
            executor,
            prompts,
            "agents/react_flexdb.md",
            ToolCategory.DOCUMENT,
            max_iterations=agent_settings.max_iterations,
        ),
        services,
        fallback=operation_agent,
        preview_rows=agent_settings.preview_rows,
    )
    mysql_tool_agent = MySQLToolAgent(
        ReActRunner(
            agent_llm,
            executor,
            prompts,
            "agents/react_mysql.md",
            ToolCategory.MYSQL,
            max_iterations=agent_settings.max_iterations,
        ),
        services,
        preview_rows=agent_settings.preview_rows,
    )

    router = AgentRouter(
        agent_settings,
        document_store,
        data_explorer=DataExplorerAgent(
            document_store, mysql, default_limit=agent_settings.default_limit
        ),
        document_manager=DocumentManagerAgent(document_store),
        field_mutator=FieldMutatorAgent(document_store, mysql),
        doc_assistant=DocAssistantAgent(rag),
        general_chat=GeneralChatAgent(agent_llm, prompts),
        tool_agent=tool_agent,
        mysql_tool_agent=mysql_tool_agent,
        executor=executor,
        tool_services=services,
    )
    context_manager = ContextManager(
        storage,
        preferences=preferences,
        default_env_id=settings.tcb.env_id,
        history_size=settings.storage.history_size,
        context_window=settings.storage.context_window,
    )
    classifier = create_classifier(settings, classifier_llm, prompts)
    pipeline = ChatPipeline(classifier, router, context_manager)

    logger.info(
        "Service container built",
        extra={
            "classifier_mode": settings.classifier.mode,
            "storage_type": settings.storage.type,
            "docs_path": str(settings.docs.path),
        },
    )
    return ServiceContainer(
        settings=settings,
        session=session,
        capi=capi,
        document_store=document_store,
        mysql=mysql,
        storage=storage,
        preferences=preferences,
        index=index,
        rag=rag,
        pipeline=pipeline,
    )
