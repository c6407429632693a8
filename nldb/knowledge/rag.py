"""
Documentation RAG

Indexes the Markdown documentation tree into a chromadb collection and
answers questions grounded in the retrieved chunks.

Embeddings are cached on disk in ``{cache_dir}/vectors.json`` keyed by a
hash of every Markdown file's path and modification time, so restarts do
not re-embed an unchanged corpus.

Usage:
    index = DocumentationIndex(settings.docs, llm_settings=settings.llm)
    rag = RAGService(index, llm, PromptLoader())
    result = await rag.answer("如何使用 SDK 查询数据？")
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

import chromadb
from chromadb.config import Settings as ChromaSettings
from chromadb.utils.embedding_functions import OpenAIEmbeddingFunction
from langchain_text_splitters import RecursiveCharacterTextSplitter

from nldb.config import DocsSettings, LLMSettings
from nldb.llm.base import BaseLLMProvider
from nldb.prompts import PromptLoader

logger = logging.getLogger(__name__)

NO_DOCS_ANSWER = "抱歉，文档中没有找到相关信息。"
CACHE_FILE = "vectors.json"
DEFAULT_SEPARATORS = ["\n\n", "\n", "。", ". ", " ", ""]

EmbeddingFunction = Callable[[list[str]], Any]


class RetrievalError(Exception):
    """Raised when the documentation index cannot be built or queried."""


@dataclass
class DocChunk:
    """A retrieved piece of documentation."""

    content: str
    source: str
    title: str
    chunk: int = 0
    score: float = 0.0


def iter_markdown_files(root: Path) -> list[Path]:
    if not root.exists():
        return []
    return sorted(path for path in root.rglob("*.md") if path.is_file())


def compute_docs_hash(root: Path) -> str:
    """md5 over every Markdown file's path and modification time."""
    digest = hashlib.md5()
    for path in iter_markdown_files(root):
        mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=UTC).isoformat()
        digest.update(f"{path}{mtime}".encode())
    return digest.hexdigest()


def extract_title(path: Path, content: str) -> str:
    for line in content.splitlines():
        if line.startswith("# "):
            return line[2:].strip()
    return path.stem


class DocumentationIndex:
    """
    In-memory chromadb index over the documentation tree.

    An embedding function can be injected (tests, other providers);
    otherwise chromadb's OpenAIEmbeddingFunction is built from LLMSettings
    so any OpenAI-compatible embedding endpoint works.
    """

    def __init__(
        self,
        settings: DocsSettings,
        embedding_function: EmbeddingFunction | None = None,
        llm_settings: LLMSettings | None = None,
    ):
        self.settings = settings
        self.docs_path = Path(settings.path)
        self.cache_path = Path(settings.cache_dir) / CACHE_FILE
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            separators=DEFAULT_SEPARATORS,
        )
        self._embedding_function = embedding_function
        self._llm_settings = llm_settings
        self._client: Any = None
        self._collection: Any = None
        self._lock = asyncio.Lock()
        self.ready = False
        self.chunk_count = 0

    @property
    def embedding_function(self) -> EmbeddingFunction:
        if self._embedding_function is None:
            if self._llm_settings is None or not self._llm_settings.openai_api_key:
                raise RetrievalError("No embedding function configured (set LLM_OPENAI_API_KEY)")
            self._embedding_function = OpenAIEmbeddingFunction(
                api_key=self._llm_settings.openai_api_key,
                model_name=self._llm_settings.embedding_model,
                api_base=self._llm_settings.openai_base_url,
            )
        return self._embedding_function

    async def initialize(self, force: bool = False) -> int:
        """
        Build (or load from cache) the index.

        Returns:
            Number of indexed chunks

        Raises:
            RetrievalError: If embedding or indexing fails
        """
        async with self._lock:
            if self.ready and not force:
                return self.chunk_count
            try:
                self.chunk_count = await asyncio.to_thread(self._build, force)
            except RetrievalError:
                raise
            except Exception as e:
                logger.error(f"Failed to build documentation index: {e}")
                raise RetrievalError(f"Index build failed: {e}") from e
            self.ready = True
            return self.chunk_count

    def _build(self, force: bool) -> int:
        docs_hash = compute_docs_hash(self.docs_path)
        cache = None if force else self._load_cache()

        if cache and cache.get("docsHash") == docs_hash and cache.get("vectors"):
            vectors = cache["vectors"]
            logger.info(
                f"Documentation unchanged, loaded {len(vectors)} vectors from cache",
                extra={"cache": str(self.cache_path)},
            )
        else:
            vectors = self._embed_corpus()
            self._save_cache({"docsHash": docs_hash, "vectors": vectors})

        self._populate(vectors)
        return len(vectors)

    def _load_cache(self) -> dict[str, Any] | None:
        if not self.cache_path.exists():
            return None
        try:
            return json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable vector cache: {e}")
            return None

    def _save_cache(self, data: dict[str, Any]) -> None:
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.cache_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        logger.info("Vector cache saved", extra={"cache": str(self.cache_path)})

    def load_chunks(self) -> list[DocChunk]:
        chunks: list[DocChunk] = []
        for path in iter_markdown_files(self.docs_path):
            content = path.read_text(encoding="utf-8")
            source = path.relative_to(self.docs_path).as_posix()
            title = extract_title(path, content)
            for i, text in enumerate(self.splitter.split_text(content)):
                chunks.append(DocChunk(content=text, source=source, title=title, chunk=i))
        return chunks

    def _embed_corpus(self) -> list[dict[str, Any]]:
        chunks = self.load_chunks()
        logger.info(
            f"Embedding {len(chunks)} documentation chunks",
            extra={"docs_path": str(self.docs_path)},
        )
        vectors: list[dict[str, Any]] = []
        batch_size = self.settings.embedding_batch_size
        for start in range(0, len(chunks), batch_size):
            batch = chunks[start : start + batch_size]
            embeddings = self.embedding_function([chunk.content for chunk in batch])
            for chunk, embedding in zip(batch, embeddings, strict=True):
                vectors.append(
                    {
                        "content": chunk.content,
                        "metadata": {
                            "source": chunk.source,
                            "title": chunk.title,
                            "chunk": chunk.chunk,
                        },
                        "embedding": [float(value) for value in embedding],
                    }
                )
        return vectors

    def _populate(self, vectors: list[dict[str, Any]]) -> None:
        if self._client is None:
            self._client = chromadb.EphemeralClient(
                settings=ChromaSettings(anonymized_telemetry=False, allow_reset=True)
            )
        name = self.settings.collection_name
        existing = {getattr(c, "name", c) for c in self._client.list_collections()}
        if name in existing:
            self._client.delete_collection(name)
        self._collection = self._client.create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )
        if not vectors:
            return
        self._collection.add(
            ids=[f"{v['metadata']['source']}#{v['metadata']['chunk']}-{i}" for i, v in enumerate(vectors)],
            embeddings=[v["embedding"] for v in vectors],
            documents=[v["content"] for v in vectors],
            metadatas=[v["metadata"] for v in vectors],
        )

    async def retrieve(self, query: str, k: int = 3) -> list[DocChunk]:
        """Return the k chunks closest to the query, best first."""
        if not self.ready:
            await self.initialize()
        if not self.chunk_count:
            return []
        try:
            return await asyncio.to_thread(self._query, query, k)
        except Exception as e:
            raise RetrievalError(f"Search failed: {e}") from e

    def _query(self, query: str, k: int) -> list[DocChunk]:
        embedding = self.embedding_function([query])[0]
        results = self._collection.query(
            query_embeddings=[[float(value) for value in embedding]],
            n_results=min(k, self.chunk_count),
            include=["documents", "metadatas", "distances"],
        )
        chunks = []
        for content, metadata, distance in zip(
            results["documents"][0], results["metadatas"][0], results["distances"][0], strict=True
        ):
            chunks.append(
                DocChunk(
                    content=content,
                    source=metadata.get("source", "unknown"),
                    title=metadata.get("title", ""),
                    chunk=int(metadata.get("chunk", 0)),
                    score=1 - float(distance),
                )
            )
        return chunks


class RAGService:
    """Grounded documentation Q&A over a DocumentationIndex."""

    def __init__(
        self,
        index: DocumentationIndex,
        llm: BaseLLMProvider,
        prompts: PromptLoader,
        top_k: int = 5,
    ):
        self.index = index
        self.llm = llm
        self.prompts = prompts
        self.top_k = top_k

    async def retrieve(self, query: str, k: int | None = None) -> list[DocChunk]:
        return await self.index.retrieve(query, k or self.top_k)

    async def answer(self, question: str) -> dict[str, Any]:
        """
        Answer a question from the documentation.

        Returns:
            ``{"answer", "sources", "suggestions"}``; sources are the top 3
            chunks with their content truncated to 100 characters
        """
        docs = await self.retrieve(question, self.top_k)
        if not docs:
            return {"answer": NO_DOCS_ANSWER, "sources": [], "suggestions": []}

        prompt = self.prompts.render(
            "docs/answer.md",
            documents=[{"title": doc.source, "content": doc.content} for doc in docs],
            question=question,
        )
        answer = await self.llm.complete(prompt, temperature=0.3)

        logger.info(
            "Documentation answer generated",
            extra={"question": question[:100], "chunks": len(docs)},
        )
        return {
            "answer": answer,
            "sources": [
                {"title": doc.source, "content": doc.content[:100] + "...", "score": doc.score}
                for doc in docs[:3]
            ],
            "suggestions": [f"了解更多：{doc.title}" for doc in docs[:2] if doc.title],
        }

