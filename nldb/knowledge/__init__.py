"""Documentation retrieval and grounded answering."""

from nldb.knowledge.rag import DocChunk, DocumentationIndex, RAGService, RetrievalError

__all__ = ["DocChunk", "DocumentationIndex", "RAGService", "RetrievalError"]
