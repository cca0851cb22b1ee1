"""Semantic lookup over the advisory knowledge base.

Embeddings are computed once per process. The embedded corpus is built
in a fresh list and published with a single assignment, so concurrent
cold callers may duplicate work but never see a partial corpus.
Documents whose embedding failed are never ranked.
"""

import asyncio
from datetime import datetime, timezone
from uuid import uuid4

import numpy as np

from advisor_engine.context.models import KnowledgeCategory, KnowledgeDocument, ScoredDocument
from advisor_engine.context.prompt_blocks import KNOWLEDGE_BASE_FOOTER, KNOWLEDGE_BASE_HEADER
from advisor_engine.core.embeddings import Embedder
from advisor_engine.core.logging import get_logger
from advisor_engine.services.knowledge_documents import SEED_DOCUMENTS

logger = get_logger(__name__)


def cosine_similarity(a: list[float] | np.ndarray, b: list[float] | np.ndarray) -> float:
    """dot(a, b) / (|a| * |b|); 0.0 when either vector has zero length."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class KnowledgeBase:
    """In-memory corpus of advisory documents with embedding search."""

    def __init__(self, embedder: Embedder, documents: list[KnowledgeDocument] | None = None):
        self.embedder = embedder
        self._documents: list[KnowledgeDocument] = list(
            documents if documents is not None else SEED_DOCUMENTS
        )
        self._embedded: list[KnowledgeDocument] | None = None

    @property
    def embeddings_ready(self) -> bool:
        return self._embedded is not None

    async def _embed_document(self, doc: KnowledgeDocument) -> KnowledgeDocument:
        if doc.embedding is not None:
            return doc
        try:
            vector = await self.embedder.embed(doc.embedding_text)
        except Exception as e:
            logger.error(f"Failed to generate embedding for {doc.id}: {e}")
            return doc
        return doc.model_copy(update={"embedding": vector})

    async def generate_embeddings(self) -> None:
        """
        Embed every document once. Later calls are no-ops.

        Nothing is published when every document failed, so the next
        lookup tries again. Documents added while the pass was running
        are already embedded and join the published corpus.
        """
        if self._embedded is not None:
            return

        documents = self._documents
        logger.info(f"Generating embeddings for {len(documents)} knowledge documents")
        embedded = list(await asyncio.gather(*(self._embed_document(doc) for doc in documents)))

        if self._embedded is not None:
            return

        ready = sum(1 for doc in embedded if doc.embedding is not None)
        if documents and ready == 0:
            logger.warning("No knowledge document could be embedded, will retry on next lookup")
            return

        seen = {doc.id for doc in embedded}
        embedded.extend(doc for doc in self._documents if doc.id not in seen)
        self._embedded = embedded
        logger.info(f"Knowledge base embeddings ready: {ready}/{len(documents)} documents")

    async def rank(self, query: str, k: int = 3) -> list[ScoredDocument]:
        """Top documents by cosine similarity to the query, highest first."""
        if k <= 0:
            return []

        # Query first: an embedding outage fails fast instead of re-embedding the corpus
        query_embedding = await self.embedder.embed(query)
        await self.generate_embeddings()

        scored = [
            ScoredDocument(
                document=doc,
                similarity=cosine_similarity(query_embedding, doc.embedding),
            )
            for doc in (self._embedded or [])
            if doc.embedding is not None
        ]
        scored.sort(key=lambda item: item.similarity, reverse=True)
        return scored[:k]

    async def find_relevant(self, query: str, k: int = 3) -> list[KnowledgeDocument]:
        return [item.document for item in await self.rank(query, k)]

    async def get_context_for_query(self, query: str, user_role: str, k: int = 2) -> str:
        """Labelled prompt block with the best matches, or "" when none."""
        documents = await self.find_relevant(query, k)
        if not documents:
            return ""

        body = "\n\n".join(f"**{doc.title}**\n{doc.content}" for doc in documents)
        return "\n\n".join([
            KNOWLEDGE_BASE_HEADER,
            body,
            KNOWLEDGE_BASE_FOOTER.format(role=user_role),
        ])

    # ── Catalogue lookups ─────────────────────────────────────────

    def _current(self) -> list[KnowledgeDocument]:
        return list(self._embedded if self._embedded is not None else self._documents)

    def search_by_category(self, category: KnowledgeCategory) -> list[KnowledgeDocument]:
        return [doc for doc in self._current() if doc.category == category]

    def search_by_tags(self, tags: list[str]) -> list[KnowledgeDocument]:
        wanted = {tag.lower() for tag in tags}
        return [doc for doc in self._current() if wanted.intersection(doc.tags)]

    def get_document(self, document_id: str) -> KnowledgeDocument | None:
        return next((doc for doc in self._current() if doc.id == document_id), None)

    def list_documents(self) -> list[KnowledgeDocument]:
        return self._current()

    def categories(self) -> list[str]:
        return list(dict.fromkeys(doc.category for doc in self._current()))

    async def add_document(
        self,
        title: str,
        content: str,
        category: KnowledgeCategory,
        tags: list[str] | None = None,
    ) -> KnowledgeDocument:
        """Add a document, embedding it on the way in."""
        doc = KnowledgeDocument(
            id=f"doc-{uuid4().hex[:12]}",
            title=title,
            content=content,
            category=category,
            tags=[tag.lower() for tag in tags or []],
            last_updated=datetime.now(timezone.utc),
        )
        doc = await self._embed_document(doc)

        self._documents = [*self._documents, doc]
        if self._embedded is not None:
            self._embedded = [*self._embedded, doc]
        logger.info(f"Added knowledge document {doc.id} ({category})")
        return doc
