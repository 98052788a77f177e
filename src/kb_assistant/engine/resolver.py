"""
Answer Resolution Engine

Decides, per question, which answer source to use and runs the chosen path.

Decision Flow
-------------
1. Validate input, load (or create) the session, resolve the model.
2. No attachment: probe the semantic cache. A hit returns immediately with
   responseSource="cached".
3. Attachment: images are answered by one vision call (never cached).
   Document text is prepended to the question as extra context.
4. Embed the (possibly enhanced) question and search the vector store.
5. Relevance gate on the best score:
   - >= threshold: answer with the retrieved chunks as context
     ("knowledge_base").
   - below: answer without context ("ai_generated") and write the Q&A
     pair back into the vector store in the background.
6. Optional follow-up suggestions.
7. Append the turn to the session history.
8. Store the answer in the semantic cache (no attachment only).

Failure policy
--------------
Embedding, search and generation failures abort the request. Cache,
suggestion and background writeback failures are logged and never affect
the response.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from ..cache.semantic_cache import CacheLookup, SemanticCache
from ..config import Settings
from ..core.errors import GenerationError, InvalidInputError
from ..embeddings.embedder import Embedder
from ..embeddings.models import ChunkMetadata, DocumentChunk, SearchResult
from ..knowledge.store import VectorStore
from ..llm.base import ChatOptions, ChatTurn, LLMProvider
from ..llm.router import ModelRouter
from ..prompts import (
    DEFAULT_IMAGE_PROMPT,
    QA_WRITEBACK_TEMPLATE,
    build_knowledge_context,
)
from ..sessions.manager import SessionManager
from ..sessions.store import SessionRecord
from .files import ProcessedFile, TextExtractor, build_file_question, process_attachment
from .models import AnswerRequest, AnswerResponse, FileInfo, SourcePreview
from .suggestions import generate_suggestions

logger = logging.getLogger("kb.engine")

PREVIEW_CHARS = 200
WRITEBACK_FILE_NAME = "AI Generated Q&A"

# Cache provenance differs from the response tag for retrieved answers
CACHE_SOURCE = {
    "knowledge_base": "document_rag",
    "ai_generated": "ai_generated",
}


@dataclass(frozen=True)
class EngineConfig:
    relevance_threshold: float = 0.3
    top_k: int = 5
    enable_suggestions: bool = True
    file_context_max_chars: int = 15000
    temperature: float = 0.7
    max_tokens: int = 2048

    @classmethod
    def from_settings(cls, cfg: Settings) -> "EngineConfig":
        return cls(
            relevance_threshold=cfg.relevance_threshold,
            top_k=cfg.top_k,
            enable_suggestions=cfg.enable_suggestions,
            file_context_max_chars=cfg.file_context_max_chars,
            temperature=cfg.chat_temperature,
            max_tokens=cfg.chat_max_tokens,
        )


def _truncate(text: str, limit: int = PREVIEW_CHARS) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def _unique_file_names(results: Sequence[SearchResult]) -> List[str]:
    names: List[str] = []
    for result in results:
        name = result.metadata.get("fileName")
        if name and name not in names:
            names.append(name)
    return names


class AnswerEngine:
    def __init__(
        self,
        provider: LLMProvider,
        embedder: Embedder,
        vector_store: VectorStore,
        cache: SemanticCache,
        sessions: SessionManager,
        router: ModelRouter,
        config: Optional[EngineConfig] = None,
        extractor: Optional[TextExtractor] = None,
    ) -> None:
        self._provider = provider
        self._embedder = embedder
        self._vector_store = vector_store
        self._cache = cache
        self._sessions = sessions
        self._router = router
        self.config = config or EngineConfig()
        self._extractor = extractor
        self._background_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def answer(self, owner: str, request: AnswerRequest) -> AnswerResponse:
        """
        Resolve one question for `owner`.

        Raises
        ------
        InvalidInputError
            Empty message without an attachment, or unusable attachment.
        SessionNotFoundError, SessionPermissionError
            Bad `session_id`.
        EmbeddingError, GenerationError
            Mandatory pipeline step failed.
        VectorStoreNotReadyError, VectorStoreError
            Knowledge base search failed.
        """
        message = request.message.strip()
        if not message and request.file is None:
            raise InvalidInputError("Message cannot be empty.")

        processed: Optional[ProcessedFile] = None
        if request.file is not None:
            processed = process_attachment(request.file, self._extractor)

        # -------------------------------------------------------------
        # 1. Session + model
        # -------------------------------------------------------------
        session = await self._sessions.get_or_create(request.session_id, owner)
        model = self._router.resolve(request.model)
        top_k = request.top_k or self.config.top_k
        history = list(session.history) if request.include_history else []

        query_embedding: Optional[List[float]] = None
        question = message
        session_question = message
        file_info: Optional[FileInfo] = None

        if processed is None:
            # ---------------------------------------------------------
            # 2. Cache probe
            # ---------------------------------------------------------
            lookup = await self._cache.lookup(message, owner)
            if lookup.found:
                return await self._respond_from_cache(session, owner, message, lookup)
            query_embedding = lookup.embedding
        else:
            # ---------------------------------------------------------
            # 3. File branch
            # ---------------------------------------------------------
            logger.info(
                "Processing attachment %s (%s, %d bytes)",
                processed.file_name,
                processed.mime_type,
                processed.size,
            )
            if processed.is_image:
                return await self._answer_image(session, owner, message, processed, model)

            question = build_file_question(
                processed.file_name,
                processed.text or "",
                message,
                self.config.file_context_max_chars,
            )
            session_question = f"[File: {processed.file_name}] {message}".rstrip()
            file_info = FileInfo(
                file_name=processed.file_name,
                mime_type=processed.mime_type,
                size=processed.size,
                type="document",
                extracted_length=len(processed.text or ""),
            )

        # -------------------------------------------------------------
        # 4. Vector search
        # -------------------------------------------------------------
        if query_embedding is None:
            query_embedding = await self._embedder.embed(question)

        results = await self._vector_store.search(query_embedding, top_k)
        max_score = max((r.score for r in results), default=0.0)

        # -------------------------------------------------------------
        # 5. Relevance gate + generation
        # -------------------------------------------------------------
        if results and max_score >= self.config.relevance_threshold:
            logger.info(
                "Answering from knowledge base (best score %.4f >= %.2f, model %s)",
                max_score,
                self.config.relevance_threshold,
                model,
            )
            context = build_knowledge_context(r.content for r in results)
            answer = await self._generate(question, context, history, model)
            response_source = "knowledge_base"
        else:
            logger.info(
                "No relevant knowledge (best score %.4f < %.2f); generating freely with %s",
                max_score,
                self.config.relevance_threshold,
                model,
            )
            answer = await self._generate(question, None, history, model)
            response_source = "ai_generated"
            if message:
                self._schedule_writeback(message, answer, owner)

        # -------------------------------------------------------------
        # 6. Suggestions
        # -------------------------------------------------------------
        suggestions: List[str] = []
        if self.config.enable_suggestions:
            suggestions = await generate_suggestions(
                self._provider,
                message or question,
                answer,
                [r.file_name for r in results],
                model,
            )

        # -------------------------------------------------------------
        # 7. Session update
        # -------------------------------------------------------------
        await self._sessions.append(
            session.id,
            owner,
            [
                ChatTurn(role="user", content=session_question),
                ChatTurn(role="assistant", content=answer),
            ],
        )

        # -------------------------------------------------------------
        # 8. Cache writeback (attachments are never cached)
        # -------------------------------------------------------------
        if request.file is None:
            await self._cache.store(
                owner=owner,
                question=message,
                answer=answer,
                source=CACHE_SOURCE[response_source],
                model=model,
                document_sources=_unique_file_names(results),
                embedding=query_embedding,
            )

        return AnswerResponse(
            session_id=session.id,
            message=message,
            answer=answer,
            sources=[self._preview(r) for r in results],
            response_source=response_source,
            relevance_score=max_score,
            model_used=model,
            suggested_questions=suggestions or None,
            file_processed=file_info,
            timestamp=datetime.now(timezone.utc),
        )

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending knowledge-base writebacks (shutdown and tests)."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Terminal paths
    # ------------------------------------------------------------------

    async def _respond_from_cache(
        self,
        session: SessionRecord,
        owner: str,
        message: str,
        lookup: CacheLookup,
    ) -> AnswerResponse:
        entry = lookup.entry
        answer = lookup.answer or ""

        await self._sessions.append(
            session.id,
            owner,
            [
                ChatTurn(role="user", content=message),
                ChatTurn(role="assistant", content=answer),
            ],
        )

        names = entry.document_sources if entry and entry.document_sources else []
        sources = [
            SourcePreview(content="", file_name=name, score=1.0, metadata={})
            for name in names
        ]
        return AnswerResponse(
            session_id=session.id,
            message=message,
            answer=answer,
            sources=sources,
            response_source="cached",
            relevance_score=lookup.similarity,
            cache_similarity=lookup.similarity,
            model_used="cached",
            timestamp=datetime.now(timezone.utc),
        )

    async def _answer_image(
        self,
        session: SessionRecord,
        owner: str,
        message: str,
        processed: ProcessedFile,
        model: str,
    ) -> AnswerResponse:
        prompt = message or DEFAULT_IMAGE_PROMPT
        analysis = await self._provider.analyze_image(
            processed.image or b"",
            processed.mime_type,
            prompt,
            model,
        )
        if not analysis.strip():
            raise GenerationError("Image analysis returned an empty answer.")

        shown_message = message or "Analyze this image"
        await self._sessions.append(
            session.id,
            owner,
            [
                ChatTurn(role="user", content=f"[Image: {processed.file_name}] {shown_message}"),
                ChatTurn(role="assistant", content=analysis),
            ],
        )

        return AnswerResponse(
            session_id=session.id,
            message=shown_message,
            answer=analysis,
            sources=[],
            response_source="ai_generated",
            model_used=model,
            suggested_questions=[],
            file_processed=FileInfo(
                file_name=processed.file_name,
                mime_type=processed.mime_type,
                size=processed.size,
                type="image",
            ),
            timestamp=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _generate(
        self,
        question: str,
        context: Optional[str],
        history: List[ChatTurn],
        model: str,
    ) -> str:
        answer = await self._provider.chat(
            question,
            context=context,
            history=history or None,
            options=ChatOptions(
                temperature=self.config.temperature,
                max_tokens=self.config.max_tokens,
            ),
            model=model,
        )
        if not answer.strip():
            raise GenerationError(f"Model '{model}' returned an empty answer.")
        return answer

    @staticmethod
    def _preview(result: SearchResult) -> SourcePreview:
        return SourcePreview(
            content=_truncate(result.content),
            file_name=result.file_name,
            score=result.score,
            metadata={
                "chunkIndex": result.metadata.get("chunkIndex"),
                "source": result.metadata.get("source"),
            },
        )

    def _schedule_writeback(self, question: str, answer: str, owner: str) -> None:
        task = asyncio.create_task(self._write_back_answer(question, answer, owner))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _write_back_answer(self, question: str, answer: str, owner: str) -> None:
        """Persist a freely generated Q&A pair as a retrievable chunk."""
        document_id = f"ai-qa-{uuid.uuid4()}"
        content = QA_WRITEBACK_TEMPLATE.format(question=question, answer=answer)
        extra: Dict[str, Any] = {
            "type": "qa_pair",
            "question": question,
            "answer": answer,
            "userId": owner,
            "createdAt": datetime.now(timezone.utc).isoformat(),
        }

        try:
            chunk = DocumentChunk(
                id=document_id,
                content=content,
                metadata=ChunkMetadata(
                    document_id=document_id,
                    file_name=WRITEBACK_FILE_NAME,
                    chunk_index=0,
                    total_chunks=1,
                    source="ai_generated",
                    **extra,
                ),
            )
            vector = await self._embedder.embed(content)
            await self._vector_store.upsert([chunk], [vector])
        except Exception:
            logger.exception("Failed to save AI-generated answer to knowledge base")
            return

        logger.info("Saved AI-generated answer to knowledge base as %s", document_id)
