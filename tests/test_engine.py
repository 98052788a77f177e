"""
Answer Engine Tests

Drives the full decision flow over in-memory collaborators:
cache probe, attachment handling, retrieval, the relevance gate, background
writeback, suggestions, session updates and cache writeback.
"""

import pytest

from kb_assistant.core.errors import (
    GenerationError,
    InvalidInputError,
    SessionPermissionError,
    VectorStoreNotReadyError,
)
from kb_assistant.engine.files import FileAttachment
from kb_assistant.engine.models import AnswerRequest
from kb_assistant.engine.resolver import EngineConfig
from kb_assistant.prompts import DEFAULT_IMAGE_PROMPT, TRUNCATION_MARKER

from conftest import Harness, at_similarity, unit

QUESTION = "How do I reset the device?"


async def _ask(harness, message=QUESTION, owner="alice", **kwargs):
    return await harness.engine.answer(owner, AnswerRequest(message=message, **kwargs))


class TestRelevanceGate:
    async def test_low_relevance_generates_freely_and_writes_back(self, harness):
        harness.provider.set_vector(QUESTION, unit(0))
        await harness.add_chunk("manual", "Unrelated content.", at_similarity(0.12))

        response = await _ask(harness)
        await harness.engine.wait_for_background_tasks()

        assert response.response_source == "ai_generated"
        assert response.relevance_score == pytest.approx(0.12)
        assert harness.provider.chat_calls[0]["context"] is None

        written = [r for i, r in harness.backend.records.items() if i.startswith("ai-qa-")]
        assert len(written) == 1
        meta = written[0]["metadata"]
        assert meta["source"] == "ai_generated"
        assert meta["type"] == "qa_pair"
        assert meta["fileName"] == "AI Generated Q&A"
        assert meta["question"] == QUESTION
        assert meta["answer"] == "Generated answer."
        assert meta["userId"] == "alice"
        assert meta["documentId"] == next(
            i for i in harness.backend.records if i.startswith("ai-qa-")
        )
        assert written[0]["content"] == f"Question: {QUESTION}\n\nAnswer: Generated answer."

    async def test_relevant_knowledge_answers_with_context(self, harness):
        harness.provider.set_vector(QUESTION, unit(0))
        await harness.add_chunk("manual", "Hold the power button for 10 seconds.", at_similarity(0.82))

        response = await _ask(harness)
        await harness.engine.wait_for_background_tasks()

        assert response.response_source == "knowledge_base"
        assert response.relevance_score == pytest.approx(0.82)
        context = harness.provider.chat_calls[0]["context"]
        assert context.startswith("Relevant information from the knowledge base:")
        assert "Hold the power button for 10 seconds." in context
        assert not any(i.startswith("ai-qa-") for i in harness.backend.records)

        source = response.sources[0]
        assert source.file_name == "manual.txt"
        assert source.metadata == {"chunkIndex": 0, "source": None}

    async def test_empty_store_generates_freely(self, harness):
        response = await _ask(harness)

        assert response.response_source == "ai_generated"
        assert response.sources == []
        assert response.relevance_score == 0.0

    async def test_long_source_previews_are_truncated(self, harness):
        harness.provider.set_vector(QUESTION, unit(0))
        await harness.add_chunk("manual", "x" * 500, at_similarity(0.9))

        response = await _ask(harness)

        assert response.sources[0].content == "x" * 200 + "..."

    async def test_writeback_failure_does_not_affect_response(self, harness):
        harness.backend.failing.add("add")

        response = await _ask(harness)
        await harness.engine.wait_for_background_tasks()

        assert response.answer == "Generated answer."
        assert harness.backend.records == {}


class TestSemanticCache:
    async def test_repeated_question_is_served_from_cache(self, harness):
        harness.provider.set_vector(QUESTION, unit(0))
        await harness.add_chunk("manual", "Hold the power button.", at_similarity(0.82))

        first = await _ask(harness)
        second = await _ask(harness, session_id=first.session_id)

        assert first.response_source == "knowledge_base"
        assert second.response_source == "cached"
        assert second.model_used == "cached"
        assert second.answer == first.answer
        assert second.cache_similarity == pytest.approx(1.0)
        assert [s.file_name for s in second.sources] == ["manual.txt"]
        assert second.sources[0].score == 1.0
        assert len(harness.provider.chat_calls) == 1

    async def test_retrieved_answers_are_cached_as_document_rag(self, harness):
        harness.provider.set_vector(QUESTION, unit(0))
        await harness.add_chunk("manual", "Hold the power button.", at_similarity(0.82))

        await _ask(harness)

        entry = harness.cache_repo.entries[0]
        assert entry.source == "document_rag"
        assert entry.document_sources == ["manual.txt"]
        assert entry.model == "gpt-4o-mini"

    async def test_cache_embedding_is_reused_for_search(self, harness):
        await _ask(harness)

        assert harness.provider.embed_calls[0] == [QUESTION]
        assert [QUESTION] not in harness.provider.embed_calls[1:]

    async def test_cache_hits_are_per_owner(self, harness):
        await _ask(harness, owner="alice")
        response = await _ask(harness, owner="bob")

        assert response.response_source != "cached"

    async def test_cache_store_failure_is_swallowed(self, harness):
        harness.cache_repo.fail_add = True

        response = await _ask(harness)

        assert response.answer == "Generated answer."


class TestAttachments:
    async def test_image_is_answered_by_vision_call(self, harness):
        attachment = FileAttachment("cat.png", "image/png", b"\x89PNG")

        response = await _ask(harness, message="", file=attachment)

        assert response.answer == "An image of a cat."
        assert response.response_source == "ai_generated"
        assert response.file_processed.type == "image"
        assert harness.provider.image_calls[0]["prompt"] == DEFAULT_IMAGE_PROMPT
        assert harness.provider.chat_calls == []
        assert harness.cache_repo.entries == []

        session = harness.session_repo.sessions[response.session_id]
        assert session.history[0].content == "[Image: cat.png] Analyze this image"

    async def test_document_content_is_prepended_and_truncated(self, harness):
        body = "a" * 20000
        attachment = FileAttachment("notes.txt", "text/plain", body.encode())

        response = await _ask(harness, message="Summarize", file=attachment)

        sent = harness.provider.chat_calls[0]["message"]
        assert sent.startswith("\n\n[User uploaded a file: notes.txt]")
        assert TRUNCATION_MARKER in sent
        assert sent.endswith("User's question about the file: Summarize")
        assert response.file_processed.type == "document"
        assert response.file_processed.extracted_length == 20000
        assert harness.cache_repo.entries == []

        session = harness.session_repo.sessions[response.session_id]
        assert session.history[0].content == "[File: notes.txt] Summarize"

    async def test_unsupported_attachment_is_rejected_before_session_creation(self, harness):
        attachment = FileAttachment("doc.pdf", "application/pdf", b"%PDF")

        with pytest.raises(InvalidInputError):
            await _ask(harness, file=attachment)
        assert harness.session_repo.sessions == {}


class TestSessionsAndValidation:
    async def test_empty_message_without_file_is_rejected(self, harness):
        with pytest.raises(InvalidInputError):
            await _ask(harness, message="   ")

    async def test_turns_are_appended_to_session(self, harness):
        response = await _ask(harness)

        history = harness.session_repo.sessions[response.session_id].history
        assert [(t.role, t.content) for t in history] == [
            ("user", QUESTION),
            ("assistant", "Generated answer."),
        ]

    async def test_history_is_sent_when_requested(self, harness):
        first = await _ask(harness, message="First question?")
        await _ask(harness, message="Second question?", session_id=first.session_id)
        await _ask(
            harness,
            message="Third question?",
            session_id=first.session_id,
            include_history=False,
        )

        assert len(harness.provider.chat_calls[1]["history"]) == 2
        assert harness.provider.chat_calls[2]["history"] == []

    async def test_foreign_session_is_forbidden(self, harness):
        first = await _ask(harness, owner="alice")

        with pytest.raises(SessionPermissionError):
            await _ask(harness, owner="mallory", message="Other?", session_id=first.session_id)

    async def test_cross_provider_model_falls_back_to_default(self, harness):
        response = await _ask(harness, model="claude-3-opus")

        assert response.model_used == "gpt-4o-mini"
        assert harness.provider.chat_calls[0]["model"] == "gpt-4o-mini"

    async def test_unready_vector_store_fails_the_request(self):
        harness = Harness()

        with pytest.raises(VectorStoreNotReadyError):
            await _ask(harness)

    async def test_empty_generation_is_an_error(self, harness):
        harness.provider.answer = "   "

        with pytest.raises(GenerationError):
            await _ask(harness)


class TestSuggestions:
    async def test_suggestions_are_attached(self, harness):
        response = await _ask(harness)

        assert response.suggested_questions == [
            "What is next?",
            "How does it work?",
            "Why does it matter?",
        ]

    async def test_suggestions_can_be_disabled(self):
        harness = Harness(EngineConfig(enable_suggestions=False))
        await harness.store.initialize()

        response = await _ask(harness)

        assert response.suggested_questions is None
        assert harness.provider.complete_calls == []

    async def test_suggestion_failure_is_ignored(self, harness):
        harness.provider.fail_complete = True

        response = await _ask(harness)

        assert response.suggested_questions is None


async def test_ingested_document_answers_then_caches(harness):
    text = "The device resets when the power button is held for ten seconds."
    harness.provider.set_vector(text, at_similarity(0.9))
    harness.provider.set_vector(QUESTION, unit(0))
    await harness.ingestion.ingest_text(text, file_name="manual.txt", document_id="manual")

    first = await _ask(harness)
    second = await _ask(harness)

    assert first.response_source == "knowledge_base"
    assert first.sources[0].file_name == "manual.txt"
    assert first.sources[0].metadata == {"chunkIndex": 0, "source": "text"}
    assert second.response_source == "cached"
