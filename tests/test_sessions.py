"""
Session Manager Tests

Ownership checks and history truncation.
"""

import pytest

from kb_assistant.core.errors import SessionNotFoundError, SessionPermissionError
from kb_assistant.llm.base import ChatTurn
from kb_assistant.sessions.manager import SessionManager

from conftest import InMemorySessionRepository


@pytest.fixture
def manager():
    return SessionManager(InMemorySessionRepository(), history_limit=10)


def _turns(start: int, count: int):
    return [
        ChatTurn(role="user" if i % 2 == 0 else "assistant", content=f"message {i}")
        for i in range(start, start + count)
    ]


async def test_create_starts_empty(manager):
    session = await manager.create("alice")

    assert session.owner == "alice"
    assert session.history == []


async def test_history_is_capped_at_limit(manager):
    session = await manager.create("alice")

    await manager.append(session.id, "alice", _turns(0, 10))
    updated = await manager.append(session.id, "alice", _turns(10, 2))

    assert len(updated.history) == 10
    assert updated.history[0].content == "message 2"
    assert updated.history[-1].content == "message 11"


async def test_other_owner_is_forbidden(manager):
    session = await manager.create("alice")

    with pytest.raises(SessionPermissionError):
        await manager.get(session.id, "mallory")
    with pytest.raises(SessionPermissionError):
        await manager.append(session.id, "mallory", _turns(0, 2))
    with pytest.raises(SessionPermissionError):
        await manager.delete(session.id, "mallory")


async def test_unknown_session_is_not_found(manager):
    with pytest.raises(SessionNotFoundError):
        await manager.get("does-not-exist", "alice")


async def test_get_or_create(manager):
    created = await manager.get_or_create(None, "alice")
    fetched = await manager.get_or_create(created.id, "alice")

    assert fetched.id == created.id


async def test_clear_and_delete(manager):
    session = await manager.create("alice")
    await manager.append(session.id, "alice", _turns(0, 4))

    cleared = await manager.clear(session.id, "alice")
    assert cleared.history == []

    await manager.delete(session.id, "alice")
    with pytest.raises(SessionNotFoundError):
        await manager.get(session.id, "alice")


async def test_list_for_owner_most_recent_first(manager):
    older = await manager.create("alice")
    newer = await manager.create("alice")
    await manager.create("bob")
    await manager.append(older.id, "alice", _turns(0, 2))

    sessions = await manager.list_for_owner("alice")

    assert [s.id for s in sessions] == [older.id, newer.id]
