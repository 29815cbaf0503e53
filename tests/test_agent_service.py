"""
Tests for the agent orchestration flow, with fake model and context clients.
"""

from __future__ import annotations

import pytest

from edge_agent.core.errors import ModelResponseError, RateLimitExceeded
from edge_agent.models.schemas import AgentRequest
from edge_agent.services.agent_service import AgentService
from edge_agent.services.conversation_store import ConversationStore
from edge_agent.services.rate_limiter import RateLimiter


@pytest.fixture
def service(session_factory, kv, clock, model_client, context_client) -> AgentService:
    return AgentService(
        rate_limiter=RateLimiter(kv, limit=2, clock=clock),
        conversations=ConversationStore(session_factory, max_history_length=50, clock=clock),
        llm=model_client,
        context=context_client,
        model_history_messages=2,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_turn_stores_both_messages(service, session_factory, clock, context_client):
    response, limit = await service.handle_message(
        AgentRequest(message="Tell me about Python"), client_id="user:u1", request_id="req-1"
    )

    assert response.response == "TEST_BOT_REPLY"
    assert len(response.conversation_id) == 32
    assert response.metadata.request_id == "req-1"
    assert response.metadata.has_context is True
    assert response.metadata.message_count == 2
    assert limit.remaining == 1

    history = await ConversationStore(session_factory, clock=clock).get_history(response.conversation_id)
    assert [(m.role, m.content) for m in history] == [
        ("user", "Tell me about Python"),
        ("assistant", "TEST_BOT_REPLY"),
    ]
    assert context_client.queries == ["python testing"]
    assert context_client.stored[0][0] == "Conversation: Tell me about Python -> TEST_BOT_REPLY"


@pytest.mark.asyncio
async def test_model_sees_prior_turns_without_current_message(service, model_client, clock):
    first, _ = await service.handle_message(
        AgentRequest(message="one"), client_id="user:u1", request_id="r1"
    )
    clock.advance(1)
    await service.handle_message(
        AgentRequest(message="two", conversation_id=first.conversation_id),
        client_id="user:u1",
        request_id="r2",
    )

    message, history, context = model_client.calls[-1]
    assert message == "two"
    # Capped at model_history_messages=2, oldest first
    assert [m.content for m in history] == ["one", "TEST_BOT_REPLY"]
    assert context == "Python is a programming language."


@pytest.mark.asyncio
async def test_blocked_caller_stores_nothing(service, store):
    for i in range(2):
        await service.handle_message(AgentRequest(message=f"m{i}"), client_id="ip:1.2.3.4", request_id="r")

    with pytest.raises(RateLimitExceeded) as excinfo:
        await service.handle_message(
            AgentRequest(message="blocked", conversation_id="c-blocked"),
            client_id="ip:1.2.3.4",
            request_id="r",
        )
    assert excinfo.value.result.blocked is True
    assert await store.get_history("c-blocked") == []


@pytest.mark.asyncio
async def test_context_failure_does_not_abort(service, context_client):
    context_client.fail_search = True
    context_client.fail_store = True

    response, _ = await service.handle_message(
        AgentRequest(message="hello"), client_id="user:u1", request_id="r"
    )
    assert response.response == "TEST_BOT_REPLY"
    assert response.metadata.has_context is False


@pytest.mark.asyncio
async def test_disabled_context_skips_enrichment(service, context_client, model_client):
    context_client.enabled = False

    response, _ = await service.handle_message(
        AgentRequest(message="hello"), client_id="user:u1", request_id="r"
    )
    assert response.metadata.has_context is False
    assert context_client.queries == []
    assert model_client.calls[-1][2] is None


@pytest.mark.asyncio
async def test_model_failure_propagates(service, model_client, store):
    model_client.fail = True

    with pytest.raises(ModelResponseError):
        await service.handle_message(
            AgentRequest(message="hello", conversation_id="c1"), client_id="user:u1", request_id="r"
        )
    # The user turn was stored before the model was called
    assert [m.role for m in await store.get_history("c1")] == ["user"]


@pytest.mark.asyncio
async def test_summarize(service, store):
    assert await service.summarize("never-seen") == "No conversation to summarize."

    await store.append("c1", "user", "hi")
    assert await service.summarize("c1") == "TEST_SUMMARY of 1 messages"
