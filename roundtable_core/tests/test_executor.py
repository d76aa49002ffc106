import pytest

from roundtable_core.domain.context import ConversationContext
from roundtable_core.domain.exceptions import NetworkError, ProviderError, ValidationError
from roundtable_core.domain.models import SUMMARY_PREFIX, SpeechQueueEntry, Turn
from roundtable_core.orchestration.dispatcher import ResponseDispatcher
from roundtable_core.orchestration.events import EventChannel
from roundtable_core.orchestration.executor import TurnExecutor
from roundtable_core.orchestration.graph import FAILURE_NOTICE
from roundtable_core.prompts import SUMMARY_INSTRUCTION
from roundtable_core.tests.helpers import FakeDispatcher, FakeResponse, fake_httpx_client, make_persona


def _queue(*ids):
    return [SpeechQueueEntry(persona=make_persona(pid), position=i) for i, pid in enumerate(ids)]


def _recorder(channel):
    seen = []
    channel.subscribe(seen.append)
    return seen


def test_successful_run_appends_one_turn_per_entry(provider_settings):
    history = [Turn.from_user("旧消息"), Turn(speaker_id="a", speaker_name="name-a", text="旧回复")]
    ctx = ConversationContext(history)
    dispatcher = FakeDispatcher()
    executor = TurnExecutor(ctx, dispatcher, provider_settings)

    result = executor.run("新问题", _queue("a", "b", "a"))

    assert executor.status == "completed"
    assert result.status == "completed"
    assert result.error is None
    assert [t.speaker_id for t in result.turns] == ["a", "b", "a"]
    assert len(ctx) == len(history) + 1 + 3
    assert list(ctx)[:2] == history
    assert list(ctx)[2] is result.trigger
    assert result.trigger.text == "新问题"
    assert result.persisted_turns == [result.trigger] + result.turns


def test_each_speaker_sees_previous_turns_of_the_run(provider_settings):
    ctx = ConversationContext([Turn.from_user("旧消息")])
    dispatcher = FakeDispatcher()
    TurnExecutor(ctx, dispatcher, provider_settings).run("q", _queue("a", "b", "c"))

    assert [c["context_len"] for c in dispatcher.calls] == [2, 3, 4]
    assert all(c["trigger"] == "q" for c in dispatcher.calls)
    assert all(c["continuation"] for c in dispatcher.calls)


def test_failure_aborts_remaining_queue(provider_settings):
    ctx = ConversationContext()
    dispatcher = FakeDispatcher({1: NetworkError(code="NETWORK_ERROR", message="timeout")})
    executor = TurnExecutor(ctx, dispatcher, provider_settings)

    result = executor.run("q", _queue("a", "b", "c", "d"))

    assert executor.status == "aborted"
    assert result.status == "aborted"
    assert [c["persona"] for c in dispatcher.calls] == ["a", "b"]
    assert len(result.turns) == 2
    assert result.turns[0].speaker_id == "a"
    notice = result.turns[-1]
    assert notice.is_system
    assert notice.text == FAILURE_NOTICE
    assert "NETWORK_ERROR" in result.error
    assert "name-b" in result.error
    assert ctx.last is notice


def test_first_speaker_failure_leaves_only_notice(provider_settings):
    ctx = ConversationContext()
    dispatcher = FakeDispatcher({0: ProviderError(code="API_ERROR", message="boom")})
    result = TurnExecutor(ctx, dispatcher, provider_settings).run("q", _queue("a", "b"))

    assert [t.is_system for t in result.turns] == [True]
    assert len(dispatcher.calls) == 1


def test_empty_queue_completes_without_dispatching(provider_settings):
    ctx = ConversationContext()
    dispatcher = FakeDispatcher()
    result = TurnExecutor(ctx, dispatcher, provider_settings).run("q", [])

    assert result.status == "completed"
    assert result.turns == []
    assert dispatcher.calls == []
    assert [t.text for t in ctx] == ["q"]


def test_event_sequence(provider_settings):
    channel = EventChannel()
    seen = _recorder(channel)
    executor = TurnExecutor(ConversationContext(), FakeDispatcher(), provider_settings, events=channel)
    executor.run("q", _queue("a", "b"))

    kinds = [e.kind for e in seen]
    assert kinds == [
        "run_started",
        "turn_starting",
        "turn_appended",
        "turn_starting",
        "turn_appended",
        "run_completed",
    ]
    assert seen[0].turn.text == "q"
    assert seen[1].persona_name == "name-a"
    assert len(seen[-1].turns) == 2
    assert all(e.run_id == executor.run_id for e in seen)


def test_abort_event_carries_notice(provider_settings):
    channel = EventChannel()
    seen = _recorder(channel)
    dispatcher = FakeDispatcher({0: ProviderError(code="API_ERROR", message="boom")})
    TurnExecutor(ConversationContext(), dispatcher, provider_settings, events=channel).run("q", _queue("a"))

    assert [e.kind for e in seen] == ["run_started", "turn_starting", "run_aborted"]
    assert seen[-1].turns[-1].text == FAILURE_NOTICE
    assert "API_ERROR" in seen[-1].error


def test_summarize_uses_instruction_and_prefix(provider_settings):
    ctx = ConversationContext([Turn.from_user("q"), Turn(speaker_id="a", speaker_name="name-a", text="观点")])
    dispatcher = FakeDispatcher({0: "大家的观点是..."})
    agent = make_persona("s")
    result = TurnExecutor(ctx, dispatcher, provider_settings).summarize(agent)

    assert result.status == "completed"
    assert result.trigger is None
    assert dispatcher.calls == [{"persona": "s", "trigger": SUMMARY_INSTRUCTION, "context_len": 2, "continuation": False}]
    summary = result.turns[0]
    assert summary.text.startswith(SUMMARY_PREFIX)
    assert summary.is_summary
    assert summary.preview().startswith(SUMMARY_PREFIX)
    assert len(ctx) == 3
    assert result.persisted_turns == [summary]


def test_summary_failure_appends_notice(provider_settings):
    ctx = ConversationContext([Turn.from_user("q")])
    dispatcher = FakeDispatcher({0: NetworkError(code="NETWORK_ERROR", message="down")})
    result = TurnExecutor(ctx, dispatcher, provider_settings).summarize(make_persona("s"))

    assert result.status == "aborted"
    assert [t.text for t in result.turns] == [FAILURE_NOTICE]


def test_executor_is_single_use(provider_settings):
    executor = TurnExecutor(ConversationContext(), FakeDispatcher(), provider_settings)
    assert executor.status == "idle"
    executor.run("q", _queue("a"))
    with pytest.raises(ValidationError) as exc_info:
        executor.run("again", _queue("a"))
    assert exc_info.value.code == "EXECUTOR_NOT_IDLE"
    with pytest.raises(ValidationError):
        executor.summarize(make_persona("s"))


def test_empty_queue_emits_only_run_boundaries(provider_settings):
    channel = EventChannel()
    seen = _recorder(channel)
    TurnExecutor(ConversationContext(), FakeDispatcher(), provider_settings, events=channel).run("q", [])
    assert [e.kind for e in seen] == ["run_started", "run_completed"]
    assert seen[-1].turns == []


def test_malformed_native_payload_aborts_run(monkeypatch, provider_settings):
    monkeypatch.setattr(
        "httpx.Client",
        fake_httpx_client([FakeResponse({"candidates": [{"content": "text"}]})], {}),
    )
    channel = EventChannel()
    seen = _recorder(channel)
    ctx = ConversationContext()
    executor = TurnExecutor(ctx, ResponseDispatcher(), provider_settings, events=channel)

    result = executor.run("q", [SpeechQueueEntry(persona=make_persona("g", provider="gemini"), position=0)])

    assert executor.status == "aborted"
    assert [t.text for t in ctx] == ["q", FAILURE_NOTICE]
    assert "INVALID_RESPONSE" in result.error
    assert seen[-1].kind == "run_aborted"
