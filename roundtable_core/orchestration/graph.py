"""单次编排运行的 LangGraph 状态机。

节点：
- speak: 取出队列中当前位置的角色，调用分发层，成功则追加 Turn 并前进一位，
  失败则把状态置为 aborted。
- complete: 队列消费完毕。
- abort: 追加一条系统失败提示后结束，剩余队列直接丢弃。

队列为空时入口直接路由到 complete。节点严格串行执行，
每个角色看到的上下文都包含同一次运行中此前所有角色的发言。
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, TypedDict

from langgraph.graph import END, START, StateGraph
from langgraph.graph.state import CompiledStateGraph

from roundtable_core.domain.context import ConversationContext
from roundtable_core.domain.exceptions import DispatchError
from roundtable_core.domain.models import SUMMARY_PREFIX, SpeechQueueEntry, Turn
from roundtable_core.infrastructure.logging.logger import logger
from roundtable_core.orchestration.dispatcher import ResponseDispatcher
from roundtable_core.orchestration.events import EventChannel, RunEvent
from roundtable_core.providers.registry import ProviderSettings

FAILURE_NOTICE = "连接异常，会议中断。"


class RunState(TypedDict, total=False):
    """State shared across run graph nodes."""

    run_id: str
    queue: List[SpeechQueueEntry]
    position: int
    trigger_text: str
    summary: bool
    status: str
    error: Optional[str]


def as_summary(turn: Turn) -> Turn:
    return replace(turn, text=f"{SUMMARY_PREFIX}\n{turn.text}", meta={**turn.meta, "summary": True})


def speak_node(
    state: RunState,
    dispatcher: ResponseDispatcher,
    context: ConversationContext,
    provider_settings: ProviderSettings,
    events: EventChannel,
) -> RunState:
    entry = state["queue"][state["position"]]
    persona = entry.persona
    events.emit(RunEvent(kind="turn_starting", run_id=state["run_id"], persona_name=persona.name))
    try:
        turn = dispatcher.generate(
            persona,
            state["trigger_text"],
            context,
            provider_settings,
            continuation=not state.get("summary"),
            log_ctx={"run_id": state["run_id"], "position": entry.position},
        )
    except DispatchError as exc:
        state["status"] = "aborted"
        state["error"] = f"{persona.name}: [{exc.code}] {exc.message}"
        return state
    if state.get("summary"):
        turn = as_summary(turn)
    context.append(turn)
    events.emit(RunEvent(kind="turn_appended", run_id=state["run_id"], turn=turn))
    state["position"] = state["position"] + 1
    return state


def complete_node(state: RunState) -> RunState:
    state["status"] = "completed"
    return state


def abort_node(state: RunState, context: ConversationContext) -> RunState:
    context.append(Turn.system_notice(FAILURE_NOTICE))
    logger.warning("run.abort", extra={"extra": {"run_id": state["run_id"], "position": state["position"], "error": state.get("error")}})
    return state


def entry_router(state: RunState) -> str:
    return "speak" if state["queue"] else "complete"


def speak_router(state: RunState) -> str:
    if state.get("status") == "aborted":
        return "abort"
    if state["position"] >= len(state["queue"]):
        return "complete"
    return "speak"


def build_run_graph(
    dispatcher: ResponseDispatcher,
    context: ConversationContext,
    provider_settings: ProviderSettings,
    events: EventChannel,
) -> CompiledStateGraph:
    graph = StateGraph(RunState)
    graph.add_node("speak", lambda s: speak_node(s, dispatcher, context, provider_settings, events))
    graph.add_node("complete", complete_node)
    graph.add_node("abort", lambda s: abort_node(s, context))
    graph.add_conditional_edges(START, entry_router, {"speak": "speak", "complete": "complete"})
    graph.add_conditional_edges("speak", speak_router, {"speak": "speak", "complete": "complete", "abort": "abort"})
    graph.add_edge("complete", END)
    graph.add_edge("abort", END)
    return graph.compile()
