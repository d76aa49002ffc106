"""逐轮执行器：编排核心。

每次编排运行对应一个 TurnExecutor 实例，状态为
idle -> running -> (completed | aborted)，终态后不可复用。

- run(text, queue): 用户消息触发；把用户 Turn 追加到上下文并记为基线，
  然后按队列顺序逐个调用分发层。
- summarize(agent): 总结变体；跳过发言队列构建，只调用指定的总结角色一次，
  触发文本固定为总结指令，使用完整上下文。

任一分发失败都会中断剩余队列：已成功的发言保留，追加一条系统失败提示，不重试、不跳过。
"""

import time
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4

from roundtable_core.domain.context import ConversationContext
from roundtable_core.domain.exceptions import ValidationError
from roundtable_core.domain.models import Persona, RunResult, RunStatus, SpeechQueueEntry, Turn
from roundtable_core.infrastructure.logging.logger import logger
from roundtable_core.orchestration.dispatcher import ResponseDispatcher
from roundtable_core.orchestration.events import EventChannel, RunEvent
from roundtable_core.orchestration.graph import RunState, build_run_graph
from roundtable_core.prompts import SUMMARY_INSTRUCTION
from roundtable_core.providers.registry import ProviderSettings


class TurnExecutor:
    def __init__(
        self,
        context: ConversationContext,
        dispatcher: ResponseDispatcher,
        provider_settings: ProviderSettings,
        events: Optional[EventChannel] = None,
        run_id: Optional[str] = None,
    ):
        self._context = context
        self._dispatcher = dispatcher
        self._provider_settings = provider_settings
        self._events = events or EventChannel()
        self._status: RunStatus = "idle"
        self.run_id = run_id or f"run-{uuid4().hex}"

    @property
    def status(self) -> RunStatus:
        return self._status

    @property
    def context(self) -> ConversationContext:
        return self._context

    def run(self, text: str, queue: Sequence[SpeechQueueEntry], user_name: str = "用户") -> RunResult:
        """处理一条用户消息。"""

        trigger = Turn.from_user(text, name=user_name)
        self._enter_running()
        self._context.append(trigger)
        self._context.mark_baseline()
        return self._execute(list(queue), text, trigger, summary=False)

    def summarize(self, agent: Persona) -> RunResult:
        """让总结角色对完整上下文做一次总结。"""

        self._enter_running()
        self._context.mark_baseline()
        return self._execute([SpeechQueueEntry(persona=agent, position=0)], SUMMARY_INSTRUCTION, None, summary=True)

    def _enter_running(self) -> None:
        if self._status != "idle":
            raise ValidationError(
                code="EXECUTOR_NOT_IDLE",
                message=f"executor {self.run_id} is {self._status}, create a new one per run",
            )
        self._status = "running"

    def _execute(
        self,
        queue: List[SpeechQueueEntry],
        trigger_text: str,
        trigger: Optional[Turn],
        summary: bool,
    ) -> RunResult:
        start_time = time.time()
        log_ctx: Dict[str, Any] = {"run_id": self.run_id, "queue_length": len(queue), "summary": summary}
        logger.info("run.start", extra={"extra": log_ctx})
        self._events.emit(RunEvent(kind="run_started", run_id=self.run_id, turn=trigger))

        graph = build_run_graph(self._dispatcher, self._context, self._provider_settings, self._events)
        state: RunState = {
            "run_id": self.run_id,
            "queue": queue,
            "position": 0,
            "trigger_text": trigger_text,
            "summary": summary,
            "status": "running",
            "error": None,
        }
        final = graph.invoke(state, config={"recursion_limit": len(queue) + 10})

        self._status = "aborted" if final.get("status") == "aborted" else "completed"
        suffix = self._context.suffix()
        error = final.get("error")
        if self._status == "aborted":
            self._events.emit(RunEvent(kind="run_aborted", run_id=self.run_id, turns=list(suffix), error=error))
        else:
            self._events.emit(RunEvent(kind="run_completed", run_id=self.run_id, turns=list(suffix)))

        logger.info(
            "run.end",
            extra={
                "extra": {
                    **log_ctx,
                    "status": self._status,
                    "appended": len(suffix),
                    "elapsed_seconds": round(time.time() - start_time, 2),
                }
            },
        )
        return RunResult(status=self._status, trigger=trigger, turns=list(suffix), error=error)
