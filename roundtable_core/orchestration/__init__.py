"""对话编排核心：发言队列构建、逐轮执行器与响应分发层。"""

from roundtable_core.orchestration.dispatcher import ResponseDispatcher
from roundtable_core.orchestration.events import EventChannel, RunEvent
from roundtable_core.orchestration.executor import TurnExecutor
from roundtable_core.orchestration.queue_builder import build_speech_queue

__all__ = ["EventChannel", "ResponseDispatcher", "RunEvent", "TurnExecutor", "build_speech_queue"]
