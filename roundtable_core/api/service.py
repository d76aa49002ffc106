"""对外 API 服务模块。

提供会话级入口：start_session() 加载某个群聊已持久化的发言并构造全新的上下文，
返回 SessionHandle；调用方通过它发送消息、请求总结、清空历史。

SessionHandle 是编排核心的"调用方"：负责把每次运行追加的 Turn 写入存储、
更新会话列表预览，并阻止同一会话并发运行。编排核心本身不做任何持久化。
"""

import random
from typing import Iterable, List, Mapping, Optional, Union

from roundtable_core.config.settings import settings
from roundtable_core.domain.context import ConversationContext
from roundtable_core.domain.conversation import TurnStore
from roundtable_core.domain.exceptions import SessionBusyError, ValidationError
from roundtable_core.domain.models import ChatSession, Persona, RunResult
from roundtable_core.infrastructure.logging.logger import logger
from roundtable_core.infrastructure.storage.json_store import JsonTurnStore
from roundtable_core.orchestration.dispatcher import ResponseDispatcher
from roundtable_core.orchestration.events import EventChannel, RunEvent
from roundtable_core.orchestration.executor import TurnExecutor
from roundtable_core.orchestration.queue_builder import RandomSource, build_speech_queue
from roundtable_core.providers.registry import ProviderSettings


_store: Optional[TurnStore] = None


def get_default_store() -> TurnStore:
    """获取默认的 JSON 存储实例（单例）。"""
    global _store
    if _store is None:
        _store = JsonTurnStore(root=settings.storage_root)
    return _store


def resolve_roster(session: ChatSession, personas: Mapping[str, Persona]) -> List[Persona]:
    """把成员 ID 解析为角色；找不到对应角色的 ID 会被丢弃。"""

    roster: List[Persona] = []
    for pid in session.roster:
        persona = personas.get(pid)
        if persona is None:
            logger.warning("session.unknown_member", extra={"extra": {"chat_id": session.id, "persona_id": pid}})
            continue
        roster.append(persona)
    return roster


class SessionHandle:
    """单个群聊会话的操作句柄。"""

    def __init__(
        self,
        session: ChatSession,
        personas: Mapping[str, Persona],
        context: ConversationContext,
        store: TurnStore,
        provider_settings: ProviderSettings,
        dispatcher: Optional[ResponseDispatcher] = None,
        rng: Optional[RandomSource] = None,
        user_name: str = "用户",
    ):
        self.session = session
        self.personas = dict(personas)
        self.events = EventChannel()
        self.user_name = user_name
        self._context = context
        self._store = store
        self._provider_settings = provider_settings
        self._dispatcher = dispatcher or ResponseDispatcher()
        self._rng = rng
        self._busy = False
        self.events.subscribe(self._on_event)

    @property
    def chat_id(self) -> str:
        return self.session.id

    @property
    def context(self) -> ConversationContext:
        return self._context

    @property
    def busy(self) -> bool:
        return self._busy

    def send(self, text: str) -> RunResult:
        """发送一条用户消息，按会话的发言策略依次让各角色回复。

        Raises:
            ValidationError: 消息为空。
            SessionBusyError: 本会话已有运行在进行。
        """

        text = (text or "").strip()
        if not text:
            raise ValidationError(code="EMPTY_MESSAGE", message="message text is empty")
        self._acquire()
        try:
            roster = resolve_roster(self.session, self.personas)
            queue = build_speech_queue(
                roster,
                self.session.member_settings,
                self.session.policy,
                self.session.fixed_order,
                rng=self._rng,
            )
            logger.info(
                "session.queue_built",
                extra={"extra": {"chat_id": self.chat_id, "policy": self.session.policy, "queue_length": len(queue)}},
            )
            executor = TurnExecutor(self._context, self._dispatcher, self._provider_settings, self.events)
            result = executor.run(text, queue, user_name=self.user_name)
            self._store.append_turns(self.chat_id, result.persisted_turns)
            return result
        finally:
            self._busy = False

    def summarize(self) -> RunResult:
        """让会话指定的总结角色对全部讨论做一次总结。"""

        agent_id = self.session.summary_agent_id
        if not agent_id:
            raise ValidationError(code="NO_SUMMARY_AGENT", message=f"chat {self.chat_id} has no summary agent")
        agent = self.personas.get(agent_id)
        if agent is None:
            raise ValidationError(code="UNKNOWN_SUMMARY_AGENT", message=agent_id)
        self._acquire()
        try:
            executor = TurnExecutor(self._context, self._dispatcher, self._provider_settings, self.events)
            result = executor.summarize(agent)
            self._store.append_turns(self.chat_id, result.persisted_turns)
            return result
        finally:
            self._busy = False

    def suggest_chat_name(self) -> str:
        """根据聊天记录生成群聊名称（不会修改会话）。"""

        return self._dispatcher.generate_chat_name(self._context, self._provider_settings)

    def clear_history(self) -> None:
        if self._busy:
            raise SessionBusyError(code="SESSION_BUSY", message=self.chat_id)
        self._store.clear_turns(self.chat_id)
        self._context = ConversationContext()
        logger.info("session.cleared", extra={"extra": {"chat_id": self.chat_id}})

    def _acquire(self) -> None:
        if self._busy:
            raise SessionBusyError(code="SESSION_BUSY", message=f"chat {self.chat_id} is already running")
        self._busy = True

    def _on_event(self, event: RunEvent) -> None:
        if event.kind == "run_started" and event.turn is not None:
            self._store.update_preview(self.chat_id, event.turn.preview())
        elif event.kind == "turn_appended" and event.turn is not None:
            self._store.update_preview(self.chat_id, event.turn.preview())


def start_session(
    chat_id: str,
    personas: Union[Mapping[str, Persona], Iterable[Persona]],
    session: Optional[ChatSession] = None,
    *,
    store: Optional[TurnStore] = None,
    provider_settings: Optional[ProviderSettings] = None,
    dispatcher: Optional[ResponseDispatcher] = None,
    rng: Optional[RandomSource] = None,
) -> SessionHandle:
    """打开（或切换到）一个群聊会话。

    每次调用都会从存储重新加载历史发言并构造新的 ConversationContext，
    相当于显式的会话重置。

    Args:
        chat_id: 群聊 ID。
        personas: 全部可用角色（映射或列表）。
        session: 会话配置；为空时使用只有默认设置、没有成员的会话。
        store: 发言存储，默认 JsonTurnStore。
        provider_settings: 本会话使用的 Provider 配置，默认由全局 settings 生成。
        dispatcher: 响应分发器，测试时可注入桩实现。
        rng: 随机源，传给发言队列构建。
    """

    if session is None:
        session = ChatSession(id=chat_id)
    elif session.id != chat_id:
        raise ValidationError(code="CHAT_ID_MISMATCH", message=f"{chat_id} != {session.id}")
    directory = dict(personas) if isinstance(personas, Mapping) else {p.id: p for p in personas}
    store = store or get_default_store()
    history = store.load_turns(chat_id)
    logger.info("session.start", extra={"extra": {"chat_id": chat_id, "history": len(history)}})
    return SessionHandle(
        session=session,
        personas=directory,
        context=ConversationContext(history),
        store=store,
        provider_settings=provider_settings or ProviderSettings.from_settings(settings),
        dispatcher=dispatcher,
        rng=rng or random.SystemRandom(),
    )
