"""响应分发层。

给定一个角色、当前会话上下文和 Provider 配置，执行恰好一次生成调用，
返回规范化后的 Turn，或抛出 DispatchError。

两种调用约定由角色绑定的 Provider 决定：

- 原生约定（gemini）：整段上下文渲染为文本 + 角色系统指令 + temperature，
  模型名表明支持时可开启扩展推理。
- 通用约定（其余 Provider）：用户 Turn 映射为 user，角色 Turn 映射为 assistant，
  内容前缀发言者名字以区分多个 assistant；system 消息承载角色设定，
  触发文本作为最后一条 user 消息。

空回复不算错误，替换为占位文本。
"""

from typing import Any, Callable, Dict, List, Optional

from roundtable_core.domain.context import ConversationContext
from roundtable_core.domain.exceptions import DispatchError
from roundtable_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ChatResult,
    Persona,
    PromptRequest,
    Turn,
)
from roundtable_core.infrastructure.logging.logger import logger
from roundtable_core.prompts import (
    CHAT_NAME_HISTORY_LIMIT,
    chat_name_prompt,
    native_prompt,
    persona_system_instruction,
    prompt_turns,
    self_reference_instruction,
)
from roundtable_core.providers import create_provider
from roundtable_core.providers.base import ProviderClient
from roundtable_core.providers.registry import ProviderConfig, ProviderSettings, resolve_binding

NATIVE_TEMPERATURE = 0.8
CHAT_TEMPERATURE = 0.7

NATIVE_PLACEHOLDER = "(沉默)"
CHAT_PLACEHOLDER = "(无回复)"

DEFAULT_CHAT_NAME = "新群聊"
FALLBACK_CHAT_NAME = "AI 群聊"

ClientFactory = Callable[[str, ProviderConfig, float], ProviderClient]


def supports_thinking(model_id: str) -> bool:
    return "2.5" in model_id


class ResponseDispatcher:
    """把 (角色, 上下文) 翻译成一次后端调用和一个规范化结果。"""

    def __init__(self, client_factory: Optional[ClientFactory] = None):
        self._client_factory = client_factory or create_provider

    def generate(
        self,
        persona: Persona,
        trigger_text: str,
        context: ConversationContext,
        provider_settings: ProviderSettings,
        *,
        continuation: bool = True,
        log_ctx: Optional[Dict[str, Any]] = None,
    ) -> Turn:
        """为 persona 生成一条发言。

        Args:
            persona: 发言角色。
            trigger_text: 触发文本（用户消息或总结指令）。
            context: 当前上下文（包含本次运行中已经追加的 Turn）。
            provider_settings: 本次运行的 Provider 配置，只读。
            continuation: 是否在角色本轮已发言时追加连续发言指令。
            log_ctx: 附加到日志里的上下文字段（run_id 等）。

        Raises:
            DispatchError: ConfigurationError / NetworkError / ProviderError。
        """

        ctx = dict(log_ctx or {}, persona_id=persona.id)
        previous = [t.text for t in context.since_last_user(persona.id)] if continuation else []
        self_reference = self_reference_instruction(trigger_text, previous)

        try:
            provider_id, model_id, cfg = resolve_binding(persona, provider_settings)
            client = self._client_factory(provider_id, cfg, provider_settings.http_timeout)
            ctx.update(provider=provider_id, model=model_id, convention=client.convention)
            if client.convention == "native":
                req = self._native_request(persona, trigger_text, context, provider_id, model_id, self_reference, provider_settings)
                logger.info("dispatch.start", extra={"extra": {**ctx, "prompt_chars": len(req.prompt)}})
                result = client.generate(req)
                placeholder = NATIVE_PLACEHOLDER
            else:
                req = self._chat_request(persona, trigger_text, context, provider_id, model_id, self_reference)
                logger.info("dispatch.start", extra={"extra": {**ctx, "message_count": len(req.messages)}})
                result = client.chat(req)
                placeholder = CHAT_PLACEHOLDER
        except DispatchError as exc:
            logger.warning(
                "dispatch.failed",
                extra={"extra": {**ctx, "error_code": exc.code, "error_type": type(exc).__name__, "error": exc.message}},
            )
            raise

        text = self._normalize(result, placeholder)
        logger.info("dispatch.end", extra={"extra": {**ctx, "reply_chars": len(text)}})
        return Turn(
            speaker_id=persona.id,
            speaker_name=persona.name,
            text=text,
            meta={"provider": provider_id, "model": model_id},
        )

    def generate_chat_name(self, context: ConversationContext, provider_settings: ProviderSettings) -> str:
        """根据最近的聊天记录，用默认 Provider 生成 3-10 字的群聊名称。"""

        if not prompt_turns(context):
            return DEFAULT_CHAT_NAME
        provider_id, model_id, cfg = resolve_binding(None, provider_settings)
        client = self._client_factory(provider_id, cfg, provider_settings.http_timeout)
        prompt = chat_name_prompt(context.recent(CHAT_NAME_HISTORY_LIMIT))
        logger.info("chat_name.start", extra={"extra": {"provider": provider_id, "model": model_id}})
        if client.convention == "native":
            result = client.generate(PromptRequest(provider=provider_id, model=model_id, prompt=prompt))
        else:
            result = client.chat(
                ChatRequest(
                    provider=provider_id,
                    model=model_id,
                    messages=[ChatMessage(role="user", content=prompt)],
                    temperature=CHAT_TEMPERATURE,
                )
            )
        return (result.content or "").strip() or FALLBACK_CHAT_NAME

    # ---- 辅助方法 ----

    def _native_request(
        self,
        persona: Persona,
        trigger_text: str,
        context: ConversationContext,
        provider_id: str,
        model_id: str,
        self_reference: str,
        provider_settings: ProviderSettings,
    ) -> PromptRequest:
        thinking_budget = None
        if provider_settings.enable_thinking and supports_thinking(model_id):
            thinking_budget = provider_settings.thinking_budget
        return PromptRequest(
            provider=provider_id,
            model=model_id,
            prompt=native_prompt(persona, trigger_text, context, self_reference),
            system_instruction=persona_system_instruction(persona, with_style=False),
            temperature=NATIVE_TEMPERATURE,
            thinking_budget=thinking_budget,
        )

    def _chat_request(
        self,
        persona: Persona,
        trigger_text: str,
        context: ConversationContext,
        provider_id: str,
        model_id: str,
        self_reference: str,
    ) -> ChatRequest:
        messages: List[ChatMessage] = [ChatMessage(role="system", content=persona_system_instruction(persona))]
        messages.extend(self._history_messages(context))
        final = trigger_text + (f"\n\n{self_reference}" if self_reference else "")
        messages.append(ChatMessage(role="user", content=final))
        return ChatRequest(provider=provider_id, model=model_id, messages=messages, temperature=CHAT_TEMPERATURE)

    @staticmethod
    def _history_messages(context: ConversationContext) -> List[ChatMessage]:
        messages: List[ChatMessage] = []
        for turn in prompt_turns(context):
            if turn.is_user:
                messages.append(ChatMessage(role="user", content=f"User: {turn.text}"))
            else:
                messages.append(ChatMessage(role="assistant", content=f"{turn.speaker_name or 'AI'}: {turn.text}"))
        return messages

    @staticmethod
    def _normalize(result: ChatResult, placeholder: str) -> str:
        content = result.content
        if content is None or not str(content).strip():
            return placeholder
        return str(content)
