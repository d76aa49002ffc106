"""统一的群聊领域模型与 Provider 请求模型。

本模块定义了编排核心在各组件之间共享的标准数据结构：

- Persona: 一个 AI 角色（身份、行为设定、绑定的 Provider/模型）。
- ChatSession: 群聊会话（成员名单、成员设置、发言顺序策略、总结角色）。
- Turn: 一条发言（用户、角色或系统提示）。
- SpeechQueueEntry / RunResult: 发言队列条目与一次编排的结果。
- ChatRequest / PromptRequest / ChatResult: 发给 Provider 的两种请求形态及统一响应。

所有 Provider 适配器都只依赖这里的请求/响应模型，
并负责在各自的 API JSON 和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4


# 用户与系统提示的固定发言者 ID
USER_ID = "user-me"
SYSTEM_ID = "system"

SUMMARY_PREFIX = "【会议总结】"

# 发言顺序策略：固定顺序 / 随机顺序 / 自由讨论
OrderingPolicy = Literal["fixed", "random", "auto_discussion"]
ORDERING_POLICIES = ("fixed", "random", "auto_discussion")

RunStatus = Literal["idle", "running", "completed", "aborted"]

# LLM 消息角色类型（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProviderBinding:
    """角色绑定的 Provider 与模型；为空时回退到全局默认配置。"""

    provider: Optional[str] = None
    model_id: Optional[str] = None


@dataclass(frozen=True)
class Persona:
    """一个 AI 角色。编排运行期间不可变。

    - id / name / role: 身份信息，name 用于群聊中区分发言者。
    - system_instruction: 自然语言的性格与行为设定。
    - binding: 绑定的 Provider 与模型。
    """

    id: str
    name: str
    role: str
    system_instruction: str
    binding: ProviderBinding = field(default_factory=ProviderBinding)


@dataclass
class MemberSettings:
    reply_count: int = 1


@dataclass
class ChatSession:
    """群聊会话配置，由会话设置编辑修改，编排核心只读。

    - roster: 成员角色 ID 列表（顺序即名单顺序）。
    - member_settings: 以角色 ID 为键的成员设置。
    - policy: 发言顺序策略。
    - fixed_order: 仅 "fixed" 策略使用的显式发言顺序。
    - summary_agent_id: 负责总结的角色 ID（可选，不参与常规队列）。
    """

    id: str
    roster: List[str] = field(default_factory=list)
    member_settings: Dict[str, MemberSettings] = field(default_factory=dict)
    policy: OrderingPolicy = "fixed"
    fixed_order: List[str] = field(default_factory=list)
    summary_agent_id: Optional[str] = None
    name: str = ""


@dataclass(frozen=True)
class Turn:
    """会话上下文中的一条发言。

    is_system 标记系统生成的提示（例如失败提示），与正常发言区分；
    meta 保存附加信息（provider、model、summary 标记等），不参与 prompt 拼装。
    """

    speaker_id: str
    speaker_name: str
    text: str
    timestamp: datetime = field(default_factory=_utcnow)
    is_system: bool = False
    id: str = field(default_factory=lambda: f"t-{uuid4().hex}")
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_user(self) -> bool:
        return self.speaker_id == USER_ID

    @property
    def is_summary(self) -> bool:
        return bool(self.meta.get("summary"))

    def preview(self) -> str:
        """会话列表中"最后一条消息"的展示文本。"""

        if self.is_summary:
            body = self.text[len(SUMMARY_PREFIX):].lstrip("\n") if self.text.startswith(SUMMARY_PREFIX) else self.text
            return f"{SUMMARY_PREFIX}{body[:20]}..."
        return self.text

    @classmethod
    def from_user(cls, text: str, name: str = "用户") -> "Turn":
        return cls(speaker_id=USER_ID, speaker_name=name, text=text)

    @classmethod
    def system_notice(cls, text: str) -> "Turn":
        return cls(speaker_id=SYSTEM_ID, speaker_name="系统", text=text, is_system=True)


@dataclass(frozen=True)
class SpeechQueueEntry:
    """发言队列中的一项：已解析的角色与其在队列中的位置（从 0 开始）。"""

    persona: Persona
    position: int


@dataclass
class RunResult:
    """一次编排运行的终态报告。

    - status: "completed" 或 "aborted"。
    - trigger: 本次运行的用户消息（总结运行时为 None）。
    - turns: 本次运行追加到上下文的全部 Turn（不含 trigger）。
    - error: 中断时的错误摘要，仅用于日志与诊断。
    """

    status: RunStatus
    trigger: Optional[Turn]
    turns: List[Turn]
    error: Optional[str] = None

    @property
    def persisted_turns(self) -> List[Turn]:
        """调用方需要持久化的全部 Turn（含用户消息）。"""

        return ([self.trigger] if self.trigger else []) + list(self.turns)


@dataclass
class ChatMessage:
    """通用 chat/completions 调用中的一条消息。"""

    role: Role
    content: str


@dataclass
class ChatRequest:
    """通用约定的请求：带角色标签的消息列表。

    Provider 适配层负责把本结构转换成 {model, messages, temperature} 请求体。
    """

    provider: str
    model: str
    messages: List[ChatMessage]
    temperature: float = 0.7


@dataclass
class PromptRequest:
    """原生约定的请求：整段渲染好的上下文文本 + 系统指令。

    thinking_budget 不为空时开启扩展推理。
    """

    provider: str
    model: str
    prompt: str
    system_instruction: Optional[str] = None
    temperature: float = 0.8
    thinking_budget: Optional[int] = None


@dataclass
class ChatResult:
    """一次生成调用的统一结果。

    - content: 模型返回的文本；为 None 或空串时由分发层替换为占位文本。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    content: Optional[str]
    raw: Optional[dict] = None
