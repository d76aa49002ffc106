"""Provider 抽象接口。

分发层不直接依赖具体厂商的 HTTP 细节，而是依赖此协议：

- 原生约定（native）：一次调用接收整段渲染好的上下文文本和系统指令，见 generate()。
- 通用约定（chat）：OpenAI 兼容的 chat/completions 消息列表，见 chat()。

每个客户端只实现与自身 convention 对应的方法。
"""

from typing import Literal, Protocol

from roundtable_core.domain.exceptions import ProviderError
from roundtable_core.domain.models import ChatRequest, ChatResult, PromptRequest

Convention = Literal["native", "chat"]


class ProviderClient(Protocol):
    """LLM Provider 客户端协议。

    - name: Provider 名称，用于日志。
    - convention: 调用约定，分发层据此决定构造哪种请求。
    """

    name: str
    convention: Convention

    def generate(self, req: PromptRequest) -> ChatResult:
        ...

    def chat(self, req: ChatRequest) -> ChatResult:
        ...


def api_error(provider: str, resp) -> ProviderError:
    """把非 2xx 响应统一包装为 ProviderError。"""

    return ProviderError(
        code="API_ERROR",
        message=f"API Error {resp.status_code}: {resp.text}",
        http_status=resp.status_code,
        provider=provider,
    )
