"""OpenAI 兼容 Provider 适配器（DeepSeek / Qwen / OpenAI 等）。

本模块负责：

1. 接收统一的 ChatRequest。
2. 将其转换为 {base_url}/chat/completions 的 HTTP 请求。
3. 调用 HTTP 接口并处理网络/API 异常。
4. 将响应 JSON 解析为统一的 ChatResult。

- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>
"""

from typing import Any, Dict

import httpx

from roundtable_core.domain.exceptions import (
    ConfigurationError,
    NetworkError,
    ProviderError,
    RateLimitError,
)
from roundtable_core.domain.models import ChatMessage, ChatRequest, ChatResult
from roundtable_core.providers.base import api_error
from roundtable_core.providers.registry import ProviderConfig


class OpenAICompatibleClient:
    """通用 chat/completions 约定的客户端实现。"""

    convention = "chat"

    def __init__(self, name: str, config: ProviderConfig, timeout: float = 60.0):
        self.name = name
        self._config = config
        self._timeout = timeout

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用。

        缺少 base_url 或 api_key 时在发起网络请求前抛出 ConfigurationError。
        """

        if not self._config.base_url:
            raise ConfigurationError(
                code="MISSING_BASE_URL", message=f"{self.name} base URL not set", provider=self.name
            )
        if not self._config.api_key:
            raise ConfigurationError(
                code="MISSING_API_KEY", message=f"缺少 API Key ({self._config.base_url})", provider=self.name
            )
        payload = self._build_payload(req)
        url = f"{self._config.base_url.rstrip('/')}/chat/completions"
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(
                    url,
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._config.api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            # DNS 失败、连接超时等
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message=f"{self.name} rate limit", http_status=429, provider=self.name)
        if not 200 <= resp.status_code < 300:
            raise api_error(self.name, resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(code="INVALID_RESPONSE", message=f"non-JSON body: {e}", provider=self.name)
        return self._parse_response(data, req)

    def _build_payload(self, req: ChatRequest) -> dict:
        """将 ChatRequest 转成 chat/completions 所需的请求 JSON。"""

        return {
            "model": req.model,
            "messages": [self._message_to_payload(m) for m in req.messages],
            "temperature": req.temperature,
            "stream": False,
        }

    def _parse_response(self, data: Any, req: ChatRequest) -> ChatResult:
        """解析 choices[0].message.content。

        choices 或 message 缺失视为响应不可解析；content 为空则原样返回 None，
        由分发层替换为占位文本。
        """

        choices = data.get("choices") if isinstance(data, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise ProviderError(code="INVALID_RESPONSE", message="response has no choices", provider=self.name)
        message = choices[0].get("message")
        if not isinstance(message, dict):
            raise ProviderError(code="INVALID_RESPONSE", message="choices[0] has no message", provider=self.name)
        return ChatResult(provider=self.name, model=req.model, content=message.get("content"), raw=data)

    @staticmethod
    def _message_to_payload(message: ChatMessage) -> Dict[str, Any]:
        return {"role": message.role, "content": message.content}

