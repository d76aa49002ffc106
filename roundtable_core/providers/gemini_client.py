"""Gemini 原生 Provider 适配器。

与 chat/completions 约定不同，原生调用不接收消息列表，而是：
- contents: 一整段渲染好的上下文文本；
- systemInstruction: 角色的系统指令；
- generationConfig: temperature 以及可选的 thinkingConfig。

- URL: {base_url}/v1beta/models/{model}:generateContent
- 认证: x-goog-api-key: <api_key>
"""

from typing import Any, Dict, List

import httpx

from roundtable_core.domain.exceptions import (
    ConfigurationError,
    NetworkError,
    ProviderError,
    RateLimitError,
)
from roundtable_core.domain.models import ChatResult, PromptRequest
from roundtable_core.providers.base import api_error
from roundtable_core.providers.registry import ProviderConfig


class GeminiClient:
    """Gemini generateContent 客户端实现。"""

    name = "gemini"
    convention = "native"

    def __init__(self, config: ProviderConfig, timeout: float = 60.0):
        self._config = config
        self._timeout = timeout

    def generate(self, req: PromptRequest) -> ChatResult:
        if not self._config.api_key:
            # 配置缺失在任何网络请求之前报出
            raise ConfigurationError(
                code="MISSING_API_KEY",
                message="Gemini API Key is missing. Please check Settings > Model Access.",
                provider=self.name,
            )
        base = (self._config.base_url or "https://generativelanguage.googleapis.com").rstrip("/")
        payload = self._build_payload(req)
        try:
            with httpx.Client(timeout=self._timeout, trust_env=False) as client:
                resp = client.post(
                    f"{base}/v1beta/models/{req.model}:generateContent",
                    json=payload,
                    headers={
                        "x-goog-api-key": self._config.api_key,
                        "Content-Type": "application/json",
                    },
                )
        except httpx.RequestError as e:
            raise NetworkError(code="NETWORK_ERROR", message=str(e), provider=self.name)
        if resp.status_code == 429:
            raise RateLimitError(code="RATE_LIMIT", message="Gemini rate limit", http_status=429, provider=self.name)
        if not 200 <= resp.status_code < 300:
            raise api_error(self.name, resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(code="INVALID_RESPONSE", message=f"non-JSON body: {e}", provider=self.name)
        return ChatResult(provider=self.name, model=req.model, content=self._extract_text(data), raw=data)

    def _build_payload(self, req: PromptRequest) -> Dict[str, Any]:
        generation_config: Dict[str, Any] = {"temperature": req.temperature}
        if req.thinking_budget:
            generation_config["thinkingConfig"] = {"thinkingBudget": req.thinking_budget}
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": req.prompt}]}],
            "generationConfig": generation_config,
        }
        if req.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": req.system_instruction}]}
        return payload

    def _extract_text(self, data: Any) -> str:
        """拼接 candidates[0].content.parts[*].text。

        没有 candidates 时视为无法解析；候选存在但没有文本（例如被截断）返回空串。
        推理模型返回的 thought 片段不计入正文。
        """

        if not isinstance(data, dict):
            raise ProviderError(code="INVALID_RESPONSE", message="response is not an object", provider=self.name)
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise ProviderError(code="INVALID_RESPONSE", message="response has no candidates", provider=self.name)
        first = candidates[0]
        if not isinstance(first, dict):
            raise ProviderError(code="INVALID_RESPONSE", message="candidate is not an object", provider=self.name)
        content = first.get("content") or {}
        if not isinstance(content, dict):
            raise ProviderError(code="INVALID_RESPONSE", message="candidate content is not an object", provider=self.name)
        parts = content.get("parts") or []
        if not isinstance(parts, list):
            raise ProviderError(code="INVALID_RESPONSE", message="content parts is not a list", provider=self.name)
        texts: List[str] = []
        for part in parts:
            if not isinstance(part, dict):
                raise ProviderError(code="INVALID_RESPONSE", message="content part is not an object", provider=self.name)
            if part.get("thought"):
                continue
            text = part.get("text")
            if isinstance(text, str) and text:
                texts.append(text)
        return "".join(texts)
