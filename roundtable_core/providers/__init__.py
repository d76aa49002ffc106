"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 默认配置与角色绑定解析 (registry)。
- 提供两种调用约定的具体实现：Gemini 原生 (gemini_client)
  与 OpenAI 兼容的 chat/completions (openai_client)。
"""

from roundtable_core.domain.exceptions import ConfigurationError
from roundtable_core.providers.base import ProviderClient
from roundtable_core.providers.gemini_client import GeminiClient
from roundtable_core.providers.openai_client import OpenAICompatibleClient
from roundtable_core.providers.registry import ProviderConfig

# 唯一使用原生调用约定的 Provider
NATIVE_PROVIDER = "gemini"


def create_provider(provider_id: str, config: ProviderConfig, timeout: float = 60.0) -> ProviderClient:
    """根据 Provider ID 创建客户端；gemini 走原生约定，其余走 chat/completions。"""

    if not provider_id:
        raise ConfigurationError(code="UNKNOWN_PROVIDER", message="provider id is empty")
    provider_name = provider_id.lower()
    if provider_name == NATIVE_PROVIDER:
        return GeminiClient(config, timeout=timeout)
    return OpenAICompatibleClient(provider_name, config, timeout=timeout)
