"""Provider 与模型配置。

本模块集中维护各 Provider 的默认接入参数，并把"角色绑定"解析为
一次调用真正使用的 (provider, model, 凭证/地址)：

- provider：角色绑定的 Provider，未绑定时使用全局默认 Provider。
- model：角色绑定的模型 ID，未绑定时使用该 Provider 当前选中的模型。

ProviderSettings 是每次编排运行显式传入的只读值对象，
编排器与分发层不会读取全局 settings。"""

from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from roundtable_core.domain.exceptions import ConfigurationError
from roundtable_core.domain.models import Persona


@dataclass(frozen=True)
class ProviderConfig:
    """单个 Provider 的接入配置。"""

    api_key: Optional[str]
    base_url: str
    selected_model: str


@dataclass(frozen=True)
class ProviderDefaults:
    name: str
    base_url: str
    default_model: str


PROVIDER_DEFAULTS: Mapping[str, ProviderDefaults] = {
    "gemini": ProviderDefaults("Google Gemini", "https://generativelanguage.googleapis.com", "gemini-2.5-flash"),
    "deepseek": ProviderDefaults("DeepSeek", "https://api.deepseek.com", "deepseek-chat"),
    "qwen": ProviderDefaults("Qwen (通义千问)", "https://dashscope.aliyuncs.com/compatible-mode/v1", "qwen-plus"),
    "openai": ProviderDefaults("OpenAI", "https://api.openai.com/v1", "gpt-4o"),
}


@dataclass(frozen=True)
class ProviderSettings:
    """一次编排运行使用的全部 Provider 配置。"""

    providers: Mapping[str, ProviderConfig]
    default_provider: str = "gemini"
    enable_thinking: bool = False
    thinking_budget: int = 2048
    http_timeout: float = 60.0

    @classmethod
    def from_settings(cls, cfg) -> "ProviderSettings":
        """从全局配置构造值对象（只在会话入口调用一次）。"""

        providers = {
            pid: ProviderConfig(
                api_key=getattr(cfg, f"{pid}_api_key", None),
                base_url=getattr(cfg, f"{pid}_base_url", None) or defaults.base_url,
                selected_model=getattr(cfg, f"{pid}_model", None) or defaults.default_model,
            )
            for pid, defaults in PROVIDER_DEFAULTS.items()
        }
        return cls(
            providers=providers,
            default_provider=getattr(cfg, "default_provider", "gemini").lower(),
            enable_thinking=bool(getattr(cfg, "enable_thinking", False)),
            thinking_budget=int(getattr(cfg, "thinking_budget", 2048)),
            http_timeout=float(getattr(cfg, "http_timeout", 60.0)),
        )

    def get(self, provider_id: str) -> ProviderConfig:
        key = provider_id.lower()
        for k, cfg in self.providers.items():
            if k.lower() == key:
                return cfg
        raise ConfigurationError(
            code="UNKNOWN_PROVIDER",
            message=f"Configuration for {provider_id} not found",
            provider=provider_id,
        )


def resolve_binding(persona: Optional[Persona], provider_settings: ProviderSettings) -> Tuple[str, str, ProviderConfig]:
    """解析角色最终使用的 (provider_id, model_id, config)。

    persona 为 None 时（如生成群名等系统任务）直接使用默认 Provider。
    """

    binding = persona.binding if persona else None
    provider_id = ((binding and binding.provider) or provider_settings.default_provider).lower()
    cfg = provider_settings.get(provider_id)
    model_id = (binding and binding.model_id) or cfg.selected_model
    return provider_id, model_id, cfg
