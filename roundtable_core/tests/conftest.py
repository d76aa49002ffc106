import pytest

from roundtable_core.providers.registry import ProviderConfig, ProviderSettings


@pytest.fixture
def provider_settings() -> ProviderSettings:
    return ProviderSettings(
        providers={
            "gemini": ProviderConfig(api_key="gemini-key-123", base_url="https://gemini.test", selected_model="gemini-2.5-flash"),
            "deepseek": ProviderConfig(api_key="deepseek-key-1", base_url="https://deepseek.test", selected_model="deepseek-chat"),
            "openai": ProviderConfig(api_key=None, base_url="https://openai.test/v1", selected_model="gpt-4o"),
        },
        default_provider="deepseek",
    )
