"""配置加载（环境变量 / .env / config.yaml）。"""

from roundtable_core.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
