"""Roundtable Core 顶层包。

该包实现多角色群聊的编排核心：发言队列构建、逐轮顺序执行、
以及屏蔽不同 Provider 调用方式的响应分发层，
另附配置加载、日志、会话持久化与会话入口等能力。
"""

from roundtable_core.api.service import SessionHandle, start_session

__all__ = ["SessionHandle", "start_session"]
