"""领域层模型与协议。

包含：
- models: Persona / Turn / ChatSession 以及发给 Provider 的请求模型。
- context: 只追加的会话上下文。
- conversation: 会话持久化协议 TurnStore。
- exceptions: 业务异常类型定义。
"""
