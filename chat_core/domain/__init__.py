"""领域层模型与协议。

包含：
- models: 统一的 ChatMessage / CompletionRequest / ChatResult 等模型。
- conversation: 会话解析与对话记录渲染。
- exceptions: 业务异常类型定义。
"""
