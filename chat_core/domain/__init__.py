"""领域层模型与协议。

包含：
- models: ChatMessage / ChatTurnRequest / 流式事件等请求与事件模型。
- conversation: 对话消息 Message 及 ConversationStore 抽象。
- exceptions: 业务异常类型定义。
"""
