"""基础设施层：日志、会话历史持久化与音频输出。"""
