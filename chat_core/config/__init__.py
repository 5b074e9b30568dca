"""配置层：Settings 加载与每轮对话的 SessionConfig 快照。"""
