"""会话级入口。"""
