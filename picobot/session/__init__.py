"""
会话管理模块 - 管理用户对话的会话状态和历史记录持久化。

每个会话对应一个用户（以用户 ID 为键），保存有序的对话轮次和该用户当前选择的模型，
会话数据以 JSON 形式存储在键值缓存服务（Redis）中。

【架构定位】
- 命令路由器通过用户 ID 定位会话，处理 /new、/history、/switchmodel
- 回复编排器读取历史构建上下文，成功后把新的一轮问答追加到会话
"""

from picobot.session.manager import Session, SessionManager

__all__ = ["SessionManager", "Session"]
