"""
鉴权模块 - 基于静态白名单的发送者权限控制。

纯粹的成员判断，没有任何副作用。鉴权失败时由路由器回复拒绝提示并终止处理，
不会触碰会话、模型选择或图片缓存。
"""

from typing import Iterable

from picobot.errors import AuthorizationError


class AuthorizationGate:
    """
    发送者白名单。

    属性:
        allow_from: 允许的发送者标识集合（用户 ID 或用户名，统一为字符串）
        allow_all: 开放模式，为 True 时所有人都可使用
    """

    def __init__(self, allow_from: Iterable[str | int], allow_all: bool = False):
        self.allow_from = frozenset(str(s) for s in allow_from)
        self.allow_all = allow_all

    def is_authorized(self, sender_id: str | int) -> bool:
        """
        检查发送者是否有权限使用该机器人。

        支持 "|" 分隔的复合 sender_id（Telegram 的 "数字ID|用户名"），
        任意一段在白名单中即视为通过。

        参数:
            sender_id: 发送者标识符

        返回:
            True 表示允许访问
        """
        if self.allow_all:
            return True

        sender_str = str(sender_id)
        if sender_str in self.allow_from:
            return True
        if "|" in sender_str:
            return any(part and part in self.allow_from for part in sender_str.split("|"))
        return False

    def check(self, sender_id: str | int) -> None:
        """
        鉴权并在失败时抛出异常。

        异常:
            AuthorizationError: 发送者不在白名单中
        """
        if not self.is_authorized(sender_id):
            raise AuthorizationError(str(sender_id))
