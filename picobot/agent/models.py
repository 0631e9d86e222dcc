"""
模型注册表模块 - 可用模型目录与按用户的当前模型。

模型目录在启动时由配置确定，运行期间不变；每个用户的当前模型
保存在各自的 Session 中（Session.model），一个用户切换模型不会影响其他用户。

切换模型会清空该用户的对话历史：不同模型之间不保证对话上下文的连续性。
"""

from typing import Iterable

from picobot.errors import InvalidModelError
from picobot.session.manager import Session


class ModelRegistry:
    """
    模型注册表。

    属性:
        catalog: 合法模型标识集合
        default_model: 默认模型（必须在目录中）
    """

    def __init__(self, catalog: Iterable[str], default_model: str):
        self._catalog = tuple(dict.fromkeys(catalog))  # 去重并保持配置顺序（用于帮助文本展示）
        if default_model not in self._catalog:
            raise ValueError(f"Default model '{default_model}' is not in the catalog")
        self._default = default_model

    @property
    def default_model(self) -> str:
        return self._default

    def list_models(self) -> frozenset[str]:
        """返回模型目录（无序集合，用于成员判断）。"""
        return frozenset(self._catalog)

    def ordered_models(self) -> tuple[str, ...]:
        """按配置顺序返回模型目录。"""
        return self._catalog

    def current_model(self, session: Session) -> str:
        """
        返回会话的当前模型。

        会话未选择过模型，或选择的模型已从目录中移除（配置变更后）时，回退到默认模型。
        """
        if session.model and session.model in self._catalog:
            return session.model
        return self._default

    def switch_model(self, session: Session, name: str) -> str:
        """
        切换会话的当前模型并清空对话历史。

        调用方负责持有该用户的锁并在成功后保存会话。

        参数:
            session: 目标会话
            name: 目标模型标识

        返回:
            切换后的模型标识

        异常:
            InvalidModelError: name 不在目录中（会话保持不变）
        """
        if name not in self.list_models():
            raise InvalidModelError(name)
        session.model = name
        session.clear()
        return name
