"""
回复编排模块 —— 处理非命令的自由文本消息。

处理流程（在该用户的锁内完成，同一用户的消息严格串行）：
1. 读取用户当前的对话历史（最早的在前）
2. 以 (输入文本, 历史, 当前模型) 调用文本生成后端
3. 成功后把 (user: 输入, assistant: 回复) 这一对一次性写入会话
4. 返回回复文本

后端失败时不追加任何消息，会话保持调用前的状态，异常继续向上传播，
由 AgentLoop 的消息处理边界统一转换为兜底提示。
"""

from typing import Any

from loguru import logger

from picobot.agent.models import ModelRegistry
from picobot.providers.base import LLMProvider
from picobot.session.manager import SessionManager
from picobot.utils.helpers import truncate_string


class ResponseOrchestrator:
    """
    自由文本回复编排器。

    属性:
        provider: 文本生成后端
        sessions: 会话管理器
        models: 模型注册表（决定每个用户使用哪个模型）
        max_tokens: 单次回复的最大 token 数
        temperature: 采样温度
        system_prompt: 可选的系统提示词
    """

    def __init__(
        self,
        provider: LLMProvider,
        sessions: SessionManager,
        models: ModelRegistry,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        system_prompt: str | None = None,
    ):
        self.provider = provider
        self.sessions = sessions
        self.models = models
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt

    def _build_messages(self, history: list[dict[str, Any]], text: str) -> list[dict[str, Any]]:
        """组装 LLM 消息列表：[系统提示词] + 历史 + 当前输入。"""
        messages: list[dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(history)
        messages.append({"role": "user", "content": text})
        return messages

    async def respond(self, user_id: str, text: str) -> str:
        """
        生成回复并记录本轮问答。

        参数:
            user_id: 用户 ID
            text: 用户输入

        返回:
            助手回复文本

        异常:
            UpstreamError: 文本生成失败（会话不变）
            PersistenceError: 读写会话失败
        """
        async with self.sessions.lock(user_id):
            session = await self.sessions.get_or_create(user_id)
            model = self.models.current_model(session)
            history = session.get_history(self.sessions.history_window)

            logger.info(f"Generating reply for {user_id} with {model} ({len(history)} history messages)")
            response = await self.provider.chat(
                messages=self._build_messages(history, text),
                model=model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
            reply = response.content or ""

            await self.sessions.append_exchange(session, text, reply)
            logger.debug(f"Reply to {user_id}: {truncate_string(reply, 80)}")
            return reply
