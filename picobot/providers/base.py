"""
生成后端基类定义模块。

本模块定义了与两个生成后端交互的抽象接口：
- LLMResponse  : 文本生成的统一响应格式（文本内容、结束原因、token 用量）
- LLMProvider  : 文本生成后端抽象基类
- ImageProvider: 图片生成后端抽象基类

架构角色：
  用户消息 → ResponseOrchestrator → LLMProvider.chat() → LLM API → LLMResponse
  /img 命令 → CommandRouter → ImageProvider.generate() → 图片 API → 图片 URL

失败约定：两个后端都以 UpstreamError（已分类）抛出失败，调用方据此决定
是否写入会话或缓存；后端本身不做重试。

类比 Java：
  - LLMProvider / ImageProvider 相当于 interface
  - LLMResponse 相当于一个不可变的 DTO（Data Transfer Object）
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMResponse:
    """
    文本生成的统一响应数据结构。

    属性：
        content: 模型返回的文本内容
        finish_reason: 结束原因（"stop"=正常结束, "length"=达到 token 上限）
        usage: token 用量统计（prompt_tokens, completion_tokens, total_tokens）
    """
    content: str | None
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)


class LLMProvider(ABC):
    """
    文本生成后端抽象基类。

    属性：
        api_key: API 密钥
        api_base: API 基础 URL（用于自定义端点或代理）
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
    async def chat(
        self,
        messages: list[dict[str, Any]],
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """
        发送对话补全请求。

        参数：
            messages: 消息列表，每条消息是 {"role": "user/assistant/system", "content": "..."} 格式
            model: 模型标识符（如 'gpt-4o-mini'）
            max_tokens: 响应的最大 token 数
            temperature: 采样温度

        返回：
            LLMResponse

        异常：
            UpstreamError: 后端调用失败（已分类）
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """获取该提供者的默认模型名称。"""
        pass


class ImageProvider(ABC):
    """图片生成后端抽象基类。"""

    @abstractmethod
    async def generate(self, prompt: str, size: str) -> str:
        """
        根据提示词生成一张图片。

        参数：
            prompt: 图片描述
            size: 图片尺寸（如 "1024x1024"）

        返回：
            图片引用（URL）

        异常：
            UpstreamError: 后端调用失败或没有返回图片
        """
        pass
