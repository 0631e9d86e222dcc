"""
生成后端抽象层模块（providers 包）。

模块组成：
- base.py             : LLMProvider / ImageProvider 抽象基类和 LLMResponse 数据结构
- litellm_provider.py : 文本生成实现，基于 LiteLLM 的 acompletion
- image.py            : 图片生成实现，基于 LiteLLM 的 aimage_generation
"""

from picobot.providers.base import ImageProvider, LLMProvider, LLMResponse
from picobot.providers.image import LiteLLMImageProvider
from picobot.providers.litellm_provider import LiteLLMProvider

__all__ = ["LLMProvider", "LLMResponse", "ImageProvider", "LiteLLMProvider", "LiteLLMImageProvider"]
