"""
图片生成提供者模块 —— 基于 LiteLLM 的 aimage_generation。

调用 OpenAI 兼容的图片生成接口（默认 dall-e-3），返回图片 URL。
Telegram 的 send_photo 可以直接使用该 URL 发送图片。
"""

from typing import Any

from litellm import aimage_generation
from loguru import logger

from picobot.errors import UpstreamError, UpstreamErrorKind, classify_upstream_error
from picobot.providers.base import ImageProvider


class LiteLLMImageProvider(ImageProvider):
    """
    基于 LiteLLM 的图片生成后端。

    构造参数：
        model: 图片生成模型（如 "dall-e-3"）
        api_key: API 密钥
        api_base: 自定义 API 基础 URL
    """

    def __init__(self, model: str = "dall-e-3", api_key: str | None = None, api_base: str | None = None):
        self.model = model
        self.api_key = api_key
        self.api_base = api_base

    async def generate(self, prompt: str, size: str) -> str:
        kwargs: dict[str, Any] = {"prompt": prompt, "model": self.model, "size": size, "n": 1}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await aimage_generation(**kwargs)
        except Exception as e:
            error = classify_upstream_error(e, backend="image")
            logger.error(f"Image generation failed ({error.kind.value}): {error.message}")
            raise error from e

        url = response.data[0].url if response.data else None
        if not url:
            raise UpstreamError(UpstreamErrorKind.UNKNOWN, "Failed to get image URL", backend="image")
        return url
