"""
LiteLLM 提供者实现模块 —— 文本生成后端的统一调用层。

本模块通过 LiteLLM 开源库调用 OpenAI 兼容的对话补全接口。
LiteLLM 将各家 LLM 服务商的 API 统一为 OpenAI 格式，
类比 Java 世界：LiteLLM 类似于 JDBC —— 一套接口，多种数据库驱动。

数据流：
  ResponseOrchestrator → LiteLLMProvider.chat() → litellm.acompletion() → LLM API
                                                           ↓
  ResponseOrchestrator ← _parse_response() ← LLMResponse ←┘

错误处理：
  调用失败时抛出已分类的 UpstreamError，由编排器决定不写入会话。
"""

from typing import Any

import litellm
from litellm import acompletion
from loguru import logger

from picobot.errors import UpstreamError, UpstreamErrorKind, classify_upstream_error
from picobot.providers.base import LLMProvider, LLMResponse


class LiteLLMProvider(LLMProvider):
    """
    基于 LiteLLM 的文本生成后端。

    构造参数：
        api_key: API 密钥
        api_base: 自定义 API 基础 URL（用于代理/网关/本地部署）
        default_model: 默认模型名称（如 "gpt-4o-mini"）
        extra_headers: 额外的 HTTP 请求头
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "gpt-4o-mini",
        extra_headers: dict[str, str] | None = None,
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}

        # 禁用 LiteLLM 的调试日志输出（默认很啰嗦）
        litellm.suppress_debug_info = True
        # 自动丢弃服务商不支持的参数（避免因多余参数导致请求失败）
        litellm.drop_params = True

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
            messages: 对话消息列表（历史 + 当前用户输入）
            model: 模型标识符，为空则使用默认模型
            max_tokens: 响应的最大 token 数
            temperature: 采样温度

        返回：
            LLMResponse

        异常：
            UpstreamError: 调用失败，或模型返回了空内容
        """
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        try:
            response = await acompletion(**kwargs)
        except Exception as e:
            error = classify_upstream_error(e, backend="text")
            logger.error(f"LLM call failed ({error.kind.value}): {error.message}")
            raise error from e

        parsed = self._parse_response(response)
        if not parsed.content:
            raise UpstreamError(UpstreamErrorKind.UNKNOWN, "Empty response from model", backend="text")
        return parsed

    def _parse_response(self, response: Any) -> LLMResponse:
        """
        将 LiteLLM 的原始响应解析为统一的 LLMResponse 格式。

        LiteLLM 的响应格式遵循 OpenAI 规范：response.choices[0].message.content
        """
        choice = response.choices[0]

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    def get_default_model(self) -> str:
        """获取默认模型名称。"""
        return self.default_model
