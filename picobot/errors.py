"""
异常类型定义模块 - picobot 全局共享的错误体系。

所有业务异常都继承自 PicobotError，按处理方式分为四类：

- AuthorizationError：发送者不在白名单中，回复拒绝提示，不修改任何状态
- ValidationError：命令参数缺失或非法（如未知模型名、空的图片提示词），
  回复纠正提示，不修改任何状态
- UpstreamError：文本/图片生成后端失败，细分为 API 错误、无响应、未知三种
- PersistenceError：键值缓存服务读写失败

【Java 开发者类比】
- 类似于 Spring 项目中的自定义 RuntimeException 体系
- UpstreamErrorKind 相当于一个 Java enum，用于区分下游失败类型

异常类型放在包根目录，避免各子模块之间的循环导入。
"""

from enum import Enum

import openai


class PicobotError(Exception):
    """picobot 所有业务异常的基类。"""


class AuthorizationError(PicobotError):
    """发送者不在白名单中。"""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Sender {user_id} is not authorized")


class ValidationError(PicobotError):
    """
    命令参数缺失或非法。

    异常消息本身就是要回复给用户的纠正提示，
    路由层捕获后直接作为回复内容发送。
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidModelError(ValidationError):
    """请求切换的模型不在模型目录中。"""

    def __init__(self, name: str):
        self.name = name
        super().__init__("Invalid model name. Use /help to see available models.")


class UpstreamErrorKind(str, Enum):
    """生成后端失败的细分类型。"""
    API = "api"                  # 后端返回了结构化的错误响应
    NO_RESPONSE = "no_response"  # 请求已发出但没有收到响应（网络错误、超时）
    UNKNOWN = "unknown"          # 其他错误


class UpstreamError(PicobotError):
    """
    文本或图片生成后端调用失败。

    属性:
        kind: 失败类型（API / NO_RESPONSE / UNKNOWN）
        message: 错误描述（API 类型时取自错误响应体）
        backend: 出错的后端名称（"text" 或 "image"）
    """

    def __init__(self, kind: UpstreamErrorKind, message: str, backend: str = "text"):
        self.kind = kind
        self.message = message
        self.backend = backend
        super().__init__(f"{backend} backend error ({kind.value}): {message}")


class PersistenceError(PicobotError):
    """键值缓存服务读写失败（连接异常、数据损坏等）。"""

    def __init__(self, operation: str, key: str, reason: str = ""):
        self.operation = operation
        self.key = key
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Cache {operation} failed for {key}{detail}")


def classify_upstream_error(exc: Exception, backend: str = "text") -> UpstreamError:
    """
    将后端 SDK 抛出的异常归类为 UpstreamError。

    LiteLLM 的异常类型都继承自 openai SDK 的异常，因此按 openai 的基类判断：
    - APIConnectionError（含 APITimeoutError）：请求未得到响应 → NO_RESPONSE
    - APIStatusError / APIError：后端返回了错误响应 → API
    - 其他：UNKNOWN

    参数:
        exc: 原始异常
        backend: 后端名称，写入错误对象便于日志定位

    返回:
        归类后的 UpstreamError（调用方负责 raise ... from exc）
    """
    if isinstance(exc, UpstreamError):
        return exc
    # APIConnectionError 是 APIError 的子类，必须先判断
    if isinstance(exc, openai.APIConnectionError):
        return UpstreamError(UpstreamErrorKind.NO_RESPONSE, str(exc), backend)
    if isinstance(exc, openai.APIError):
        return UpstreamError(UpstreamErrorKind.API, _api_error_message(exc), backend)
    return UpstreamError(UpstreamErrorKind.UNKNOWN, str(exc) or type(exc).__name__, backend)


def _api_error_message(exc: "openai.APIError") -> str:
    """从 API 错误响应体中提取 error.message，缺失时回退到异常自带的 message。"""
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return getattr(exc, "message", None) or str(exc)
