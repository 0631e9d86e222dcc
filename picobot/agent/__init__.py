"""
Agent 核心模块 - 鉴权、命令路由、模型选择、图片缓存与回复编排。
"""

from picobot.agent.auth import AuthorizationGate
from picobot.agent.image_cache import ImageRequestCache
from picobot.agent.loop import AgentLoop
from picobot.agent.models import ModelRegistry
from picobot.agent.orchestrator import ResponseOrchestrator
from picobot.agent.router import CommandRouter

__all__ = [
    "AgentLoop",
    "AuthorizationGate",
    "CommandRouter",
    "ImageRequestCache",
    "ModelRegistry",
    "ResponseOrchestrator",
]
