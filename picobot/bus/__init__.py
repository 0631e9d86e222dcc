"""
消息总线模块 - 实现渠道与 Agent 核心之间的解耦通信。

消息流向：
  用户消息 → 渠道(Channel) → InboundMessage → 消息总线 → AgentLoop 处理
  AgentLoop 回复 → OutboundMessage → 消息总线 → 渠道(Channel) → 用户
"""

from picobot.bus.events import InboundMessage, OutboundMessage
from picobot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundMessage", "OutboundMessage"]
