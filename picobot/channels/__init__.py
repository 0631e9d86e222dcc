"""
消息渠道模块 - 外部即时通讯平台的接入层。

- base.py     : BaseChannel 抽象基类
- telegram.py : Telegram 渠道（python-telegram-bot 长轮询）
- manager.py  : ChannelManager，管理渠道生命周期与出站消息路由
"""

from picobot.channels.base import BaseChannel
from picobot.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
