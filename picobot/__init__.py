"""
picobot - 轻量级 Telegram 对话机器人

模块概述：
    本文件是 picobot 包的入口文件（__init__.py），定义了包的元信息。
    picobot 位于消息渠道与两个生成后端（文本、图片）之间，负责：

    - 基于白名单的发送者鉴权
    - 斜杠命令路由（/start、/new、/history、/help、/switchmodel、/img）
    - 按用户维护多轮对话上下文（Redis 持久化）
    - 按用户切换生成模型
    - 图片生成请求的缓存去重（带过期时间）
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🐤"
