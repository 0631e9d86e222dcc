"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 picobot 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── channels      - 消息渠道配置（Telegram）
├── access        - 发送者白名单
├── models        - 文本生成模型目录与默认模型
├── image         - 图片生成配置（模型、合法尺寸、缓存过期时间）
├── cache         - 键值缓存服务（Redis 或进程内内存）
├── sessions      - 会话历史配置
└── providers     - LLM 提供商凭据

配置在进程启动时加载一次，运行期间不再修改。

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 中的 POJO/DTO，但自带数据验证功能
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings


# ==============================================================================
# 渠道配置
# ==============================================================================


class TelegramConfig(BaseModel):
    """Telegram 渠道配置。使用 Bot API 长轮询方式接收消息。"""
    enabled: bool = False  # 是否启用该渠道
    token: str = ""  # 从 @BotFather 获取的 Bot Token
    proxy: str | None = None  # HTTP/SOCKS5 代理地址，如 "http://127.0.0.1:7890"


class ChannelsConfig(BaseModel):
    """所有消息渠道的聚合配置。"""
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)


# ==============================================================================
# 鉴权与模型配置
# ==============================================================================


class AccessConfig(BaseModel):
    """
    发送者白名单配置。

    allow_from 为空时拒绝所有人；只有显式设置 allow_all=True 才开放给所有人。
    """
    allow_from: list[str] = Field(default_factory=list)  # 允许的用户 ID（或用户名）白名单
    allow_all: bool = False  # 开放模式开关


DEFAULT_MODELS = ["gpt-4o-mini", "gpt-4o", "gpt-4-turbo", "gpt-3.5-turbo"]


class ModelsConfig(BaseModel):
    """
    文本生成模型配置。

    catalog 是 /switchmodel 可切换的全部模型，default 是新会话使用的模型，
    必须是 catalog 的成员。
    """
    catalog: list[str] = Field(default_factory=lambda: list(DEFAULT_MODELS))
    default: str = "gpt-4o-mini"
    max_tokens: int = 4096  # 单次调用的最大输出 token 数
    temperature: float = 0.7  # 生成温度
    system_prompt: str | None = None  # 可选的系统提示词（插在历史消息之前）

    @model_validator(mode="after")
    def _check_default(self) -> "ModelsConfig":
        if not self.catalog:
            raise ValueError("models.catalog must not be empty")
        if self.default not in self.catalog:
            raise ValueError(f"models.default '{self.default}' is not in models.catalog")
        return self


DEFAULT_IMAGE_SIZES = ["256x256", "512x512", "1024x1024", "1792x1024", "1024x1792"]


class ImageConfig(BaseModel):
    """图片生成配置。"""
    model: str = "dall-e-3"  # 图片生成模型
    valid_sizes: list[str] = Field(default_factory=lambda: list(DEFAULT_IMAGE_SIZES))
    default_size: str = "1024x1024"
    cache_ttl: int = Field(default=3600, gt=0)  # 图片请求缓存过期时间（秒），1 小时

    @model_validator(mode="after")
    def _check_default_size(self) -> "ImageConfig":
        if self.default_size not in self.valid_sizes:
            raise ValueError(f"image.default_size '{self.default_size}' is not in image.valid_sizes")
        return self


# ==============================================================================
# 存储配置
# ==============================================================================


class CacheConfig(BaseModel):
    """
    键值缓存服务配置。会话历史和图片请求缓存共用同一个服务。

    backend:
    - "redis": 使用 Redis（生产环境）
    - "memory": 进程内存储（本地调试，进程退出即丢失）
    """
    backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"  # Redis 连接地址（支持 rediss:// 与密码）
    key_prefix: str = "picobot:"  # 所有键的统一前缀，便于与其他应用共用 Redis


class SessionsConfig(BaseModel):
    """
    会话历史配置。

    history_window 为 None 时历史无限增长；设置为 N 时只保留最近 N 条消息。
    """
    history_window: int | None = Field(default=None, ge=2)


# ==============================================================================
# LLM 提供商配置
# ==============================================================================


class ProviderConfig(BaseModel):
    """单个 LLM 提供商的配置。"""
    api_key: str = ""  # API 密钥
    api_base: str | None = None  # 自定义 API 基础 URL（用于私有部署或代理）
    extra_headers: dict[str, str] | None = None  # 额外请求头


class ProvidersConfig(BaseModel):
    """LLM 提供商聚合配置。文本与图片生成都走 OpenAI 兼容接口。"""
    openai: ProviderConfig = Field(default_factory=ProviderConfig)


# ==============================================================================
# 根配置类
# ==============================================================================


class Config(BaseSettings):
    """
    picobot 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: PICOBOT_
    - 嵌套分隔符: __ (双下划线)
    - 示例: PICOBOT_CHANNELS__TELEGRAM__TOKEN=xxx 可覆盖 channels.telegram.token
    """
    channels: ChannelsConfig = Field(default_factory=ChannelsConfig)
    access: AccessConfig = Field(default_factory=AccessConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    image: ImageConfig = Field(default_factory=ImageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    model_config = ConfigDict(
        env_prefix="PICOBOT_",
        env_nested_delimiter="__"
    )
