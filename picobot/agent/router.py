"""
命令路由模块 —— 入站消息的鉴权与分发。

每条入站消息先经过鉴权，再按文本前缀分发到对应的处理器：

    /start                      欢迎语（带当前模型），不修改状态
    /new                        清空对话历史
    /history                    以 "role: content" 形式回显历史，空行分隔
    /help                       帮助文本
    /switchmodel <name>         切换当前模型（同时清空历史）
    /img <prompt...> [size]     生成图片，末尾的合法尺寸会被识别为 size
    <自由文本>                   交给 ResponseOrchestrator 生成回复
    其他（非文本、未知命令）       忽略，只记录日志

命令区分大小写，以空格分隔参数。各处理器互相独立，不依赖同一条消息中
其他处理器是否执行过。

【Java 开发者类比】
- CommandRouter 类似于 Spring MVC 的 DispatcherServlet
- _exact / _with_args 字典相当于 @RequestMapping 映射表
"""

from collections.abc import Awaitable, Callable, Sequence

from loguru import logger

from picobot.agent.auth import AuthorizationGate
from picobot.agent.image_cache import ImageRequestCache
from picobot.agent.models import ModelRegistry
from picobot.agent.orchestrator import ResponseOrchestrator
from picobot.bus.events import InboundMessage, OutboundMessage
from picobot.errors import (
    AuthorizationError,
    PersistenceError,
    UpstreamError,
    UpstreamErrorKind,
    ValidationError,
)
from picobot.providers.base import ImageProvider
from picobot.session.manager import SessionManager

REJECTION_TEXT = "Sorry, you are not authorized to use this bot."
IMAGE_ERROR_TEXT = "Error generating or sending the image."


def parse_command(text: str) -> tuple[str, list[str]] | None:
    """
    解析斜杠命令。

    参数:
        text: 消息文本

    返回:
        (命令, 参数列表)；不是斜杠命令时返回 None。
        Telegram 群聊中的 "/cmd@botname" 会去掉 "@botname" 后缀。
    """
    if not text.startswith("/"):
        return None
    tokens = text.split(" ")
    command = tokens[0].split("@", 1)[0]
    args = [t for t in tokens[1:] if t]
    return command, args


def parse_image_args(
    args: Sequence[str],
    valid_sizes: Sequence[str],
    default_size: str,
) -> tuple[str, str]:
    """
    解析 /img 的参数。

    最后一个参数是合法尺寸时作为 size，其余参数用空格拼接为提示词。

    示例:
        ["a", "sunset", "512x512"] → ("a sunset", "512x512")
        ["a", "sunset"]            → ("a sunset", default_size)
    """
    tokens = list(args)
    size = default_size
    if tokens and tokens[-1] in valid_sizes:
        size = tokens.pop()
    return " ".join(tokens), size


def format_image_error(error: Exception) -> str:
    """将图片生成失败转换为可区分类型的用户提示。"""
    if isinstance(error, UpstreamError):
        if error.kind == UpstreamErrorKind.API:
            return f"{IMAGE_ERROR_TEXT} API error: {error.message}"
        if error.kind == UpstreamErrorKind.NO_RESPONSE:
            return f"{IMAGE_ERROR_TEXT} No response from the API."
        return f"{IMAGE_ERROR_TEXT} {error.message}"
    return f"{IMAGE_ERROR_TEXT} {error}"


Handler = Callable[[InboundMessage, list[str]], Awaitable[list[OutboundMessage]]]


class CommandRouter:
    """
    命令路由器。

    所有依赖（白名单、模型目录、图片尺寸等配置）在构造时注入，运行期间不变。

    属性:
        gate: 鉴权白名单
        models: 模型注册表
        sessions: 会话管理器
        image_cache: 图片请求缓存
        image_provider: 图片生成后端
        orchestrator: 自由文本回复编排器
        valid_sizes: 合法的图片尺寸
        default_size: 默认图片尺寸
    """

    def __init__(
        self,
        gate: AuthorizationGate,
        models: ModelRegistry,
        sessions: SessionManager,
        image_cache: ImageRequestCache,
        image_provider: ImageProvider,
        orchestrator: ResponseOrchestrator,
        valid_sizes: Sequence[str],
        default_size: str = "1024x1024",
    ):
        self.gate = gate
        self.models = models
        self.sessions = sessions
        self.image_cache = image_cache
        self.image_provider = image_provider
        self.orchestrator = orchestrator
        self.valid_sizes = tuple(valid_sizes)
        self.default_size = default_size

        # 无参数命令必须整条消息完全匹配；带参数命令按首个 token 匹配
        self._exact: dict[str, Handler] = {
            "/start": self._on_start,
            "/new": self._on_new,
            "/history": self._on_history,
            "/help": self._on_help,
        }
        self._with_args: dict[str, Handler] = {
            "/switchmodel": self._on_switch_model,
            "/img": self._on_image,
        }

    async def dispatch(self, msg: InboundMessage) -> list[OutboundMessage]:
        """
        处理一条入站消息，返回要发送的出站消息列表（可能为空）。

        ValidationError 在这里转换为纠正提示；其他异常向上传播，
        由 AgentLoop 的消息处理边界统一处理。
        """
        try:
            self.gate.check(msg.sender_id)
        except AuthorizationError as e:
            logger.warning(f"{e} (channel {msg.channel})")
            return [self._reply(msg, REJECTION_TEXT)]

        text = msg.content or ""
        if not text:
            logger.debug(f"Ignoring non-text message from {msg.sender_id}")
            return []

        handler, args = self._resolve(text)
        if handler is None:
            if text.startswith("/"):
                logger.debug(f"Ignoring unknown command from {msg.sender_id}: {text.split(' ', 1)[0]}")
                return []
            return [self._reply(msg, await self.orchestrator.respond(msg.user_id, text))]

        try:
            return await handler(msg, args)
        except ValidationError as e:
            return [self._reply(msg, e.message)]

    def _resolve(self, text: str) -> tuple[Handler | None, list[str]]:
        parsed = parse_command(text)
        if parsed is None:
            return None, []
        command, args = parsed
        if command in self._exact:
            return (self._exact[command], []) if not args else (None, [])
        return self._with_args.get(command), args

    @staticmethod
    def _reply(msg: InboundMessage, content: str, media: list[str] | None = None) -> OutboundMessage:
        return OutboundMessage(
            channel=msg.channel,
            chat_id=msg.chat_id,
            content=content,
            media=media or [],
        )

    # ------------------------------------------------------------------
    # 命令处理器
    # ------------------------------------------------------------------

    async def _on_start(self, msg: InboundMessage, args: list[str]) -> list[OutboundMessage]:
        session = await self.sessions.get_or_create(msg.user_id)
        model = self.models.current_model(session)
        return [self._reply(
            msg,
            f"Welcome! The current model is {model}. "
            "Send me a message and I will generate a response using AI.",
        )]

    async def _on_new(self, msg: InboundMessage, args: list[str]) -> list[OutboundMessage]:
        session = await self.sessions.reset(msg.user_id)
        model = self.models.current_model(session)
        return [self._reply(
            msg,
            f"New conversation started with model {model}. Previous context has been cleared.",
        )]

    async def _on_history(self, msg: InboundMessage, args: list[str]) -> list[OutboundMessage]:
        session = await self.sessions.get_or_create(msg.user_id)
        history_text = "\n\n".join(f"{m['role']}: {m['content']}" for m in session.messages)
        return [self._reply(msg, f"Your conversation history:\n\n{history_text}")]

    async def _on_help(self, msg: InboundMessage, args: list[str]) -> list[OutboundMessage]:
        return [self._reply(msg, self.help_text())]

    def help_text(self) -> str:
        """帮助文本：命令列表、可用模型、图片尺寸。"""
        models = "\n".join(
            f"• {name}{' (default)' if name == self.models.default_model else ''}"
            for name in self.models.ordered_models()
        )
        return (
            "Available commands:\n"
            "/start — Show the current model\n"
            "/new — Start a new conversation\n"
            "/history — Show your conversation history\n"
            "/help — Show this help\n"
            "/switchmodel <model> — Switch model (clears your history)\n"
            f"/img <prompt> [size] — Generate an image (default size {self.default_size})\n\n"
            f"Available models:\n{models}\n\n"
            f"Image sizes: {', '.join(self.valid_sizes)}"
        )

    async def _on_switch_model(self, msg: InboundMessage, args: list[str]) -> list[OutboundMessage]:
        if not args:
            raise ValidationError("Please provide a model name to switch to.")
        name = args[0].strip()

        async with self.sessions.lock(msg.user_id):
            session = await self.sessions.get_or_create(msg.user_id)
            # 模型名非法时抛出 InvalidModelError，会话未被修改也不会保存
            self.models.switch_model(session, name)
            await self.sessions.save(session)

        logger.info(f"User {msg.user_id} switched model to {name}")
        return [self._reply(msg, f"Model switched to: {name}. Previous conversation has been cleared.")]

    async def _on_image(self, msg: InboundMessage, args: list[str]) -> list[OutboundMessage]:
        prompt, size = parse_image_args(args, self.valid_sizes, self.default_size)
        if not prompt:
            raise ValidationError("Please provide a prompt for the image.")

        # 请求键在处理时分配，不使用平台给出的消息时间（精度只到秒）
        key = self.image_cache.next_key(msg.user_id)
        logger.info(f"Image request from chat {msg.chat_id}: prompt={prompt!r}, size={size}")

        try:
            reference = await self.generate_image(key, prompt, size)
        except (UpstreamError, PersistenceError) as e:
            logger.error(f"Image generation or delivery failed: {e}")
            return [self._reply(msg, format_image_error(e))]

        return [self._reply(msg, prompt, media=[reference])]

    async def generate_image(self, key: str, prompt: str, size: str) -> str:
        """
        图片生成流程：命中缓存直接复用，否则调用后端并在返回前写入缓存。

        参数:
            key: 请求键（ImageRequestCache.next_key）
            prompt: 提示词
            size: 尺寸

        返回:
            图片引用

        异常:
            UpstreamError: 生成失败（不写缓存）
            PersistenceError: 缓存读写失败
        """
        reference = await self.image_cache.lookup(key)
        if reference is not None:
            logger.info(f"Reusing generated image for {key}")
            return reference

        reference = await self.image_provider.generate(prompt, size)
        await self.image_cache.store(key, reference)
        return reference
