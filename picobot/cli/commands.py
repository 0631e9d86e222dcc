"""
CLI 命令模块 - picobot 的所有命令行命令定义。

本模块使用 Typer 框架定义 picobot 的 CLI 命令体系：
- onboard：生成默认配置文件
- gateway：启动网关服务（Telegram 渠道 + AgentLoop）
- agent：在终端里直接与机器人对话（单条消息或交互式对话）
- status：查看配置与模型状态

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（Markdown 渲染、颜色）
- prompt_toolkit：交互式输入（历史记录、行编辑）
"""

import asyncio
import sys

import typer
from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.history import FileHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.markdown import Markdown
from rich.text import Text

from picobot import __logo__, __version__
from picobot.errors import PersistenceError
from picobot.utils import ensure_dir, get_data_path

app = typer.Typer(
    name="picobot",
    help=f"{__logo__} picobot - Telegram chat & image bot",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}  # 退出交互模式的命令集合


def version_callback(value: bool):
    """版本号回调：传入 --version/-v 时打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} picobot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """picobot CLI 根命令回调。"""
    pass


def _setup_logging(verbose: bool) -> None:
    """配置 loguru 输出级别：verbose 时为 DEBUG，否则 INFO。"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")


# ============================================================================
# 组件装配
# ============================================================================


def _make_provider(config):
    """
    根据配置创建文本生成后端。

    未配置 API Key 时打印错误并退出。
    """
    from picobot.providers.litellm_provider import LiteLLMProvider

    p = config.providers.openai
    if not p.api_key:
        console.print("[red]Error: No API key configured.[/red]")
        console.print("Set providers.openai.apiKey in ~/.picobot/config.json")
        raise typer.Exit(1)
    return LiteLLMProvider(
        api_key=p.api_key,
        api_base=p.api_base,
        default_model=config.models.default,
        extra_headers=p.extra_headers,
    )


def _make_image_provider(config):
    """根据配置创建图片生成后端（与文本后端共用 OpenAI 凭据）。"""
    from picobot.providers.image import LiteLLMImageProvider

    p = config.providers.openai
    return LiteLLMImageProvider(model=config.image.model, api_key=p.api_key, api_base=p.api_base)


def _make_agent(config, bus, provider, image_provider, store):
    """
    装配 AgentLoop 及其全部依赖。

    配置（白名单、模型目录、图片尺寸、缓存过期时间）在这里一次性注入，
    运行期间不再修改。
    """
    from picobot.agent.auth import AuthorizationGate
    from picobot.agent.image_cache import ImageRequestCache
    from picobot.agent.loop import AgentLoop
    from picobot.agent.models import ModelRegistry
    from picobot.agent.orchestrator import ResponseOrchestrator
    from picobot.agent.router import CommandRouter
    from picobot.session.manager import SessionManager

    sessions = SessionManager(store, history_window=config.sessions.history_window)
    models = ModelRegistry(config.models.catalog, config.models.default)
    orchestrator = ResponseOrchestrator(
        provider=provider,
        sessions=sessions,
        models=models,
        max_tokens=config.models.max_tokens,
        temperature=config.models.temperature,
        system_prompt=config.models.system_prompt,
    )
    router = CommandRouter(
        gate=AuthorizationGate(config.access.allow_from, allow_all=config.access.allow_all),
        models=models,
        sessions=sessions,
        image_cache=ImageRequestCache(store, ttl=config.image.cache_ttl),
        image_provider=image_provider,
        orchestrator=orchestrator,
        valid_sizes=config.image.valid_sizes,
        default_size=config.image.default_size,
    )
    return AgentLoop(bus=bus, router=router)


def _make_store(config):
    from picobot.storage.kv import create_store

    return create_store(config.cache.backend, config.cache.redis_url, config.cache.key_prefix)


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """
    生成默认配置文件 ~/.picobot/config.json。

    已存在时询问是否覆盖。
    """
    from picobot.config.loader import get_config_path, save_config
    from picobot.config.schema import Config

    config_path = get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} picobot is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your OpenAI key to [cyan]providers.openai.apiKey[/cyan]")
    console.print("  2. Add your Telegram user id to [cyan]access.allowFrom[/cyan]")
    console.print("  3. Set [cyan]channels.telegram.token[/cyan] and [cyan]enabled: true[/cyan]")
    console.print("  4. Run: [cyan]picobot gateway[/cyan]")


# ============================================================================
# Gateway / Server
# ============================================================================


@app.command()
def gateway(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    启动 picobot 网关服务。

    1. 加载配置并初始化消息总线与键值存储
    2. 创建文本/图片生成后端和 AgentLoop
    3. 创建渠道管理器并启动所有已启用的渠道
    4. Ctrl+C 时停止消费、等待处理中的消息、关闭渠道与存储
    """
    from picobot.bus.queue import MessageBus
    from picobot.channels.manager import ChannelManager
    from picobot.config.loader import load_config

    _setup_logging(verbose)
    console.print(f"{__logo__} Starting picobot gateway...")

    config = load_config()
    bus = MessageBus()
    store = _make_store(config)
    agent = _make_agent(config, bus, _make_provider(config), _make_image_provider(config), store)
    channels = ChannelManager(config, bus)

    if channels.enabled_channels:
        console.print(f"[green]✓[/green] Channels enabled: {', '.join(channels.enabled_channels)}")
    else:
        console.print("[yellow]Warning: No channels enabled[/yellow]")
    console.print(f"[green]✓[/green] Default model: {config.models.default}")
    console.print(f"[green]✓[/green] Cache backend: {config.cache.backend}")

    async def run():
        try:
            await store.ping()
            await asyncio.gather(
                agent.run(),
                channels.start_all(),
            )
        finally:
            agent.stop()
            if agent.in_flight:
                logger.info(f"Waiting for {agent.in_flight} in-flight message(s)")
            await agent.drain()
            await channels.stop_all()
            await store.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")
    except PersistenceError as e:
        console.print(f"[red]Cache backend unavailable: {e}[/red]")
        raise typer.Exit(1)


# ============================================================================
# Agent Commands
# ============================================================================


def _print_responses(responses, render_markdown: bool) -> None:
    """以一致的终端样式渲染回复；图片消息显示为链接加说明。"""
    for response in responses:
        console.print()
        console.print(f"[cyan]{__logo__} picobot[/cyan]")
        if response.is_photo:
            console.print(f"[magenta]🖼  {response.media[0]}[/magenta]")
            console.print(Text(response.content))
        else:
            console.print(Markdown(response.content) if render_markdown else Text(response.content))
        console.print()


@app.command()
def agent(
    message: str = typer.Option(None, "--message", "-m", help="Message to send"),
    user: str = typer.Option("cli", "--user", "-u", help="Sender id (must be in access.allowFrom)"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render output as Markdown"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show runtime logs during chat"),
):
    """
    在终端里直接与机器人对话，走与 Telegram 完全相同的路由（含鉴权与命令）。

    1. 单条消息模式：picobot agent -m "你好"
    2. 交互模式：picobot agent → 进入交互式对话循环（exit/quit 或 Ctrl+C 退出）
    """
    from picobot.bus.queue import MessageBus
    from picobot.config.loader import load_config

    config = load_config()
    if logs:
        _setup_logging(verbose=False)
    else:
        logger.disable("picobot")

    store = _make_store(config)
    agent_loop = _make_agent(config, MessageBus(), _make_provider(config), _make_image_provider(config), store)

    async def run_once():
        try:
            with console.status("[dim]picobot is thinking...[/dim]", spinner="dots"):
                responses = await agent_loop.process_direct(message, sender_id=user)
            _print_responses(responses, render_markdown=markdown)
        finally:
            await store.close()

    async def run_interactive():
        history_file = ensure_dir(get_data_path() / "history") / "cli_history"
        prompt = PromptSession(history=FileHistory(str(history_file)), multiline=False)

        console.print(f"{__logo__} Interactive mode (type [bold]exit[/bold] or [bold]Ctrl+C[/bold] to quit)\n")
        try:
            while True:
                try:
                    with patch_stdout():
                        user_input = await prompt.prompt_async(HTML("<b fg='ansiblue'>You:</b> "))
                except (KeyboardInterrupt, EOFError):
                    break

                command = user_input.strip()
                if not command:
                    continue
                if command.lower() in EXIT_COMMANDS:
                    break

                with console.status("[dim]picobot is thinking...[/dim]", spinner="dots"):
                    responses = await agent_loop.process_direct(command, sender_id=user)
                _print_responses(responses, render_markdown=markdown)
        finally:
            console.print("\nGoodbye!")
            await store.close()

    asyncio.run(run_once() if message else run_interactive())


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """显示配置文件、模型目录、缓存后端与 API Key 配置状态。"""
    from picobot.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} picobot Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Default model: {config.models.default}")
    console.print(f"Models: {', '.join(config.models.catalog)}")
    console.print(f"Image model: {config.image.model} (default size {config.image.default_size})")
    console.print(f"Cache: {config.cache.backend}")
    console.print(f"Allowed senders: {len(config.access.allow_from)}{' (open mode)' if config.access.allow_all else ''}")
    has_key = bool(config.providers.openai.api_key)
    console.print(f"OpenAI: {'[green]✓[/green]' if has_key else '[dim]not set[/dim]'}")
    telegram = config.channels.telegram
    console.print(f"Telegram: {'[green]✓[/green]' if telegram.enabled and telegram.token else '[dim]disabled[/dim]'}")


if __name__ == "__main__":
    app()
