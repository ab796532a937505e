"""
CLI 命令模块 - askbot 的所有命令行命令定义。

本模块使用 Typer 框架定义 askbot 的 CLI 命令体系：
- onboard：初始化配置文件
- status：查看配置与渠道状态
- ask：向人提问并等待回复（本地窗口或 Telegram）
- notify：发送一条不需要回复的通知
- review：演示密集会话（开启 → 逐个提问 → 结束）
- ui：本地聊天窗口进程的入口（隐藏命令，由启动器调用）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格、颜色）
"""

import asyncio
import sys
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from askbot import __logo__, __version__
from askbot.config.schema import Config
from askbot.exchange.results import AskOutcome

# 创建 Typer 应用实例（CLI 根命令）
app = typer.Typer(
    name="askbot",
    help=f"{__logo__} askbot - Ask a human, wait for the answer",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：传入 --version 时打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} askbot v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", callback=version_callback, is_eager=True),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
):
    """askbot CLI 根命令回调。处理全局选项。"""
    # 默认隐藏运行日志，只保留命令输出；--verbose 时以 DEBUG 级别输出到 stderr
    if verbose:
        logger.remove()
        logger.add(sys.stderr, level="DEBUG")
        logger.enable("askbot")
    else:
        logger.disable("askbot")


def _build_exchange(config: Config):
    """
    按配置组装交换核心：共享会话存储 + 本地管理器 + （可选）远程管理器。
    """
    from askbot.bus.queue import MessageBus
    from askbot.exchange import InteractiveExchange
    from askbot.local.manager import LocalChannelManager
    from askbot.remote.manager import RemoteChannelManager
    from askbot.session.manager import SessionStore

    store = SessionStore()
    local = LocalChannelManager(store, config.local)

    remote = None
    if config.remote_enabled:
        from askbot.channels.telegram import TelegramTransport

        bus = MessageBus()
        transport = TelegramTransport(config.telegram, bus)
        remote = RemoteChannelManager(transport, store, bus, config.remote.countdown_checkpoints)

    return InteractiveExchange(
        store,
        local=local,
        remote=remote,
        default_timeout_s=config.exchange.default_timeout_s,
        project_name=config.exchange.project_name,
        default_channel=config.exchange.default_channel,
    )


def _load() -> Config:
    from askbot.config.loader import load_config
    return load_config()


def _check_channel(channel: str | None) -> None:
    if channel not in (None, "auto", "local", "remote"):
        console.print(f"[red]Unknown channel: {channel} (expected auto, local or remote)[/red]")
        raise typer.Exit(2)


# ============================================================================
# Onboard / Status
# ============================================================================


@app.command()
def onboard():
    """在 ~/.askbot/config.json 写入默认配置。"""
    from askbot.config.loader import get_config_path, save_config

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} askbot is ready!")
    console.print("\nNext steps:")
    console.print("  1. Ask locally: [cyan]askbot ask \"Continue?\" -o yes -o no[/cyan]")
    console.print("  2. For Telegram, set [cyan]telegram.token[/cyan] and [cyan]telegram.allowFrom[/cyan]")
    console.print("     in [cyan]~/.askbot/config.json[/cyan] and enable the channel")


@app.command()
def status():
    """显示配置文件、渠道与超时设置。"""
    from askbot.config.loader import get_config_path

    config_path = get_config_path()
    config = _load()

    console.print(f"{__logo__} askbot Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Default channel: {config.exchange.default_channel} → {config.pick_channel()}")
    console.print(f"Default timeout: {config.exchange.default_timeout_s}s")

    tg = config.telegram
    if config.remote_enabled:
        console.print(f"Telegram: [green]✓[/green] {len(tg.allow_from)} allowed chat(s)")
    elif tg.enabled:
        missing = "token" if not tg.resolve_token() else "allowFrom"
        console.print(f"Telegram: [yellow]enabled but {missing} not set[/yellow]")
    else:
        console.print("Telegram: [dim]disabled[/dim]")

    console.print(f"Local sessions dir: {config.local.temp_dir or '[dim]system temp[/dim]'}")


# ============================================================================
# Ask / Notify / Review
# ============================================================================


@app.command()
def ask(
    question: str = typer.Argument(..., help="Question to ask"),
    option: Optional[list[str]] = typer.Option(None, "--option", "-o", help="Predefined option (repeatable)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Seconds to wait for the answer"),
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="auto, local or remote"),
):
    """向人提问并等待回复。"""
    _check_channel(channel)
    config = _load()
    exchange = _build_exchange(config)

    async def run():
        await exchange.start()
        try:
            return await exchange.ask(question, options=option, timeout_s=timeout, channel=channel)
        finally:
            await exchange.shutdown()

    result = asyncio.run(run())
    console.print(result.describe())
    if not result.answered:
        raise typer.Exit(1)


@app.command()
def notify(
    message: str = typer.Argument(..., help="Notification text"),
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="auto, local or remote"),
):
    """发送一条通知，不等待回复。"""
    _check_channel(channel)
    config = _load()
    exchange = _build_exchange(config)

    async def run():
        await exchange.start()
        try:
            return await exchange.notify(message, channel=channel)
        finally:
            await exchange.shutdown()

    console.print(asyncio.run(run()))


@app.command()
def review(
    title: str = typer.Argument(..., help="Session title"),
    question: list[str] = typer.Option(..., "--question", "-q", help="Question to ask (repeatable)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Seconds per question"),
    channel: Optional[str] = typer.Option(None, "--channel", "-c", help="auto, local or remote"),
):
    """开启一个密集会话，依次提问，最后结束会话并打印问答表。"""
    _check_channel(channel)
    config = _load()
    exchange = _build_exchange(config)

    async def run():
        await exchange.start()
        try:
            started = await exchange.start_session(title, channel=channel, timeout_s=timeout)
            console.print(started.message)
            if not started.ok:
                return None
            rows = []
            for q in question:
                result = await exchange.ask(q, session_id=started.session_id, timeout_s=timeout)
                rows.append((q, result.describe()))
                if result.outcome in (AskOutcome.NOT_FOUND, AskOutcome.CLEANUP):
                    break
            stopped = await exchange.stop_session(started.session_id)
            console.print(stopped.describe())
            return rows
        finally:
            await exchange.shutdown()

    rows = asyncio.run(run())
    if rows is None:
        raise typer.Exit(1)

    table = Table(title=title)
    table.add_column("#", style="dim")
    table.add_column("Question", style="cyan")
    table.add_column("Result")
    for i, (q, described) in enumerate(rows, start=1):
        table.add_row(str(i), q, described)
    console.print(table)


@app.command(hidden=True)
def ui(payload: str = typer.Argument(..., help="Base64 JSON startup payload")):
    """本地聊天窗口进程入口（由启动器调用）。"""
    from askbot.local.ui import run_ui
    run_ui(payload)


if __name__ == "__main__":
    app()
