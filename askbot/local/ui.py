"""
本地聊天 UI 进程 - 在独立终端窗口中显示问题并读取回答。

由 `python -m askbot ui <payload>` 启动，payload 是 base64 编码的 JSON
{sessionId, title, outputDir, timeoutSeconds}。进程的职责：
- 每秒刷新 heartbeat.txt，让父进程知道窗口还开着
- 发现新的问题文件后用 Rich 渲染，用 prompt_toolkit 读取回答
- 回答写入 response-<questionId>.txt（原子重命名）
- 发现 close-session.txt 后退出

标准输出属于终端窗口，日志写到会话目录下的 ui.log。
"""

import asyncio
from pathlib import Path
from typing import Any

from loguru import logger
from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from askbot import __logo__
from askbot.channels.formatting import number_emoji
from askbot.local.mailbox import FileMailbox
from askbot.local.manager import decode_payload

HEARTBEAT_INTERVAL_S = 1.0
WATCH_INTERVAL_S = 0.1

console = Console()


def resolve_choice(raw: str, options: list[str]) -> str:
    """输入是合法的选项编号时返回选项原文，否则按自由回答处理。"""
    text = raw.strip()
    if options and text.isdigit():
        index = int(text) - 1
        if 0 <= index < len(options):
            return options[index]
    return text


def render_question(question: dict[str, Any]) -> None:
    console.print()
    console.print(Panel(Text(question.get("text", "")), title="❓ Question", border_style="cyan"))
    for i, option in enumerate(question.get("options") or []):
        console.print(f"  {number_emoji(i)} {option}")


class ChatWindow:
    """
    UI 进程主体。

    属性:
        mailbox: 会话目录上的邮箱
        title: 窗口标题
        timeout_s: 单个问题的显示超时（None 表示不限）
    """

    def __init__(self, mailbox: FileMailbox, title: str, timeout_s: float | None = None):
        self.mailbox = mailbox
        self.title = title
        self.timeout_s = timeout_s
        self._closed = asyncio.Event()
        self._seen: set[str] = set()
        self._prompt = PromptSession()

    async def run(self) -> None:
        console.print(Panel(Text(self.title, style="bold"), title=f"{__logo__} askbot", border_style="green"))
        console.print("[dim]Waiting for questions...[/dim]")

        heartbeat = asyncio.create_task(self._heartbeat_loop())
        watcher = asyncio.create_task(self._watch_close())
        try:
            while not self._closed.is_set():
                question = self.mailbox.read_question()
                if question is None or question["id"] in self._seen:
                    await asyncio.sleep(WATCH_INTERVAL_S)
                    continue
                self._seen.add(question["id"])
                await self._handle(question)
        finally:
            heartbeat.cancel()
            watcher.cancel()
        console.print("[dim]Session closed.[/dim]")

    async def _handle(self, question: dict[str, Any]) -> None:
        options = list(question.get("options") or [])
        render_question(question)

        prompt = asyncio.create_task(self._read_answer(bool(options)))
        closed = asyncio.create_task(self._closed.wait())
        done, _ = await asyncio.wait({prompt, closed}, timeout=self.timeout_s, return_when=asyncio.FIRST_COMPLETED)
        closed.cancel()

        if prompt not in done:
            prompt.cancel()
            if not self._closed.is_set():
                console.print("[yellow]⏰ Time is up for this question.[/yellow]")
            return

        try:
            raw = prompt.result()
        except (EOFError, KeyboardInterrupt):
            logger.info("Input closed by user")
            self._closed.set()
            return

        answer = resolve_choice(raw, options)
        self.mailbox.respond(question["id"], answer)
        logger.debug(f"Answered question {question['id']}")
        console.print("[green]✓ Sent[/green]")

    async def _read_answer(self, has_options: bool) -> str:
        hint = "Number or answer" if has_options else "Answer"
        with patch_stdout():
            return await self._prompt.prompt_async(HTML(f"<b fg='ansiblue'>{hint}:</b> "))

    async def _heartbeat_loop(self) -> None:
        while not self._closed.is_set():
            try:
                self.mailbox.touch_heartbeat()
            except OSError as e:
                logger.warning(f"Heartbeat write failed: {e}")
            await asyncio.sleep(HEARTBEAT_INTERVAL_S)

    async def _watch_close(self) -> None:
        while not self._closed.is_set():
            if self.mailbox.close_requested():
                logger.info("Close signal received")
                self._closed.set()
                return
            await asyncio.sleep(WATCH_INTERVAL_S)


def run_ui(payload: str) -> None:
    """`askbot ui` 命令的入口。"""
    options = decode_payload(payload)
    work_dir = Path(options["outputDir"])

    logger.remove()
    logger.add(work_dir / "ui.log", level="DEBUG")
    logger.enable("askbot")
    logger.info(f"UI started for session {options['sessionId']}")

    window = ChatWindow(
        FileMailbox(work_dir, options["sessionId"]),
        options.get("title") or "askbot",
        options.get("timeoutSeconds"),
    )
    try:
        asyncio.run(window.run())
    except KeyboardInterrupt:
        logger.info("UI interrupted")
