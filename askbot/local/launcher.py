"""
UI 进程启动器 - 按平台选择在新终端窗口中启动 `python -m askbot ui <payload>`。

启动策略：
- macOS：osascript 让 Terminal 执行命令；失败时写一个 .command 文件用 `open -a Terminal` 打开
- Windows：新控制台窗口
- Linux/其他：有图形显示时用终端模拟器；否则直接以新会话（进程组）分离启动

终止：POSIX 上向整个进程组发送 SIGTERM，其他平台调用 terminate()。
所有终止操作都是尽力而为。
"""

import asyncio
import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path

from loguru import logger

from askbot.errors import ProcessLaunchError

# 按优先级尝试的终端模拟器，以及它们"执行命令"的参数写法
TERMINAL_EMULATORS: list[tuple[str, list[str]]] = [
    ("x-terminal-emulator", ["-e"]),
    ("gnome-terminal", ["--"]),
    ("konsole", ["-e"]),
    ("xterm", ["-e"]),
]


def ui_command(payload: str) -> list[str]:
    """UI 子进程的完整命令行。"""
    return [sys.executable, "-m", "askbot", "ui", payload]


def _applescript_quote(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')


class Launcher:
    """
    平台相关的 UI 进程启动器。

    launch() 返回的进程句柄可能为 None（例如 macOS 上 UI 运行在 Terminal 里，
    不是本进程的子进程），此时只能依靠关闭信号和心跳来管理其生命周期。
    """

    def __init__(self, platform: str | None = None):
        self.platform = platform or sys.platform

    async def launch(self, payload: str, work_dir: Path) -> asyncio.subprocess.Process | None:
        """
        启动 UI 进程。

        异常:
            ProcessLaunchError: 所有策略都失败
        """
        if self.platform == "darwin":
            strategies = [self._launch_osascript, self._launch_command_file]
        elif self.platform == "win32":
            strategies = [self._launch_new_console]
        else:
            strategies = [self._launch_terminal_emulator, self._launch_detached]

        errors: list[str] = []
        for strategy in strategies:
            try:
                process = await strategy(payload, work_dir)
            except (OSError, ValueError) as e:
                logger.warning(f"UI launch strategy {strategy.__name__} failed: {e}")
                errors.append(f"{strategy.__name__}: {e}")
                continue
            logger.info(f"UI process launched via {strategy.__name__}")
            return process

        raise ProcessLaunchError(
            "Could not launch the chat UI process",
            {"platform": self.platform, "errors": errors},
        )

    def terminate(self, process: asyncio.subprocess.Process | None) -> None:
        """尽力终止 UI 进程（POSIX 上终止整个进程组）。"""
        if process is None or process.returncode is not None:
            return
        try:
            if self.platform == "win32":
                process.terminate()
            else:
                os.killpg(process.pid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            logger.debug(f"Terminate of UI process {process.pid} skipped: {e}")

    # ---------- macOS ----------

    async def _launch_osascript(self, payload: str, work_dir: Path) -> None:
        python, *rest = ui_command(payload)
        shell_cmd = f'exec "{python}" ' + " ".join(f'"{arg}"' for arg in rest) + "; exit 0"
        proc = await asyncio.create_subprocess_exec(
            "osascript",
            "-e", 'tell application "Terminal" to activate',
            "-e", f'tell application "Terminal" to do script "{_applescript_quote(shell_cmd)}"',
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        code = await proc.wait()
        if code != 0:
            raise OSError(f"osascript exited with {code}")
        return None

    async def _launch_command_file(self, payload: str, work_dir: Path) -> None:
        python, *rest = ui_command(payload)
        script = work_dir / f"askbot-chat-{work_dir.name}.command"
        script.write_text(
            "#!/bin/bash\nexec " + " ".join(f'"{arg}"' for arg in [python, *rest]) + "\n",
            encoding="utf-8",
        )
        script.chmod(0o755)
        await asyncio.create_subprocess_exec(
            "open", "-a", "Terminal", str(script),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
        return None

    # ---------- Windows ----------

    async def _launch_new_console(self, payload: str, work_dir: Path) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *ui_command(payload),
            cwd=str(work_dir),
            creationflags=getattr(subprocess, "CREATE_NEW_CONSOLE", 0),
        )

    # ---------- Linux / 其他 ----------

    async def _launch_terminal_emulator(self, payload: str, work_dir: Path) -> asyncio.subprocess.Process:
        if not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY")):
            raise OSError("no graphical display available")
        for name, exec_flag in TERMINAL_EMULATORS:
            binary = shutil.which(name)
            if binary:
                return await asyncio.create_subprocess_exec(
                    binary, *exec_flag, *ui_command(payload),
                    cwd=str(work_dir),
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.DEVNULL,
                    start_new_session=True,
                )
        raise OSError("no terminal emulator found")

    async def _launch_detached(self, payload: str, work_dir: Path) -> asyncio.subprocess.Process:
        return await asyncio.create_subprocess_exec(
            *ui_command(payload),
            cwd=str(work_dir),
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
