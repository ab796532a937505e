"""
askbot 模块入口点 - 支持通过 `python -m askbot` 方式启动

启动链路：
    python -m askbot → __main__.py → cli/commands.py 中的 Typer app

本地渠道派生 UI 子进程时也走这条链路（`python -m askbot ui <payload>`），
因此子进程与父进程使用完全相同的解释器和包版本。
"""

from askbot.cli.commands import app

if __name__ == "__main__":
    app()
