"""本地渠道模块 - 文件邮箱、UI 进程启动器与本地渠道管理器。"""

from askbot.local.launcher import Launcher
from askbot.local.mailbox import FileMailbox
from askbot.local.manager import CLOSED_SENTINEL, LocalChannelManager

__all__ = ["LocalChannelManager", "FileMailbox", "Launcher", "CLOSED_SENTINEL"]
