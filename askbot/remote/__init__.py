"""远程渠道模块 - 待答问题登记、倒计时与远程渠道管理器。"""

from askbot.remote.manager import RemoteChannelManager
from askbot.remote.pending import CLEANUP_SENTINEL, TIMEOUT_SENTINEL, PendingQuestion, PendingRegistry, QuestionState

__all__ = [
    "RemoteChannelManager",
    "PendingQuestion",
    "PendingRegistry",
    "QuestionState",
    "TIMEOUT_SENTINEL",
    "CLEANUP_SENTINEL",
]
