"""
会话管理模块 - 管理交互会话的元数据与生命周期。

每个会话对应一串相关的问答轮次，属于且仅属于一个渠道（本地或远程）。
SessionStore 由本地管理器、远程管理器和交换门面共同引用，
门面通过它判断某个会话 ID 应该交给哪个管理器处理。
"""

from askbot.session.manager import (
    ChannelKind,
    ChatTurn,
    LocalSession,
    RemoteSession,
    Session,
    SessionStore,
)

__all__ = ["ChannelKind", "ChatTurn", "LocalSession", "RemoteSession", "Session", "SessionStore"]
