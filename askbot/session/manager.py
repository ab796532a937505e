"""
会话存储实现模块 - 会话元数据的登记、查询与回收。

本模块包含：
- Session：所有会话的公共字段（ID、渠道类型、创建时间、活跃标志）
- LocalSession / RemoteSession：两种渠道各自持有的资源
- SessionStore：会话 ID → 会话对象的映射，由本地和远程管理器共享

【生命周期】
startSession 创建 → 每次 ask 修改（心跳刷新、历史追加、回答回填）
→ stopSession 或存活监控发现进程已死时销毁。
is_active 只能从 True 变为 False，不可逆；
会话被移除后 ID 进入"已关闭"墓碑表，用于区分"已停止"和"从未存在"。

【设计要点】
不使用模块级全局变量：每个 SessionStore 实例就是一份独立状态，
测试中可以在同一进程里同时运行多个互不干扰的核心。
"""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from askbot.errors import SessionNotFoundError


class ChannelKind(str, Enum):
    """会话所属渠道类型。"""
    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class Session:
    """
    会话公共部分。

    属性:
        id: 会话唯一标识（创建时生成）
        channel_kind: 渠道类型（本地 / 远程）
        title: 会话标题
        created_at: 创建时间
        is_active: 是否活跃；一旦为 False 不再接受提问
    """

    id: str
    channel_kind: ChannelKind
    title: str = ""
    created_at: datetime = field(default_factory=datetime.now)
    is_active: bool = True

    def deactivate(self) -> bool:
        """
        将会话标记为非活跃（单向迁移）。

        返回:
            True 表示本次调用完成了迁移，False 表示之前已经是非活跃
        """
        if not self.is_active:
            return False
        self.is_active = False
        return True


@dataclass
class LocalSession(Session):
    """本地会话：持有工作目录、UI 进程句柄和最近一次心跳时间。"""

    work_dir: Path = field(default_factory=Path)
    process: asyncio.subprocess.Process | None = None
    timeout_s: float | None = None
    last_heartbeat_at: datetime | None = None


@dataclass
class ChatTurn:
    """密集会话中的一轮问答。answer 为 None 表示尚未回答。"""

    question: str
    answer: str | None = None
    delivery_ref: str | None = None


@dataclass
class RemoteSession(Session):
    """远程（密集）会话：绑定一个端点，保留有序的问答历史，停止时用于生成摘要。"""

    endpoint_id: str = ""
    recipient_label: str = ""
    history: list[ChatTurn] = field(default_factory=list)

    def latest_unanswered(self) -> ChatTurn | None:
        """返回最后一条历史记录（仅当它尚未被回答时）。"""
        if self.history and self.history[-1].answer is None:
            return self.history[-1]
        return None


class SessionStore:
    """
    会话存储 - 进程内的会话 ID → 会话映射。

    属性:
        _sessions: 当前登记的会话字典 {session_id: Session}
        _closed: 已移除会话的墓碑表（有上限的有序字典），用于回答"已经停止过"
    """

    def __init__(self, max_tombstones: int = 256):
        self._sessions: dict[str, Session] = {}
        self._closed: "OrderedDict[str, datetime]" = OrderedDict()
        self._max_tombstones = max_tombstones

    def add(self, session: Session) -> Session:
        """登记一个新会话。ID 冲突视为编程错误。"""
        if session.id in self._sessions:
            raise ValueError(f"Duplicate session id: {session.id}")
        self._sessions[session.id] = session
        logger.debug(f"Session {session.id} registered ({session.channel_kind.value})")
        return session

    def get(self, session_id: str) -> Session | None:
        """按 ID 获取会话（无论是否活跃）。"""
        return self._sessions.get(session_id)

    def get_active(self, session_id: str) -> Session | None:
        """按 ID 获取活跃会话，不存在或已停用时返回 None。"""
        session = self._sessions.get(session_id)
        if session is None or not session.is_active:
            return None
        return session

    def require_active(self, session_id: str) -> Session:
        """同 get_active，但会话不可用时抛出 SessionNotFoundError。"""
        session = self.get_active(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def deactivate(self, session_id: str) -> bool:
        """停用会话。返回 True 表示本次完成了 True→False 迁移。"""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        changed = session.deactivate()
        if changed:
            self._remember_closed(session_id)
        return changed

    def remove(self, session_id: str) -> Session | None:
        """从存储中移除会话，并记入墓碑表。"""
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.deactivate()
            self._remember_closed(session_id)
            logger.debug(f"Session {session_id} removed")
        return session

    def was_closed(self, session_id: str) -> bool:
        """会话是否曾经存在并已停止（包括已停用但尚未移除的）。"""
        if session_id in self._closed:
            return True
        session = self._sessions.get(session_id)
        return session is not None and not session.is_active

    def list_sessions(self, kind: ChannelKind | None = None) -> list[Session]:
        """列出当前登记的会话，可按渠道类型过滤。"""
        return [s for s in self._sessions.values() if kind is None or s.channel_kind == kind]

    def summary(self) -> dict[str, Any]:
        """存储状态摘要，供 CLI status 命令展示。"""
        return {
            "active": sum(1 for s in self._sessions.values() if s.is_active),
            "tracked": len(self._sessions),
            "closed": len(self._closed),
        }

    def _remember_closed(self, session_id: str) -> None:
        self._closed[session_id] = datetime.now()
        self._closed.move_to_end(session_id)
        while len(self._closed) > self._max_tombstones:
            self._closed.popitem(last=False)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
