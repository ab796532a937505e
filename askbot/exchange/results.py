"""
交换结果类型 - 门面返回给调用方的规范化结果。

各后端返回的原始值（回复文本、超时/清理哨兵、None）在这里统一映射为
AskResult，调用方只需要看 outcome；describe() 给出面向用户的纯文本。
"""

from dataclasses import dataclass
from enum import Enum

from askbot.local.manager import CLOSED_SENTINEL
from askbot.remote.pending import CLEANUP_SENTINEL, TIMEOUT_SENTINEL


class AskOutcome(str, Enum):
    ANSWERED = "answered"
    TIMED_OUT = "timed_out"
    NOT_FOUND = "not_found"
    CLEANUP = "cleanup"
    FAILED = "failed"


@dataclass(frozen=True)
class AskResult:
    """
    一次提问的结果。

    属性:
        outcome: 结果类型
        text: 用户回复（仅 ANSWERED）
        session_id: 提问所在的会话（一次性提问为 None）
        error: 失败原因（仅 FAILED）
    """

    outcome: AskOutcome
    text: str | None = None
    session_id: str | None = None
    error: str | None = None

    @classmethod
    def from_raw(cls, raw: str | None, session_id: str | None = None) -> "AskResult":
        """
        把后端原始返回值映射为结果。

        None → NOT_FOUND；超时哨兵与本地轮询窗口耗尽 → TIMED_OUT；
        清理哨兵 → CLEANUP；其余 → ANSWERED。
        """
        if raw is None:
            return cls(AskOutcome.NOT_FOUND, session_id=session_id)
        if raw in (TIMEOUT_SENTINEL, CLOSED_SENTINEL):
            return cls(AskOutcome.TIMED_OUT, session_id=session_id)
        if raw == CLEANUP_SENTINEL:
            return cls(AskOutcome.CLEANUP, session_id=session_id)
        return cls(AskOutcome.ANSWERED, text=raw, session_id=session_id)

    @classmethod
    def failed(cls, error: str, session_id: str | None = None) -> "AskResult":
        return cls(AskOutcome.FAILED, session_id=session_id, error=error)

    @property
    def answered(self) -> bool:
        return self.outcome == AskOutcome.ANSWERED

    def describe(self) -> str:
        if self.outcome == AskOutcome.ANSWERED:
            if not self.text:
                return "User replied with empty input."
            return f"User replied: {self.text}"
        if self.outcome == AskOutcome.TIMED_OUT:
            return "User did not reply: Timeout occurred."
        if self.outcome == AskOutcome.NOT_FOUND:
            if self.session_id:
                return f"Session {self.session_id} not found or already closed."
            return "Session not found or already closed."
        if self.outcome == AskOutcome.CLEANUP:
            return "Question cancelled: the exchange is shutting down."
        return f"Failed to ask the question: {self.error}"


@dataclass(frozen=True)
class StartResult:
    """开启会话的结果。失败时 message 说明原因。"""

    ok: bool
    session_id: str | None = None
    channel: str | None = None
    message: str = ""


class StopOutcome(str, Enum):
    STOPPED = "stopped"
    ALREADY_STOPPED = "already_stopped"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class StopResult:
    outcome: StopOutcome
    session_id: str

    @property
    def stopped(self) -> bool:
        return self.outcome == StopOutcome.STOPPED

    def describe(self) -> str:
        if self.outcome == StopOutcome.STOPPED:
            return f"Intensive chat session {self.session_id} stopped successfully."
        if self.outcome == StopOutcome.ALREADY_STOPPED:
            return f"Session {self.session_id} is already stopped."
        return f"Session {self.session_id} not found or already closed."
