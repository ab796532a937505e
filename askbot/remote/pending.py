"""
待答问题登记表 - 远程渠道中"一个问题只被解决一次"的保证所在。

每次向远程端点发出问题都会登记一个 PendingQuestion：
- 一个 asyncio.Future，提问方在其上等待
- 每个端点的投递引用（消息 ID），用于按钮点击的精确匹配
- 超时定时器与倒计时定时器（loop.call_later 返回的 TimerHandle）

【单次解决】
PendingRegistry.resolve() 是唯一的解决入口：检查状态 → 从登记表移除
→ 取消所有定时器和进行中的倒计时编辑 → 设置 Future 结果。
这几步之间没有 await，所以在单线程事件循环里是原子的；
回答、超时、停止、清理同时发生时只有第一个调用返回 True。
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from loguru import logger

# 超时与清理时返回给提问方的哨兵值
TIMEOUT_SENTINEL = "__TIMEOUT__"
CLEANUP_SENTINEL = "__CLEANUP__"


class QuestionState(str, Enum):
    """待答问题的状态：Sent → {Answered, TimedOut, Cancelled}。"""
    SENT = "sent"
    ANSWERED = "answered"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PendingQuestion:
    """
    一个尚未解决的远程问题。

    属性:
        id: 问题 ID（与会话 ID 无关）
        future: 提问方等待的 Future
        html_text: 发出的消息正文（倒计时编辑以它为底）
        options: 预设选项，空列表表示自由回答
        session_id: 所属密集会话（一次性提问为 None）
        deliveries: 端点 ID → 投递引用
        deadline_at: 截止时刻（事件循环时钟）
        state: 当前状态
        handles: 超时/倒计时定时器
        tasks: 进行中的倒计时编辑任务
    """

    id: str
    future: asyncio.Future
    html_text: str = ""
    options: list[str] = field(default_factory=list)
    session_id: str | None = None
    deliveries: dict[str, str] = field(default_factory=dict)
    deadline_at: float = 0.0
    state: QuestionState = QuestionState.SENT
    handles: list[asyncio.TimerHandle] = field(default_factory=list)
    tasks: set[asyncio.Task] = field(default_factory=set)

    @property
    def resolved(self) -> bool:
        return self.state != QuestionState.SENT

    def remaining(self, now: float) -> float:
        """距截止还剩多少秒（不小于 0）。"""
        return max(0.0, self.deadline_at - now)

    def cancel_timers(self) -> None:
        """取消所有定时器与进行中的倒计时编辑。"""
        for handle in self.handles:
            handle.cancel()
        self.handles.clear()
        for task in self.tasks:
            task.cancel()
        self.tasks.clear()


class PendingRegistry:
    """
    待答问题登记表。

    属性:
        _pending: 问题 ID → PendingQuestion（保持登记顺序）
        _by_delivery: (端点 ID, 投递引用) → 问题 ID
    """

    def __init__(self):
        self._pending: dict[str, PendingQuestion] = {}
        self._by_delivery: dict[tuple[str, str], str] = {}

    def register(self, pending: PendingQuestion) -> PendingQuestion:
        if pending.id in self._pending:
            raise ValueError(f"Duplicate pending question id: {pending.id}")
        self._pending[pending.id] = pending
        return pending

    def bind_delivery(self, pending: PendingQuestion, endpoint_id: str, delivery_ref: str) -> None:
        """
        记录问题在某个端点上的投递引用。

        同一 (端点, 引用) 只能对应一个待答问题；问题已经被解决时不再登记。
        """
        if pending.resolved:
            return
        key = (endpoint_id, delivery_ref)
        owner = self._by_delivery.get(key)
        if owner is not None and owner != pending.id:
            raise ValueError(f"Delivery {key} already bound to pending question {owner}")
        pending.deliveries[endpoint_id] = delivery_ref
        self._by_delivery[key] = pending.id

    def get(self, pending_id: str) -> PendingQuestion | None:
        return self._pending.get(pending_id)

    def by_delivery(self, endpoint_id: str, delivery_ref: str) -> PendingQuestion | None:
        """按钮点击的精确匹配。"""
        pending_id = self._by_delivery.get((endpoint_id, delivery_ref))
        if pending_id is None:
            return None
        return self._pending.get(pending_id)

    def first_for_endpoint(self, endpoint_id: str) -> PendingQuestion | None:
        """按登记顺序返回第一个已投递到该端点的未解决问题。"""
        for pending in self._pending.values():
            if not pending.resolved and endpoint_id in pending.deliveries:
                return pending
        return None

    def for_session(self, session_id: str) -> list[PendingQuestion]:
        return [p for p in self._pending.values() if p.session_id == session_id]

    def all(self) -> list[PendingQuestion]:
        return list(self._pending.values())

    def resolve(self, pending: PendingQuestion, value: str | None, state: QuestionState) -> bool:
        """
        解决一个待答问题（幂等）。

        参数:
            pending: 待答问题
            value: 交给提问方的结果
            state: 终态（ANSWERED / TIMED_OUT / CANCELLED）

        返回:
            True 表示本次调用是唯一的胜者
        """
        if pending.resolved:
            return False
        pending.state = state
        self._discard(pending)
        pending.cancel_timers()
        if not pending.future.done():
            pending.future.set_result(value)
        logger.debug(f"Pending question {pending.id} resolved as {state.value}")
        return True

    def _discard(self, pending: PendingQuestion) -> None:
        self._pending.pop(pending.id, None)
        for endpoint_id, ref in pending.deliveries.items():
            if self._by_delivery.get((endpoint_id, ref)) == pending.id:
                del self._by_delivery[(endpoint_id, ref)]

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, pending_id: object) -> bool:
        return pending_id in self._pending
