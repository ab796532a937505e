"""
远程渠道管理器 - 通过聊天机器人向人提问并等待回复。

本模块是远程后端的核心，负责：
1. 投递：把问题格式化后发送给白名单中的每个端点（可带选项按钮）
2. 关联：登记待答问题，把入站消息/按钮点击路由到对应问题
3. 超时：从投递时刻开始计时，到期返回 '__TIMEOUT__' 并通知用户
4. 倒计时：在剩余 30s、15s 以及最后 10 秒编辑原消息提示剩余时间
5. 密集会话：绑定一个端点连续提问，保留问答历史，结束时发送摘要

【并发模型】
单线程 asyncio。入站事件由 run() 这一个消费者按到达顺序处理；
每个待答问题只通过 PendingRegistry.resolve() 解决一次。

【Java 开发者类比】
- PendingQuestion.future 相当于 CompletableFuture
- loop.call_later 相当于 ScheduledExecutorService.schedule，返回可取消的句柄
"""

import asyncio
from typing import Any, Coroutine

from loguru import logger

from askbot.bus.events import InboundEvent
from askbot.bus.queue import MessageBus
from askbot.channels.base import ChannelTransport
from askbot.channels.formatting import (
    build_options_message,
    countdown_suffix,
    decode_choice,
    format_message,
    selection_feedback,
    selection_suffix,
)
from askbot.errors import DeliveryError
from askbot.remote.countdown import DEFAULT_CHECKPOINTS, arm_countdown
from askbot.remote.pending import (
    CLEANUP_SENTINEL,
    TIMEOUT_SENTINEL,
    PendingQuestion,
    PendingRegistry,
    QuestionState,
)
from askbot.session.manager import ChannelKind, ChatTurn, RemoteSession, SessionStore
from askbot.utils.helpers import escape_html, new_hex_id

EXPIRED_CALLBACK_TEXT = "This question has expired"


def _seconds(value: float) -> str:
    """60.0 → "60"，0.5 → "0.5"。"""
    return f"{value:g}"


class RemoteChannelManager:
    """
    远程渠道管理器。

    属性:
        transport: 远程传输层（Telegram 或测试替身）
        store: 共享的会话存储（密集会话登记在这里）
        bus: 入站事件总线
        checkpoints: 倒计时检查点（剩余秒数）
        pending: 待答问题登记表
        _tasks: 后台尽力而为任务（超时通知等）
    """

    def __init__(
        self,
        transport: ChannelTransport,
        store: SessionStore,
        bus: MessageBus | None = None,
        checkpoints: list[int] | None = None,
    ):
        self.transport = transport
        self.store = store
        self.bus = bus or transport.bus
        self.checkpoints = list(checkpoints) if checkpoints is not None else list(DEFAULT_CHECKPOINTS)
        self.pending = PendingRegistry()
        self._tasks: set[asyncio.Task] = set()
        self._running = False
        self._consumer: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # 生命周期
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """启动传输层，并在后台运行入站事件消费循环。"""
        await self.transport.start()
        self._consumer = asyncio.create_task(self.run())

    async def run(self) -> None:
        """
        入站事件主循环 - 总线的唯一消费者。

        通过 asyncio.wait_for 设置 1 秒超时来周期性检查 _running 状态。
        """
        self._running = True
        logger.info("Remote channel manager started")

        while self._running:
            try:
                event = await asyncio.wait_for(self.bus.consume_inbound(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            try:
                await self.handle_event(event)
            except Exception as e:
                logger.error(f"Error handling inbound event from {event.endpoint_id}: {e}")

    async def stop(self) -> None:
        """停止消费循环 → 解决所有待答问题 → 停止传输层。"""
        self._running = False
        if self._consumer:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        self.cleanup()
        await self.transport.stop()
        logger.info("Remote channel manager stopped")

    def cleanup(self) -> None:
        """
        同步清理：所有待答问题以 '__CLEANUP__' 解决，取消全部定时器，
        所有密集会话标记为非活跃。
        """
        logger.info(
            f"Remote cleanup: {len(self.pending)} pending question(s), "
            f"{len(self.store.list_sessions(ChannelKind.REMOTE))} intensive session(s)"
        )
        for pending in self.pending.all():
            self.pending.resolve(pending, CLEANUP_SENTINEL, QuestionState.CANCELLED)
        for session in self.store.list_sessions(ChannelKind.REMOTE):
            self.store.deactivate(session.id)
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # ------------------------------------------------------------------
    # 一次性提问与通知
    # ------------------------------------------------------------------

    async def send_input(
        self,
        recipient_label: str,
        message: str,
        timeout_s: float,
        options: list[str] | None = None,
    ) -> str | None:
        """
        向所有白名单端点发送问题，返回第一条匹配的回复。

        返回:
            回复文本；超时返回 '__TIMEOUT__'，清理返回 '__CLEANUP__'
        """
        options = list(options or [])
        html_text = build_options_message(format_message(recipient_label, message), options)
        notice = (
            f"⏰ <i>Question from <b>{escape_html(recipient_label)}</b> "
            f"has timed out ({_seconds(timeout_s)}s)</i>"
        )
        pending = self._open_pending(html_text, options, timeout_s, notice)

        try:
            delivered = 0
            for endpoint_id in self.transport.allow_from:
                if pending.resolved:
                    break
                try:
                    ref = await self.transport.send(endpoint_id, html_text, options or None)
                except DeliveryError as e:
                    logger.error(f"Failed to send question {pending.id} to {endpoint_id}: {e}")
                    continue
                self.pending.bind_delivery(pending, endpoint_id, ref)
                delivered += 1
            if delivered == 0:
                # 全部失败时不提前返回，等待自然超时
                logger.warning(f"Question {pending.id} was not delivered to any endpoint")
            else:
                logger.info(f"Question {pending.id} sent to {delivered} endpoint(s), timeout {_seconds(timeout_s)}s")
            return await pending.future
        finally:
            self._abandon(pending)

    async def send_notification(self, recipient_label: str, message: str) -> int:
        """向所有白名单端点发送通知（不等待回复），返回成功送达的端点数。"""
        text = f"🔔 {format_message(recipient_label, message)}"
        delivered = 0
        for endpoint_id in self.transport.allow_from:
            try:
                await self.transport.send(endpoint_id, text)
                delivered += 1
                logger.info(f"Notification sent to {endpoint_id}")
            except DeliveryError as e:
                logger.error(f"Failed to send notification to {endpoint_id}: {e}")
        return delivered

    # ------------------------------------------------------------------
    # 密集会话
    # ------------------------------------------------------------------

    async def start_intensive_chat(self, session_id: str, recipient_label: str, title: str) -> bool:
        """
        开启密集会话：绑定第一个白名单端点并发送开场消息。

        白名单为空或开场消息发送失败时返回 False，会话不会被登记。
        """
        if not self.transport.allow_from:
            logger.warning("Cannot start intensive chat: no allowed endpoints configured")
            return False
        if session_id in self.store:
            logger.warning(f"Session {session_id} already exists")
            return False

        endpoint_id = self.transport.allow_from[0]
        announcement = format_message(
            recipient_label,
            f"🚀 **Intensive Chat Session Started**\n\n"
            f"📋 **Session:** {title}\n"
            f"🆔 **ID:** `{session_id}`\n\n"
            f"💬 You can now send messages, photos, files, or voice messages. "
            f"This session will stay active until closed.",
        )
        try:
            await self.transport.send(endpoint_id, announcement)
        except DeliveryError as e:
            logger.error(f"Failed to start intensive chat {session_id}: {e}")
            return False

        self.store.add(RemoteSession(
            id=session_id,
            channel_kind=ChannelKind.REMOTE,
            title=title,
            endpoint_id=endpoint_id,
            recipient_label=recipient_label,
        ))
        logger.info(f"Intensive chat {session_id} started with {endpoint_id}")
        return True

    async def ask_in_intensive_chat(
        self,
        session_id: str,
        question: str,
        options: list[str] | None = None,
        timeout_s: float = 60,
    ) -> str | None:
        """
        在密集会话中提问。

        返回:
            回复文本、'__TIMEOUT__'、'__CLEANUP__'；
            会话不存在/已停止、投递失败或等待期间会话被停止时返回 None
        """
        session = self.store.get_active(session_id)
        if not isinstance(session, RemoteSession):
            return None

        options = list(options or [])
        turn = ChatTurn(question=question)
        session.history.append(turn)
        number = len(session.history)

        html_text = build_options_message(
            format_message(session.recipient_label, f"❓ **Question {number}:**\n\n{question}"),
            options,
        )
        notice = f"⏰ <i>Question {number} has timed out ({_seconds(timeout_s)}s)</i>"
        pending = self._open_pending(html_text, options, timeout_s, notice, session_id=session_id)

        try:
            try:
                ref = await self.transport.send(session.endpoint_id, html_text, options or None)
            except DeliveryError as e:
                logger.error(f"Failed to send question {number} in intensive chat {session_id}: {e}")
                return None
            self.pending.bind_delivery(pending, session.endpoint_id, ref)
            turn.delivery_ref = ref

            answer = await pending.future
        finally:
            self._abandon(pending)

        if answer not in (None, TIMEOUT_SENTINEL, CLEANUP_SENTINEL):
            turn.answer = answer
        return answer

    async def stop_intensive_chat(self, session_id: str) -> bool:
        """
        停止密集会话：标记非活跃 → 解决其待答问题 → 发送摘要 → 移除。

        返回:
            会话是否存在
        """
        session = self.store.get(session_id)
        if not isinstance(session, RemoteSession):
            return False

        self.store.deactivate(session_id)
        for pending in self.pending.for_session(session_id):
            self.pending.resolve(pending, None, QuestionState.CANCELLED)

        lines = [
            f"{i}. **Q:** {turn.question}\n   **A:** {turn.answer if turn.answer else '_No answer_'}"
            for i, turn in enumerate(session.history, start=1)
        ]
        summary = format_message(
            session.recipient_label,
            f"🏁 **Intensive Chat Session Ended**\n\n"
            f"📊 **Summary** ({len(session.history)} questions):\n\n"
            + "\n\n".join(lines)
            + "\n\n✅ Session closed successfully.",
        )
        try:
            await self.transport.send(session.endpoint_id, summary)
            logger.info(f"Intensive chat {session_id} stopped ({len(session.history)} questions)")
        except DeliveryError as e:
            logger.error(f"Failed to send summary for intensive chat {session_id}: {e}")

        self.store.remove(session_id)
        return True

    # ------------------------------------------------------------------
    # 入站路由
    # ------------------------------------------------------------------

    async def handle_event(self, event: InboundEvent) -> None:
        """路由一条入站事件。白名单之外的端点直接丢弃，不做任何回复。"""
        if not self.transport.is_allowed(event.endpoint_id):
            logger.warning(f"Ignoring {event.kind} from unauthorized endpoint {event.endpoint_id}")
            return
        if event.is_callback:
            await self._handle_callback(event)
        else:
            self._handle_message(event)

    def _handle_message(self, event: InboundEvent) -> None:
        """
        文本消息：
        1. 端点有活跃的密集会话 → 回填到最近一条未回答的历史记录
        2. 按登记顺序解决该端点上的第一个待答问题（每条消息最多解决一个）
        """
        session = self._intensive_for_endpoint(event.endpoint_id)
        if session is not None:
            turn = session.latest_unanswered()
            if turn is not None:
                turn.answer = event.payload

        pending = self.pending.first_for_endpoint(event.endpoint_id)
        if pending is None:
            logger.debug(f"No pending question for message from {event.endpoint_id}")
            return
        self.pending.resolve(pending, event.payload, QuestionState.ANSWERED)
        logger.info(f"Question {pending.id} answered by {event.endpoint_id}")

    async def _handle_callback(self, event: InboundEvent) -> None:
        """按钮点击：先解决问题，再尽力回执并把原消息改为"已选择"。"""
        pending = None
        if event.delivery_ref is not None:
            pending = self.pending.by_delivery(event.endpoint_id, event.delivery_ref)

        if pending is None:
            logger.debug(f"Callback for unknown message {event.delivery_ref} from {event.endpoint_id}")
            if event.callback_id:
                await self._answer_quietly(event.callback_id, EXPIRED_CALLBACK_TEXT)
            return

        choice = decode_choice(event.payload, pending.options)
        if not self.pending.resolve(pending, choice, QuestionState.ANSWERED):
            return
        logger.info(f"Question {pending.id} answered by button from {event.endpoint_id}")

        if event.callback_id:
            await self._answer_quietly(event.callback_id, selection_feedback(choice, pending.options))
        await self._edit_quietly(
            event.endpoint_id,
            event.delivery_ref,
            pending.html_text + selection_suffix(choice, pending.options),
            None,
        )

    def _intensive_for_endpoint(self, endpoint_id: str) -> RemoteSession | None:
        for session in self.store.list_sessions(ChannelKind.REMOTE):
            if isinstance(session, RemoteSession) and session.is_active and session.endpoint_id == endpoint_id:
                return session
        return None

    # ------------------------------------------------------------------
    # 待答问题：登记、超时、倒计时
    # ------------------------------------------------------------------

    def _open_pending(
        self,
        html_text: str,
        options: list[str],
        timeout_s: float,
        timeout_notice: str,
        session_id: str | None = None,
    ) -> PendingQuestion:
        """登记待答问题，并在投递前启动超时与倒计时（超时从投递时刻算起）。"""
        loop = asyncio.get_running_loop()
        pending = self.pending.register(PendingQuestion(
            id=new_hex_id(),
            future=loop.create_future(),
            html_text=html_text,
            options=options,
            session_id=session_id,
            deadline_at=loop.time() + timeout_s,
        ))
        pending.handles.append(loop.call_later(timeout_s, self._on_timeout, pending, timeout_notice))
        pending.handles.extend(arm_countdown(
            timeout_s,
            lambda remaining: self._on_checkpoint(pending, remaining),
            self.checkpoints,
        ))
        return pending

    def _abandon(self, pending: PendingQuestion) -> None:
        """提问方不再等待（例如任务被取消）时收尾，避免登记表残留。"""
        if not pending.resolved:
            self.pending.resolve(pending, None, QuestionState.CANCELLED)

    def _on_timeout(self, pending: PendingQuestion, notice: str) -> None:
        if not self.pending.resolve(pending, TIMEOUT_SENTINEL, QuestionState.TIMED_OUT):
            return
        logger.info(f"Question {pending.id} timed out")
        for endpoint_id in pending.deliveries:
            self._spawn(self._send_quietly(endpoint_id, notice))

    def _on_checkpoint(self, pending: PendingQuestion, remaining: int) -> None:
        if pending.resolved:
            return
        text = pending.html_text + countdown_suffix(remaining)
        for endpoint_id, ref in pending.deliveries.items():
            task = asyncio.create_task(
                self._edit_quietly(endpoint_id, ref, text, pending.options or None)
            )
            pending.tasks.add(task)
            task.add_done_callback(pending.tasks.discard)

    # ------------------------------------------------------------------
    # 尽力而为的传输操作
    # ------------------------------------------------------------------

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _send_quietly(self, endpoint_id: str, html_text: str) -> None:
        try:
            await self.transport.send(endpoint_id, html_text)
        except DeliveryError as e:
            logger.warning(f"Failed to send notice to {endpoint_id}: {e}")

    async def _edit_quietly(
        self,
        endpoint_id: str,
        delivery_ref: str,
        html_text: str,
        options: list[str] | None,
    ) -> None:
        try:
            await self.transport.edit(endpoint_id, delivery_ref, html_text, options)
        except DeliveryError as e:
            logger.warning(f"Failed to edit message {delivery_ref} on {endpoint_id}: {e}")

    async def _answer_quietly(self, callback_id: str, text: str) -> None:
        try:
            await self.transport.answer_callback(callback_id, text)
        except DeliveryError as e:
            logger.warning(f"Failed to answer callback {callback_id}: {e}")

    async def drain(self) -> None:
        """等待所有后台尽力而为任务结束。"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
