"""
交换门面 - 工具层调用交互核心的唯一入口。

门面本身不保存状态：会话归属由共享的 SessionStore 决定，
本地会话转发给 LocalChannelManager，远程会话转发给 RemoteChannelManager。
所有返回值都是规范化结果（AskResult / StartResult / StopResult），
异常不会越过门面，失败以纯文本描述给调用方。

【操作】
- ask：带会话 ID 时在会话内提问；不带时按渠道做一次性提问
- notify：发送不需要回复的通知
- start_session / stop_session：密集会话的开启与结束
- shutdown：解决所有待答问题、停止所有会话、释放资源
"""

from typing import Literal

from loguru import logger

from askbot.errors import DeliveryError, ExchangeError, ProcessLaunchError, SessionNotFoundError
from askbot.exchange.results import AskResult, StartResult, StopOutcome, StopResult
from askbot.local.manager import LocalChannelManager
from askbot.remote.manager import RemoteChannelManager
from askbot.remote.pending import CLEANUP_SENTINEL
from askbot.session.manager import ChannelKind, SessionStore
from askbot.utils.helpers import new_hex_id

ChannelChoice = Literal["auto", "local", "remote"]


class InteractiveExchange:
    """
    交互交换门面。

    属性:
        store: 两个管理器共享的会话存储
        local: 本地渠道管理器（可选）
        remote: 远程渠道管理器（可选，未配置 Telegram 时为 None）
        default_timeout_s: 未指定超时时的默认值
        project_name: 远程消息标题与本地窗口标题中的项目名
        default_channel: 未指定渠道时的选择策略
    """

    def __init__(
        self,
        store: SessionStore,
        local: LocalChannelManager | None = None,
        remote: RemoteChannelManager | None = None,
        default_timeout_s: float = 60,
        project_name: str = "askbot",
        default_channel: ChannelChoice = "auto",
    ):
        self.store = store
        self.local = local
        self.remote = remote
        self.default_timeout_s = default_timeout_s
        self.project_name = project_name
        self.default_channel = default_channel
        self._closing = False

    async def start(self) -> None:
        """启动本地存活巡检和远程传输层。远程启动失败时退回仅本地模式。"""
        if self.local:
            await self.local.start()
        if self.remote:
            try:
                await self.remote.start()
            except DeliveryError as e:
                logger.error(f"Remote channel unavailable, continuing without it: {e}")
                self.remote = None

    def _pick(self, channel: ChannelChoice | None) -> ChannelKind:
        choice = channel or self.default_channel
        if choice == "auto":
            return ChannelKind.REMOTE if self.remote else ChannelKind.LOCAL
        return ChannelKind(choice)

    async def ask(
        self,
        question: str,
        session_id: str | None = None,
        options: list[str] | None = None,
        timeout_s: float | None = None,
        channel: ChannelChoice | None = None,
    ) -> AskResult:
        """
        提问并等待回复。

        参数:
            question: 问题文本
            session_id: 会话 ID；为 None 时做一次性提问
            options: 预设选项
            timeout_s: 超时秒数（默认 default_timeout_s）
            channel: 一次性提问使用的渠道

        返回:
            AskResult（ANSWERED / TIMED_OUT / NOT_FOUND / CLEANUP / FAILED）
        """
        timeout = timeout_s or self.default_timeout_s

        if session_id is not None:
            try:
                session = self.store.require_active(session_id)
            except SessionNotFoundError as e:
                logger.info(f"Ask rejected: {e}")
                return AskResult.from_raw(None, session_id)
            if session.channel_kind == ChannelKind.LOCAL and self.local:
                raw = await self.local.ask(session_id, question, options, timeout_s)
            elif session.channel_kind == ChannelKind.REMOTE and self.remote:
                raw = await self.remote.ask_in_intensive_chat(session_id, question, options, timeout)
            else:
                return AskResult.failed(f"No {session.channel_kind.value} channel configured", session_id)
            return self._result(raw, session_id)

        kind = self._pick(channel)
        try:
            if kind == ChannelKind.REMOTE:
                if not self.remote:
                    return AskResult.failed("Remote channel is not configured")
                raw = await self.remote.send_input(self.project_name, question, timeout, options)
            else:
                if not self.local:
                    return AskResult.failed("Local channel is not configured")
                raw = await self.local.ask_once(self.project_name, question, options, timeout)
        except ExchangeError as e:
            logger.error(f"Ask failed ({e.code}): {e}")
            return AskResult.failed(str(e))
        return self._result(raw)

    def _result(self, raw: str | None, session_id: str | None = None) -> AskResult:
        # 关闭过程中本地会话被停止，ask 返回 None；与远程一致地报告为清理
        if raw is None and self._closing:
            raw = CLEANUP_SENTINEL
        return AskResult.from_raw(raw, session_id)

    async def notify(self, message: str, channel: ChannelChoice | None = None) -> str:
        """
        发送通知，返回纯文本结果。

        本地渠道不投递桌面通知，只记录日志。
        """
        kind = self._pick(channel)
        if kind == ChannelKind.REMOTE and self.remote:
            delivered = await self.remote.send_notification(self.project_name, message)
            if delivered == 0:
                return f"Failed to send notification: {self.project_name} - {message}"
        else:
            logger.info(f"Notification: {self.project_name} - {message}")
        return f"Notification sent: {self.project_name} - {message}"

    async def start_session(
        self,
        title: str,
        channel: ChannelChoice | None = None,
        timeout_s: float | None = None,
    ) -> StartResult:
        """开启密集会话。"""
        kind = self._pick(channel)

        if kind == ChannelKind.REMOTE:
            if not self.remote:
                return StartResult(False, message="Remote channel is not configured.")
            session_id = new_hex_id()
            if not await self.remote.start_intensive_chat(session_id, self.project_name, title):
                return StartResult(False, channel=kind.value, message="Failed to start Telegram intensive chat session.")
            return StartResult(
                True,
                session_id=session_id,
                channel=kind.value,
                message=(
                    f"Telegram intensive chat session started successfully.\n"
                    f"Session ID: {session_id}\nTitle: {title}\n\n"
                    f"Use this session ID with ask to continue the conversation."
                ),
            )

        if not self.local:
            return StartResult(False, message="Local channel is not configured.")
        try:
            session_id = await self.local.start_session(title, timeout_s)
        except ProcessLaunchError as e:
            logger.error(f"Failed to start local session: {e}")
            return StartResult(False, channel=kind.value, message=f"Failed to start intensive chat session: {e}")
        return StartResult(
            True,
            session_id=session_id,
            channel=kind.value,
            message=(
                f"Intensive chat session started successfully.\n"
                f"Session ID: {session_id}\nTitle: {title}\n\n"
                f"Use this session ID with ask to continue the conversation."
            ),
        )

    async def stop_session(self, session_id: str) -> StopResult:
        """
        结束会话。

        第二次调用返回 ALREADY_STOPPED；从未存在的会话返回 NOT_FOUND。
        """
        session = self.store.get_active(session_id)
        if session is None:
            outcome = StopOutcome.ALREADY_STOPPED if self.store.was_closed(session_id) else StopOutcome.NOT_FOUND
            return StopResult(outcome, session_id)

        if session.channel_kind == ChannelKind.LOCAL and self.local:
            stopped = await self.local.stop_session(session_id)
        elif session.channel_kind == ChannelKind.REMOTE and self.remote:
            stopped = await self.remote.stop_intensive_chat(session_id)
        else:
            self.store.remove(session_id)
            stopped = True
        return StopResult(StopOutcome.STOPPED if stopped else StopOutcome.ALREADY_STOPPED, session_id)

    async def shutdown(self) -> None:
        """解决所有待答问题（'__CLEANUP__'），停止所有会话，释放进程和目录。"""
        logger.info("Shutting down interactive exchange")
        self._closing = True
        if self.remote:
            await self.remote.stop()
        if self.local:
            await self.local.shutdown()
