"""
Telegram 传输层实现 - 基于 python-telegram-bot 库的长轮询模式。

本模块实现了 askbot 远程渠道与 Telegram 平台的对接，采用长轮询（Long Polling），
无需公网 IP 或 Webhook。它只负责"搬运"：
- 出站：发送/编辑 HTML 消息，附带内联选项按钮
- 入站：把文本、附件、按钮点击标准化为 InboundEvent 发布到消息总线

问题与回复之间的关联、超时、倒计时全部由 RemoteChannelManager 负责。

【消息处理流程】
1. Telegram 服务器 → python-telegram-bot 接收更新
2. _on_message() / _on_callback() 解析内容
3. _publish_event()（继承自 ChannelTransport）发布到消息总线
4. RemoteChannelManager 按到达顺序路由到对应的待答问题
"""

from __future__ import annotations

import html
import re
from pathlib import Path

from loguru import logger
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import Application, CallbackQueryHandler, ContextTypes, MessageHandler, filters
from telegram.request import HTTPXRequest

from askbot.bus.queue import MessageBus
from askbot.channels.base import ChannelTransport
from askbot.channels.formatting import keyboard_rows
from askbot.config.schema import TelegramConfig
from askbot.errors import DeliveryError
from askbot.utils.helpers import get_media_path


def _html_to_plain(text: str) -> str:
    """HTML 解析失败时的降级：去掉标签、反转义实体。"""
    return html.unescape(re.sub(r"<[^>]+>", "", text))


def _build_markup(options: list[str] | None) -> InlineKeyboardMarkup | None:
    """把选项列表转换为 Telegram 内联键盘。"""
    if not options:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(label, callback_data=data) for label, data in row]
        for row in keyboard_rows(options)
    ])


class TelegramTransport(ChannelTransport):
    """
    Telegram 传输层 - 长轮询接收，Bot API 发送。

    属性:
        config: Telegram 渠道配置（token、白名单、代理）
        media_dir: 附件下载目录
        _app: python-telegram-bot 的 Application 实例
    """

    name = "telegram"

    def __init__(self, config: TelegramConfig, bus: MessageBus, media_dir: Path | None = None):
        super().__init__(config.allow_from, bus)
        self.config: TelegramConfig = config
        self.media_dir = media_dir
        self._app: Application | None = None

    async def start(self) -> None:
        """
        启动 Telegram 机器人（长轮询模式）。

        与常驻网关不同，这里在轮询开始后立即返回，
        调用方随后即可发送问题并等待回复。
        """
        token = self.config.resolve_token()
        if not token:
            raise DeliveryError("Telegram bot token not configured")

        # 较大的连接池避免长时间运行时的池超时
        req = HTTPXRequest(connection_pool_size=16, pool_timeout=5.0, connect_timeout=30.0, read_timeout=30.0)
        builder = Application.builder().token(token).request(req).get_updates_request(req)
        if self.config.proxy:
            builder = builder.proxy(self.config.proxy).get_updates_proxy(self.config.proxy)
        self._app = builder.build()
        self._app.add_error_handler(self._on_error)

        self._app.add_handler(CallbackQueryHandler(self._on_callback))
        self._app.add_handler(
            MessageHandler(
                (filters.TEXT | filters.PHOTO | filters.VOICE | filters.VIDEO | filters.Document.ALL)
                & ~filters.COMMAND,
                self._on_message,
            )
        )

        logger.info("Starting Telegram bot (polling mode)...")
        try:
            await self._app.initialize()
            await self._app.start()

            bot_info = await self._app.bot.get_me()
            logger.info(f"Telegram bot @{bot_info.username} connected, {len(self.allow_from)} allowed chat(s)")

            await self._app.updater.start_polling(
                allowed_updates=["message", "callback_query"],
                drop_pending_updates=True,  # 启动时忽略积压的旧消息，避免误答新问题
            )
        except TelegramError as e:
            await self.stop()
            raise DeliveryError(f"Could not connect to Telegram: {e}") from e
        self._running = True

    async def stop(self) -> None:
        """停止轮询 → 停止应用 → 释放资源。"""
        self._running = False
        if self._app:
            logger.info("Stopping Telegram bot...")
            try:
                if self._app.updater and self._app.updater.running:
                    await self._app.updater.stop()
                if self._app.running:
                    await self._app.stop()
                await self._app.shutdown()
            except TelegramError as e:
                logger.warning(f"Error while stopping Telegram bot: {e}")
            self._app = None

    async def send(self, endpoint_id: str, html_text: str, options: list[str] | None = None) -> str:
        """
        发送 HTML 消息；HTML 解析失败时回退为纯文本发送。

        返回:
            Telegram message_id 的字符串形式
        """
        if not self._app:
            raise DeliveryError("Telegram bot not running", endpoint_id)

        chat_id = self._chat_id(endpoint_id)
        markup = _build_markup(options)
        try:
            sent = await self._app.bot.send_message(
                chat_id=chat_id, text=html_text, parse_mode="HTML", reply_markup=markup
            )
        except TelegramError as e:
            logger.warning(f"HTML send to {endpoint_id} failed, falling back to plain text: {e}")
            try:
                sent = await self._app.bot.send_message(
                    chat_id=chat_id, text=_html_to_plain(html_text), reply_markup=markup
                )
            except TelegramError as e2:
                raise DeliveryError(f"Error sending Telegram message: {e2}", endpoint_id) from e2
        return str(sent.message_id)

    async def edit(
        self,
        endpoint_id: str,
        delivery_ref: str,
        html_text: str,
        options: list[str] | None = None,
    ) -> None:
        """编辑已发送的消息；不传 options 时 Telegram 会移除原有按钮。"""
        if not self._app:
            raise DeliveryError("Telegram bot not running", endpoint_id)
        try:
            await self._app.bot.edit_message_text(
                text=html_text,
                chat_id=self._chat_id(endpoint_id),
                message_id=int(delivery_ref),
                parse_mode="HTML",
                reply_markup=_build_markup(options),
            )
        except TelegramError as e:
            raise DeliveryError(f"Error editing Telegram message {delivery_ref}: {e}", endpoint_id) from e

    async def answer_callback(self, callback_id: str, text: str) -> None:
        if not self._app:
            return
        try:
            await self._app.bot.answer_callback_query(callback_id, text=text, show_alert=False)
        except TelegramError as e:
            logger.debug(f"answer_callback_query failed: {e}")

    def _chat_id(self, endpoint_id: str) -> int:
        try:
            return int(endpoint_id)  # Telegram 的 chat_id 是整数
        except ValueError as e:
            raise DeliveryError(f"Invalid chat_id: {endpoint_id}", endpoint_id) from e

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """处理内联按钮点击：按"端点 + 原消息 ID"转发给管理器。"""
        query = update.callback_query
        if not query or not query.message or query.data is None:
            return

        await self._publish_event(
            endpoint_id=str(query.message.chat.id),
            kind="callback",
            payload=query.data,
            delivery_ref=str(query.message.message_id),
            callback_id=query.id,
            metadata={"user_id": query.from_user.id if query.from_user else None},
        )

    async def _on_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        """
        处理所有非命令消息（文本、图片、文档、语音、视频）。

        附件只下载到本地并给出路径标记，不解析其内容。
        """
        message = update.message
        if not message:
            return

        endpoint_id = str(message.chat_id)
        # 先做白名单校验，未授权端点的附件不下载
        if not self.is_allowed(endpoint_id):
            logger.warning(f"Unauthorized chat attempt from {endpoint_id}")
            return

        payload = await self._extract_payload(message)
        if payload is None:
            return

        logger.debug(f"Telegram message from {endpoint_id}: {payload[:50]}...")
        await self._publish_event(
            endpoint_id=endpoint_id,
            kind="message",
            payload=payload,
            metadata={"message_id": message.message_id},
        )

    async def _extract_payload(self, message) -> str | None:
        """把不同类型的消息转换为一条文本载荷；不支持的类型返回 None。"""
        caption = f" {message.caption}" if message.caption else ""

        if message.text is not None:
            return message.text
        if message.photo:
            largest = message.photo[-1]  # 取最大尺寸的图片
            path = await self._download(largest.file_id, f"{largest.file_unique_id}.jpg")
            return f"[PHOTO:{largest.width}x{largest.height}:{path}]{caption}"
        if message.document:
            name = message.document.file_name or "unknown"
            path = await self._download(message.document.file_id, name)
            return f"[FILE:{name}] {path}{caption}"
        if message.voice:
            return f"[VOICE:{message.voice.file_id}]"
        if message.video:
            return f"[VIDEO:{message.video.file_id}]{caption}"
        return None

    async def _download(self, file_id: str, filename: str) -> str:
        """下载附件到媒体目录，失败时返回错误标记而不是抛出。"""
        if not self._app:
            return "download failed"
        try:
            media_dir = self.media_dir or get_media_path()
            media_dir.mkdir(parents=True, exist_ok=True)
            file_path = media_dir / f"{file_id[:16]}-{Path(filename).name}"
            file = await self._app.bot.get_file(file_id)
            await file.download_to_drive(str(file_path))
            logger.debug(f"Downloaded attachment to {file_path}")
            return str(file_path)
        except (TelegramError, OSError) as e:
            logger.error(f"Failed to download attachment: {e}")
            return f"ERROR: Could not download file - {e}"

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        """全局错误处理器 - 记录轮询/处理器中的异常，避免被静默吞掉。"""
        logger.error(f"Telegram error: {context.error}")
