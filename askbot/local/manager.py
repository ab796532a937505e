"""
本地渠道管理器 - 在本机新终端窗口中启动 UI 进程，通过文件邮箱提问。

【会话生命周期】
start_session：创建私有目录 askbot-chat-<hex> → 启动 UI 进程 → 等待固定启动延迟
ask：写入问题文件 → 每 100ms 轮询回复文件，直到超时或 UI 不再存活
stop_session：写入关闭信号 → 等待 → 终止进程组 → 立即标记非活跃 → 2 秒后删除目录并注销

【存活判断】
UI 进程每秒刷新 heartbeat.txt。最近修改时间在 2 秒窗口内视为存活；
心跳文件尚未出现时视为"仍在启动"，但只在 startup_grace_s 内成立。
后台 LivenessMonitor 每 5 秒巡检一次，回收已死会话的进程与目录。
"""

import asyncio
import base64
import json
import shutil
import tempfile
import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from askbot.config.schema import LocalConfig
from askbot.errors import ProcessLaunchError
from askbot.heartbeat.monitor import LivenessMonitor
from askbot.local.launcher import Launcher
from askbot.local.mailbox import FileMailbox
from askbot.session.manager import ChannelKind, LocalSession, SessionStore
from askbot.utils.helpers import new_hex_id

# 轮询窗口耗尽时返回的哨兵值（UI 仍在，但用户没有作答）
CLOSED_SENTINEL = "__CLOSED__"

SESSION_DIR_PREFIX = "askbot-chat-"


def encode_payload(session_id: str, title: str, output_dir: Path, timeout_s: float | None) -> str:
    """把 UI 启动参数编码为 base64 JSON，作为命令行的唯一参数。"""
    options: dict[str, Any] = {
        "sessionId": session_id,
        "title": title,
        "outputDir": str(output_dir),
        "timeoutSeconds": timeout_s,
    }
    return base64.b64encode(json.dumps(options).encode("utf-8")).decode("ascii")


def decode_payload(payload: str) -> dict[str, Any]:
    return json.loads(base64.b64decode(payload).decode("utf-8"))


class LocalChannelManager:
    """
    本地渠道管理器。

    属性:
        store: 共享的会话存储
        config: 本地渠道配置（时间常量）
        launcher: UI 进程启动器（测试中替换为假实现）
        monitor: 后台存活巡检
        _removals: 延迟删除任务 {session_id: Task}
        _stopping: 正在停止（宽限期内）的会话，巡检不回收
    """

    def __init__(
        self,
        store: SessionStore,
        config: LocalConfig | None = None,
        launcher: Launcher | None = None,
    ):
        self.store = store
        self.config = config or LocalConfig()
        self.launcher = launcher or Launcher()
        self.monitor = LivenessMonitor(self.sweep, interval_s=self.config.sweep_interval_s)
        self._removals: dict[str, asyncio.Task] = {}
        self._stopping: set[str] = set()

    @property
    def base_dir(self) -> Path:
        return Path(self.config.temp_dir) if self.config.temp_dir else Path(tempfile.gettempdir())

    async def start(self) -> None:
        """启动后台存活巡检。"""
        await self.monitor.start()

    async def start_session(self, title: str, timeout_s: float | None = None) -> str:
        """
        创建本地会话并启动 UI 进程。

        返回:
            会话 ID（会话目录名的十六进制后缀）

        异常:
            ProcessLaunchError: UI 进程无法启动（会话目录已被删除）
        """
        session_id = new_hex_id()
        work_dir = self.base_dir / f"{SESSION_DIR_PREFIX}{session_id}"
        work_dir.mkdir(mode=0o700, parents=True)

        payload = encode_payload(session_id, title, work_dir, timeout_s)
        try:
            process = await self.launcher.launch(payload, work_dir)
        except ProcessLaunchError:
            shutil.rmtree(work_dir, ignore_errors=True)
            raise

        self.store.add(LocalSession(
            id=session_id,
            channel_kind=ChannelKind.LOCAL,
            title=title,
            work_dir=work_dir,
            process=process,
            timeout_s=timeout_s,
        ))
        logger.info(f"Local session {session_id} started ({title})")

        await asyncio.sleep(self.config.startup_delay_s)
        return session_id

    async def ask(
        self,
        session_id: str,
        question: str,
        options: list[str] | None = None,
        timeout_s: float | None = None,
    ) -> str | None:
        """
        在本地会话中提问并轮询回复。

        返回:
            回复文本；会话不存在或 UI 不再存活时返回 None；
            轮询窗口耗尽时返回 CLOSED_SENTINEL
        """
        session = self.store.get_active(session_id)
        if not isinstance(session, LocalSession):
            return None

        mailbox = FileMailbox(session.work_dir, session_id)
        question_id = str(uuid.uuid4())
        try:
            mailbox.put(question_id, question, options)
        except OSError as e:
            logger.error(f"Failed to write question for session {session_id}: {e}")
            return None

        limit = timeout_s or session.timeout_s or self.config.default_timeout_s
        loop = asyncio.get_running_loop()
        deadline = loop.time() + limit
        while loop.time() < deadline:
            try:
                answer = mailbox.poll(question_id)
            except OSError as e:
                logger.warning(f"Error reading response for session {session_id}: {e}")
                answer = None
            if answer is not None:
                logger.debug(f"Session {session_id} answered question {question_id}")
                return answer
            if not self.is_live(session_id):
                logger.info(f"Session {session_id} ended while waiting for an answer")
                return None
            await asyncio.sleep(self.config.poll_interval_s)

        return CLOSED_SENTINEL

    async def ask_once(
        self,
        title: str,
        question: str,
        options: list[str] | None = None,
        timeout_s: float | None = None,
    ) -> str | None:
        """一次性提问：启动会话 → 提问 → 停止会话。"""
        session_id = await self.start_session(title, timeout_s)
        try:
            return await self.ask(session_id, question, options)
        finally:
            await self.stop_session(session_id)

    async def stop_session(self, session_id: str) -> bool:
        """
        停止本地会话。

        返回:
            False 表示会话不存在或已经停止
        """
        session = self.store.get(session_id)
        if not isinstance(session, LocalSession) or not self.store.deactivate(session_id):
            return False

        self._stopping.add(session_id)
        try:
            try:
                FileMailbox(session.work_dir, session_id).signal_close()
            except OSError as e:
                logger.warning(f"Could not write close signal for session {session_id}: {e}")

            await asyncio.sleep(self.config.stop_grace_s)
            self.launcher.terminate(session.process)
            self._removals[session_id] = asyncio.create_task(self._remove_later(session))
        finally:
            self._stopping.discard(session_id)
        logger.info(f"Local session {session_id} stopped")
        return True

    def is_live(self, session_id: str) -> bool:
        """
        根据心跳判断 UI 是否存活；心跳过期会把会话标记为非活跃。
        """
        session = self.store.get(session_id)
        if not isinstance(session, LocalSession) or not session.is_active:
            return False

        try:
            age = FileMailbox(session.work_dir, session_id).heartbeat_age()
        except OSError as e:
            # 文件系统偶发错误不等于进程已死，继续等待
            logger.warning(f"Error checking heartbeat for session {session_id}: {e}")
            return True

        if age is None:
            grace = self.config.startup_grace_s
            elapsed = (datetime.now() - session.created_at).total_seconds()
            if grace is None or elapsed <= grace:
                return True
            logger.warning(f"Session {session_id} produced no heartbeat within {grace}s")
            self.store.deactivate(session_id)
            return False

        if age > self.config.heartbeat_window_s:
            logger.info(f"Session {session_id} heartbeat is stale ({age:.1f}s)")
            self.store.deactivate(session_id)
            return False

        session.last_heartbeat_at = datetime.fromtimestamp(time.time() - age)
        return True

    async def sweep(self) -> int:
        """
        回收所有不再存活的本地会话：终止进程、删除目录、注销。

        返回:
            本次回收的会话数
        """
        reaped = 0
        for session in self.store.list_sessions(ChannelKind.LOCAL):
            if session.id in self._removals or session.id in self._stopping or not isinstance(session, LocalSession):
                continue
            if self.is_live(session.id):
                continue
            self.launcher.terminate(session.process)
            self._remove_now(session)
            reaped += 1
        if reaped:
            logger.info(f"Liveness sweep reaped {reaped} local session(s)")
        return reaped

    async def shutdown(self) -> None:
        """停止巡检和所有会话，并立即删除全部会话目录。"""
        self.monitor.stop()
        for session in self.store.list_sessions(ChannelKind.LOCAL):
            if session.is_active:
                await self.stop_session(session.id)
        for task in self._removals.values():
            task.cancel()
        self._removals.clear()
        for session in self.store.list_sessions(ChannelKind.LOCAL):
            if isinstance(session, LocalSession):
                self._remove_now(session)

    async def _remove_later(self, session: LocalSession) -> None:
        try:
            await asyncio.sleep(self.config.cleanup_delay_s)
            self._remove_now(session)
        finally:
            self._removals.pop(session.id, None)

    def _remove_now(self, session: LocalSession) -> None:
        shutil.rmtree(session.work_dir, ignore_errors=True)
        self.store.remove(session.id)
