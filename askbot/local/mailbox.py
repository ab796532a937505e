"""
文件邮箱 - 本地会话中父进程与 UI 子进程之间的文件协议。

每个会话一个私有目录，目录内的文件约定：
- <sessionId>.json         父进程写入的当前问题 {id, text, options?}
- response-<questionId>.txt UI 写入的回复（先写临时文件再重命名）
- heartbeat.txt            UI 每秒刷新一次修改时间
- close-session.txt        父进程要求 UI 退出的信号

每个问题的回复文件名都带问题 ID，且只有一个读取方，
因此不需要任何文件锁。
"""

import json
import os
import time
from pathlib import Path
from typing import Any

from loguru import logger

HEARTBEAT_FILE = "heartbeat.txt"
CLOSE_FILE = "close-session.txt"


class FileMailbox:
    """
    会话目录上的邮箱视图，父进程和 UI 进程各持有一个实例。

    属性:
        root: 会话目录
        session_id: 会话 ID（决定问题文件名）
    """

    def __init__(self, root: Path, session_id: str):
        self.root = Path(root)
        self.session_id = session_id

    @property
    def question_path(self) -> Path:
        return self.root / f"{self.session_id}.json"

    @property
    def heartbeat_path(self) -> Path:
        return self.root / HEARTBEAT_FILE

    @property
    def close_path(self) -> Path:
        return self.root / CLOSE_FILE

    def response_path(self, question_id: str) -> Path:
        return self.root / f"response-{question_id}.txt"

    # ---------- 父进程一侧 ----------

    def put(self, question_id: str, text: str, options: list[str] | None = None) -> None:
        """写入一个新问题，覆盖上一个。"""
        data: dict[str, Any] = {"id": question_id, "text": text}
        if options:
            data["options"] = list(options)
        self._write_atomic(self.question_path, json.dumps(data, ensure_ascii=False))

    def poll(self, question_id: str) -> str | None:
        """
        取走某个问题的回复：读取后删除文件。

        返回:
            回复文本；回复尚未写入时返回 None
        """
        path = self.response_path(question_id)
        try:
            answer = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            path.unlink()
        except OSError as e:
            logger.debug(f"Could not delete response file {path.name}: {e}")
        return answer

    def heartbeat_age(self) -> float | None:
        """
        距离上一次心跳过去了多少秒。

        返回:
            秒数；心跳文件尚不存在时返回 None
        """
        try:
            mtime = self.heartbeat_path.stat().st_mtime
        except FileNotFoundError:
            return None
        return max(0.0, time.time() - mtime)

    def signal_close(self) -> None:
        self.close_path.write_text("", encoding="utf-8")

    # ---------- UI 进程一侧 ----------

    def read_question(self) -> dict[str, Any] | None:
        """读取当前问题；文件不存在或内容不完整时返回 None。"""
        try:
            data = json.loads(self.question_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except json.JSONDecodeError:
            return None
        if not isinstance(data, dict) or "id" not in data:
            return None
        return data

    def respond(self, question_id: str, answer: str) -> None:
        self._write_atomic(self.response_path(question_id), answer)

    def touch_heartbeat(self) -> None:
        self.heartbeat_path.touch()

    def close_requested(self) -> bool:
        return self.close_path.exists()

    @staticmethod
    def _write_atomic(path: Path, content: str) -> None:
        """先写临时文件再 os.replace，读取方永远看不到写了一半的文件。"""
        tmp = path.with_name(f".{path.name}.tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
