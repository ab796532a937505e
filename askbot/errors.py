"""
交互交换核心的异常类型。

超时（Timeout）和清理（Cleanup）不是异常，而是正常结果，
由 AskResult 表达；这里只定义真正的错误：
- SessionNotFoundError：未知或已过期的会话 ID（调用方错误，不重试）
- DeliveryError：传输层发送失败（记录日志，继续尝试其余端点）
- ProcessLaunchError：本地 UI 进程在所有启动策略下都无法启动
"""

from typing import Any, Optional


class ExchangeError(Exception):
    """所有交换核心错误的基类，携带机器可读的 code。"""

    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class SessionNotFoundError(ExchangeError):
    def __init__(self, session_id: str):
        super().__init__(
            "session_not_found",
            f"Session {session_id} not found or already closed",
            {"session_id": session_id},
        )
        self.session_id = session_id


class DeliveryError(ExchangeError):
    def __init__(self, message: str, endpoint_id: str | None = None):
        super().__init__("delivery_failed", message, {"endpoint_id": endpoint_id})
        self.endpoint_id = endpoint_id


class ProcessLaunchError(ExchangeError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("process_launch_failed", message, details)
