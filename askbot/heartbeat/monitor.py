"""
存活巡检服务 - 定期回收已经失去心跳的本地会话。

本地 UI 进程可能被用户直接关掉窗口，父进程不会收到任何通知。
LivenessMonitor 按固定间隔调用 on_sweep 回调（通常是
LocalChannelManager.sweep），由它检查心跳并回收进程、目录和登记信息。

架构设计：
- 基于 asyncio.Task 的定期循环，先等待一个间隔再执行
- 单次巡检出错只记录日志，不中断循环
"""

import asyncio
from typing import Any, Callable, Coroutine

from loguru import logger

# 默认巡检间隔：5 秒
DEFAULT_SWEEP_INTERVAL_S = 5.0


class LivenessMonitor:
    """
    存活巡检服务。

    属性:
        on_sweep: 巡检回调，返回本次回收的会话数
        interval_s: 巡检间隔（秒）
    """

    def __init__(
        self,
        on_sweep: Callable[[], Coroutine[Any, Any, int]],
        interval_s: float = DEFAULT_SWEEP_INTERVAL_S,
        enabled: bool = True,
    ):
        self.on_sweep = on_sweep
        self.interval_s = interval_s
        self.enabled = enabled
        self._running = False
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """启动巡检。重复调用不会创建第二个循环。"""
        if not self.enabled:
            logger.info("Liveness monitor disabled")
            return
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Liveness monitor started (every {self.interval_s}s)")

    def stop(self) -> None:
        """停止巡检并取消循环任务。"""
        self._running = False
        if self._task:
            self._task.cancel()
            self._task = None

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.interval_s)
                if self._running:
                    await self.on_sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Liveness sweep error: {e}")

    async def sweep_now(self) -> int:
        """立即执行一次巡检（调试用）。"""
        return await self.on_sweep()
