"""倒计时检查点调度：在剩余 30s、15s 和最后 10 秒的每一秒触发一次回调。"""

import asyncio
from typing import Callable, Iterable

DEFAULT_CHECKPOINTS: tuple[int, ...] = (30, 15, 10, 9, 8, 7, 6, 5, 4, 3, 2, 1)


def checkpoints_below(timeout_s: float, checkpoints: Iterable[int] = DEFAULT_CHECKPOINTS) -> list[int]:
    """只保留严格小于超时时间的检查点，从大到小排列。"""
    return sorted({c for c in checkpoints if 0 < c < timeout_s}, reverse=True)


def arm_countdown(
    timeout_s: float,
    on_checkpoint: Callable[[int], None],
    checkpoints: Iterable[int] = DEFAULT_CHECKPOINTS,
) -> list[asyncio.TimerHandle]:
    """
    为每个检查点安排一次 loop.call_later。

    参数:
        timeout_s: 从现在起的超时秒数
        on_checkpoint: 回调，参数为剩余秒数
        checkpoints: 剩余秒数检查点

    返回:
        TimerHandle 列表，由调用方在问题解决时全部取消
    """
    loop = asyncio.get_running_loop()
    return [
        loop.call_later(timeout_s - remaining, on_checkpoint, remaining)
        for remaining in checkpoints_below(timeout_s, checkpoints)
    ]
