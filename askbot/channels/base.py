"""
传输层基类模块 - 定义远程渠道的统一接口。

本模块提供了 ChannelTransport 抽象基类。远程渠道管理器只依赖这个接口，
具体平台（目前是 Telegram）继承此基类并实现其抽象方法；
测试中则用一个内存里的假实现替代。

【核心抽象方法】
- start(): 连接平台，开始接收入站事件（返回前轮询已经开始）
- stop(): 断开连接，释放资源
- send(): 发送一条消息（可带内联选项按钮），返回投递引用（消息 ID）
- edit(): 编辑已发送的消息（倒计时、已选提示）
- answer_callback(): 回执一次按钮点击

【公共能力】
- is_allowed(): 基于静态白名单的端点校验
- _publish_event(): 权限检查 → 发布 InboundEvent 到消息总线

【Java 开发者类比】
- ChannelTransport 相当于 Java 的 abstract class + interface
- _publish_event() 相当于 Template Method 模式中的模板方法
"""

from abc import ABC, abstractmethod
from typing import Any

from loguru import logger

from askbot.bus.events import InboundEvent
from askbot.bus.queue import MessageBus


class ChannelTransport(ABC):
    """
    远程渠道传输层抽象基类。

    属性:
        name: 渠道标识名（如 "telegram"）
        allow_from: 允许的端点 ID（保持配置顺序的元组，构造后只读）
        bus: 消息总线实例，入站事件发布到这里
        _running: 运行状态标志
    """

    name: str = "base"

    def __init__(self, allow_from: list[str], bus: MessageBus):
        """
        初始化传输层。

        参数:
            allow_from: 端点白名单（字符串形式的 ID）
            bus: 消息总线实例
        """
        self.allow_from: tuple[str, ...] = tuple(dict.fromkeys(str(e) for e in allow_from))
        self.bus = bus
        self._running = False

    @abstractmethod
    async def start(self) -> None:
        """连接平台并开始接收入站事件。"""
        pass

    @abstractmethod
    async def stop(self) -> None:
        """停止接收并释放资源。"""
        pass

    @abstractmethod
    async def send(self, endpoint_id: str, html_text: str, options: list[str] | None = None) -> str:
        """
        发送一条 HTML 消息，options 非空时附带内联按钮。

        返回:
            投递引用（平台消息 ID 的字符串形式）

        异常:
            DeliveryError: 发送失败
        """
        pass

    @abstractmethod
    async def edit(
        self,
        endpoint_id: str,
        delivery_ref: str,
        html_text: str,
        options: list[str] | None = None,
    ) -> None:
        """
        编辑已发送的消息。options 为 None 时移除按钮。

        异常:
            DeliveryError: 编辑失败
        """
        pass

    @abstractmethod
    async def answer_callback(self, callback_id: str, text: str) -> None:
        """回执一次按钮点击（弹出一条短提示）。"""
        pass

    def is_allowed(self, endpoint_id: str) -> bool:
        """
        检查端点是否在白名单中。

        与开放式聊天机器人不同，这里白名单为空时拒绝所有人：
        问题只应该被授权的人回答。
        """
        return str(endpoint_id) in self.allow_from

    async def _publish_event(
        self,
        endpoint_id: str,
        kind: str,
        payload: str,
        delivery_ref: str | None = None,
        callback_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        标准化入站事件并发布到总线。

        白名单校验在管理器路由时还会再做一次；这里提前过滤可以避免
        未授权端点的附件被下载。
        """
        if not self.is_allowed(endpoint_id):
            logger.warning(f"Dropping {kind} from unauthorized endpoint {endpoint_id} on {self.name}")
            return

        await self.bus.publish_inbound(InboundEvent(
            endpoint_id=str(endpoint_id),
            kind=kind,
            payload=payload,
            delivery_ref=delivery_ref,
            callback_id=callback_id,
            metadata=metadata or {},
        ))

    @property
    def is_running(self) -> bool:
        """传输层是否已启动。"""
        return self._running
