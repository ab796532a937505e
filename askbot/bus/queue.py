"""
异步入站事件队列模块 - 远程渠道与远程管理器之间的单一事件流。

入站流程：
  Telegram 处理器 → publish_inbound() → inbound 队列 → consume_inbound() → 远程管理器路由

整个远程后端只有一个入站队列、一个消费者，因此事件严格按到达顺序处理。
配合待答问题上的"已解决"标志，回答与超时同时发生时永远只有一个胜者。

【Java 开发者类比】
- asyncio.Queue 类似于 Java 的 LinkedBlockingQueue
- publish/consume 模式类似于 BlockingQueue.put()/take()
"""

import asyncio

from askbot.bus.events import InboundEvent


class MessageBus:
    """
    入站事件总线 - 解耦远程渠道传输层与远程渠道管理器。

    属性:
        inbound: 入站事件异步队列（渠道 → 管理器）
    """

    def __init__(self):
        """初始化消息总线，创建入站异步队列。"""
        self.inbound: asyncio.Queue[InboundEvent] = asyncio.Queue()

    async def publish_inbound(self, event: InboundEvent) -> None:
        """
        发布入站事件（渠道 → 管理器）。

        参数:
            event: 入站事件对象
        """
        await self.inbound.put(event)

    async def consume_inbound(self) -> InboundEvent:
        """
        消费下一条入站事件（阻塞等待）。

        返回:
            下一条入站事件
        """
        return await self.inbound.get()

