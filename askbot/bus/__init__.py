"""
消息总线模块 - 远程渠道入站事件的单一有序通道。

消息流向：
  用户消息 / 按钮点击 → 渠道(Transport) → InboundEvent → 消息总线 → RemoteChannelManager

出站方向不经过总线：管理器直接调用传输层的 send/edit，
以便拿到投递引用（消息 ID）用于后续关联回复。
"""

from askbot.bus.events import InboundEvent
from askbot.bus.queue import MessageBus

__all__ = ["MessageBus", "InboundEvent"]
