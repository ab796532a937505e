"""
入站事件类型定义模块 - 定义从远程渠道流入核心的数据结构。

远程渠道（如 Telegram）收到的每一条消息、每一次按钮点击，
都会被标准化为一个 InboundEvent 发布到消息总线上。
远程渠道管理器是这条入站事件流的唯一消费者，按到达顺序逐个路由。

【两类事件】
- message：用户发送的文本（或附件描述），按"端点 → 待答问题"规则路由
- callback：用户点击了内联按钮，按"端点 + 原消息 ID"精确匹配待答问题

【Java 开发者类比】
- 使用 @dataclass 装饰器，等价于 Java 的 record 类
- kind 字段相当于一个判别联合（sealed interface）的标签
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal


@dataclass
class InboundEvent:
    """
    入站事件 - 来自某个远程端点的一条消息或一次按钮点击。

    属性:
        endpoint_id: 端点标识（Telegram 中为 chat_id 的字符串形式）
        kind: 事件类型，"message" 或 "callback"
        payload: 消息文本；按钮点击时为按钮携带的回调数据
        delivery_ref: 按钮所在的原始出站消息 ID（仅 callback 事件）
        callback_id: 平台侧的回调查询 ID，用于回执（仅 callback 事件）
        timestamp: 事件接收时间
        metadata: 渠道特有的附加数据
    """

    endpoint_id: str                                  # 端点 ID
    kind: Literal["message", "callback"]              # 事件类型
    payload: str                                      # 文本内容或按钮数据
    delivery_ref: str | None = None                   # 按钮所属消息的 ID
    callback_id: str | None = None                    # 回调查询 ID
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_callback(self) -> bool:
        """是否为按钮点击事件。"""
        return self.kind == "callback"
