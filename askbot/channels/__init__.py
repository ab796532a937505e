"""
远程渠道传输层模块。

ChannelTransport 定义了远程渠道管理器所需的最小传输接口（发送、编辑、按钮回执、
入站事件发布）。TelegramTransport 是目前唯一的实现，按需延迟导入，
未安装 python-telegram-bot 时本地渠道仍可正常使用。

消息流向：
  用户回复 → TelegramTransport → MessageBus → RemoteChannelManager → 待答问题
"""

from askbot.channels.base import ChannelTransport

__all__ = ["ChannelTransport"]
