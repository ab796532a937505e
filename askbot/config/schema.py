"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义 askbot 的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 中覆盖需要修改的部分。

整体配置结构（树形）：
Config (根配置)
├── exchange   - 交换门面配置（默认超时、默认渠道、项目名）
├── telegram   - 远程渠道（Telegram 机器人）连接参数与端点白名单
├── local      - 本地渠道的轮询、心跳、宽限期等时间常量
└── remote     - 远程渠道的倒计时检查点

对于 Java 开发者：
- Pydantic 的 BaseModel 类似于 Java 的 POJO/Record，但自带字段验证和默认值
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
"""

import os
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


def _default_checkpoints() -> list[int]:
    """默认倒计时检查点：剩余 30 秒、15 秒，以及 10 秒以内每秒一次。"""
    return [30, 15, *range(10, 0, -1)]


class ExchangeConfig(BaseModel):
    """交换门面配置。"""
    default_timeout_s: float = 60  # 单个问题的默认超时（秒）
    default_channel: Literal["auto", "local", "remote"] = "auto"  # auto：配置了 Telegram 就走远程
    project_name: str = "askbot"  # 远程消息标题中显示的项目名


class TelegramConfig(BaseModel):
    """Telegram 渠道配置。使用 Bot API 长轮询方式接收消息。"""
    enabled: bool = False  # 是否启用该渠道
    token: str = ""  # 从 @BotFather 获取的 Bot Token
    allow_from: list[str] = Field(default_factory=list)  # 允许的 chat_id 白名单
    proxy: str | None = None  # HTTP/SOCKS5 代理地址，如 "http://127.0.0.1:7890"

    @field_validator("allow_from", mode="before")
    @classmethod
    def _coerce_ids(cls, value):
        # chat_id 在 JSON 里常被写成数字，也接受逗号分隔的字符串
        if isinstance(value, str):
            value = [v for v in value.split(",")]
        return [str(v).strip() for v in value if str(v).strip()]

    def resolve_token(self) -> str:
        """配置中的 token 为空时回退到 TELEGRAM_BOT_TOKEN 环境变量。"""
        return self.token or os.environ.get("TELEGRAM_BOT_TOKEN", "")


class LocalConfig(BaseModel):
    """
    本地渠道时间常量。

    这些值共同决定了本地 UI 进程的存活判定和资源回收节奏：
    - 心跳窗口必须大于 UI 进程的心跳间隔，否则健康进程会被误判为死亡
    - 清理延迟必须大于停止宽限期，避免删除目录时 UI 仍在写文件
    """
    poll_interval_s: float = 0.1  # 轮询回复文件的间隔
    heartbeat_window_s: float = 2.0  # 心跳文件最近修改时间的容忍窗口
    heartbeat_interval_s: float = 1.0  # UI 进程刷新心跳的间隔
    sweep_interval_s: float = 5.0  # 后台存活巡检间隔
    startup_delay_s: float = 0.5  # 启动后等待 UI 就绪的固定延迟
    stop_grace_s: float = 0.5  # 写入关闭信号后等待优雅退出的时间
    cleanup_delay_s: float = 2.0  # 停止后延迟删除目录的时间
    startup_grace_s: float | None = 30.0  # 心跳文件缺失时仍视为"启动中"的最长时间（None 表示不限）
    default_timeout_s: float = 60  # 会话未指定超时时的轮询上限
    temp_dir: str | None = None  # 会话目录的父目录（默认系统临时目录）


class RemoteConfig(BaseModel):
    """远程渠道配置。"""
    countdown_checkpoints: list[int] = Field(default_factory=_default_checkpoints)  # 剩余秒数检查点


class Config(BaseSettings):
    """
    askbot 根配置类。

    继承自 Pydantic 的 BaseSettings，除了支持从 JSON 文件加载外，
    还支持从环境变量读取配置：
    - 环境变量前缀: ASKBOT_
    - 嵌套分隔符: __ (双下划线)
    - 示例: ASKBOT_TELEGRAM__TOKEN=123:abc 可覆盖 telegram.token
    """
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    local: LocalConfig = Field(default_factory=LocalConfig)
    remote: RemoteConfig = Field(default_factory=RemoteConfig)

    @property
    def remote_enabled(self) -> bool:
        """远程渠道是否可用：已启用、有 token、白名单非空。"""
        return bool(self.telegram.enabled and self.telegram.resolve_token() and self.telegram.allow_from)

    def pick_channel(self) -> Literal["local", "remote"]:
        """根据 default_channel 决定未指定渠道时使用哪个后端。"""
        if self.exchange.default_channel == "auto":
            return "remote" if self.remote_enabled else "local"
        return self.exchange.default_channel

    # Pydantic Settings 配置：支持 ASKBOT_ 前缀的环境变量，嵌套用 __ 分隔
    model_config = ConfigDict(
        env_prefix="ASKBOT_",
        env_nested_delimiter="__"
    )
