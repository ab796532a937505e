"""
配置文件读写 (config/loader.py)

配置文件位于 ~/.askbot/config.json，磁盘上的键名是 camelCase
（与 Telegram / JSON 生态的习惯一致），内存中的 Pydantic 模型使用 snake_case。

读取时的处理顺序：JSON 解析 → 旧键名迁移 → camelCase 转 snake_case → 模型校验。
任何一步失败都只记录警告并退回默认配置，不阻止本地渠道工作。
"""

import json
from pathlib import Path
from typing import Any

from loguru import logger

from askbot.config.schema import Config


def get_config_path() -> Path:
    return Path.home() / ".askbot" / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    加载配置；文件不存在或内容无效时返回默认配置。

    参数:
        config_path: 配置文件路径，默认 ~/.askbot/config.json
    """
    path = config_path or get_config_path()
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return Config.model_validate(convert_keys(_migrate_config(data)))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Ignoring invalid config {path}: {e}")
        return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """以 camelCase 键名写出配置，返回写入的路径。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(convert_to_camel(config.model_dump()), indent=2, ensure_ascii=False),
        encoding="utf-8",
    )
    logger.debug(f"Config written to {path}")
    return path


def _migrate_config(data: Any) -> Any:
    """
    旧键名迁移：telegram.chatIds（逗号分隔字符串或列表）并入 telegram.allowFrom。

    早期版本沿用命令行参数 --telegram-chat-ids 的命名。
    """
    if not isinstance(data, dict):
        return data
    telegram = data.get("telegram")
    if isinstance(telegram, dict) and "chatIds" in telegram:
        legacy = telegram.pop("chatIds")
        if isinstance(legacy, str):
            legacy = legacy.split(",")
        merged = list(telegram.get("allowFrom") or [])
        merged.extend(legacy or [])
        telegram["allowFrom"] = merged
        logger.info("Migrated telegram.chatIds to telegram.allowFrom")
    return data


def convert_keys(data: Any) -> Any:
    """递归转换字典键名 camelCase → snake_case，例如 {"allowFrom": [...]} → {"allow_from": [...]}。"""
    if isinstance(data, dict):
        return {camel_to_snake(k): convert_keys(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    if isinstance(data, dict):
        return {snake_to_camel(k): convert_to_camel(v) for k, v in data.items()}
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """heartbeatWindowS → heartbeat_window_s"""
    return "".join(f"_{c.lower()}" if c.isupper() and i else c.lower() for i, c in enumerate(name))


def snake_to_camel(name: str) -> str:
    """heartbeat_window_s → heartbeatWindowS"""
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)
