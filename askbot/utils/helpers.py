"""
工具函数集合 - askbot 项目全局通用的辅助函数。

本模块提供路径管理、字符串处理、ID 生成等基础工具函数，
被项目中的多个模块引用。

函数分类：
- 路径管理：ensure_dir, get_data_path, get_media_path
- 字符串工具：escape_html
- ID：new_hex_id
"""

import secrets
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 askbot 数据目录（~/.askbot）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".askbot")


def get_media_path() -> Path:
    """获取远程渠道附件下载目录（~/.askbot/media）。"""
    return ensure_dir(get_data_path() / "media")


def new_hex_id(nbytes: int = 8) -> str:
    """生成随机十六进制 ID（默认 8 字节 → 16 个字符）。"""
    return secrets.token_hex(nbytes)


def escape_html(text: str) -> str:
    """转义 HTML 特殊字符（& < > " '），用于 Telegram HTML 解析模式。"""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#39;")
    )
