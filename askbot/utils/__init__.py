"""
工具函数模块 - 提供 askbot 项目全局通用的辅助函数。

本模块包含：
- ensure_dir：确保目录存在
- get_data_path：获取数据存储路径
- escape_html：HTML 转义
"""

from askbot.utils.helpers import ensure_dir, get_data_path, escape_html

__all__ = ["ensure_dir", "get_data_path", "escape_html"]
