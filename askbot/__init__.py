"""
askbot - 让自动化 Agent 向人类提问并阻塞等待回答的交互桥

模块概述：
    本文件是 askbot 包的入口文件（__init__.py），定义了包的元信息。
    askbot 的核心是"交互交换核心"（Interactive Exchange Core）：
    Agent 提出一个问题，askbot 通过两种可互换的渠道之一把问题送到人类面前，
    并保证最终只有一个结果（回答 / 超时 / 停止）被返回。

    两种渠道：
    - 本地渠道：派生一个独立的终端 UI 子进程，通过共享目录（文件即消息队列）通信
    - 远程渠道：Telegram 机器人长连接，多个待答问题复用同一个入站事件流
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出等场景的品牌标识
__logo__ = "🙋"
