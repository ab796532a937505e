"""
消息格式化模块 - 把纯文本/Markdown 风格的问题渲染成 Telegram HTML。

Telegram 的 HTML 支持有限（仅 <b>、<i>、<code>、<pre>、<a> 等），
因此这里做定制化转换，而非使用通用 Markdown 解析器。

【提供的能力】
- markdown_to_telegram_html：正文转换（粗体/斜体/代码/标题/分隔线/列表）
- format_message：加上项目名标题
- build_options_message / keyboard_rows：带编号的选项列表与内联按钮布局
- option_callback_data / decode_choice：按钮回调数据的编码与还原
- countdown_suffix / selection_suffix：倒计时与已选提示
"""

import re

from askbot.utils.helpers import escape_html

# 分隔线：--- → 一整行粗横线
LINE_RULE = "━━━━━━━━━━━━━━━━━━━━"

# 选项编号表情，超过 10 个时退化为 "N️⃣"
NUMBER_EMOJIS = ["1️⃣", "2️⃣", "3️⃣", "4️⃣", "5️⃣", "6️⃣", "7️⃣", "8️⃣", "9️⃣", "🔟"]

# Telegram 限制 callback_data 最长 64 字节
MAX_CALLBACK_BYTES = 64
_INDEX_TOKEN = re.compile(r"^#opt:(\d+)$")


def markdown_to_telegram_html(text: str) -> str:
    """
    将 Markdown 风格文本转换为 Telegram 兼容的 HTML。

    转换策略采用"保护-转换-恢复"三步法：
    1. 先将代码块和行内代码提取并用占位符替换（保护代码内容不被误处理）
    2. 对剩余文本进行转义和 Markdown → HTML 转换
    3. 最后将代码恢复并包裹在 HTML 标签中

    参数:
        text: Markdown 风格的原始文本

    返回:
        Telegram 兼容的 HTML 格式文本
    """
    if not text:
        return ""

    # ===== 第1步：提取并保护代码块 =====
    code_blocks: list[str] = []
    def save_code_block(m: re.Match) -> str:
        code_blocks.append(m.group(1))
        return f"\x00CB{len(code_blocks) - 1}\x00"

    text = re.sub(r'```[\w]*\n?([\s\S]*?)```', save_code_block, text)

    # ===== 第2步：提取并保护行内代码 =====
    inline_codes: list[str] = []
    def save_inline_code(m: re.Match) -> str:
        inline_codes.append(m.group(1))
        return f"\x00IC{len(inline_codes) - 1}\x00"

    text = re.sub(r'`([^`]+)`', save_inline_code, text)

    # ===== 第3步：转义后再生成标签 =====
    text = escape_html(text)

    # 标题：# Title → <b>Title</b>
    text = re.sub(r'^#{1,6}\s+(.+)$', r'<b>\1</b>', text, flags=re.MULTILINE)

    # 分隔线
    text = re.sub(r'^-{3,}\s*$', LINE_RULE, text, flags=re.MULTILINE)

    # 无序列表：- item 或 * item → • item（必须在斜体之前，避免 "* " 被当成斜体起点）
    text = re.sub(r'^[-*]\s+', '• ', text, flags=re.MULTILINE)

    # 粗体：**text** 或 __text__
    text = re.sub(r'\*\*(.+?)\*\*', r'<b>\1</b>', text)
    text = re.sub(r'__(.+?)__', r'<b>\1</b>', text)

    # 斜体：*text* 或 _text_（排除变量名中的下划线，如 some_var_name）
    text = re.sub(r'(?<![*\w])\*([^*\n]+?)\*(?![*\w])', r'<i>\1</i>', text)
    text = re.sub(r'(?<![a-zA-Z0-9])_([^_\n]+)_(?![a-zA-Z0-9])', r'<i>\1</i>', text)

    # ===== 第4步：恢复行内代码 =====
    for i, code in enumerate(inline_codes):
        text = text.replace(f"\x00IC{i}\x00", f"<code>{escape_html(code)}</code>")

    # ===== 第5步：恢复代码块 =====
    for i, code in enumerate(code_blocks):
        text = text.replace(f"\x00CB{i}\x00", f"<pre><code>{escape_html(code)}</code></pre>")

    return text


def format_message(recipient_label: str, message: str) -> str:
    """以加粗的项目名作为标题，拼接转换后的正文。"""
    return f"<b>{escape_html(recipient_label)}</b>\n\n{markdown_to_telegram_html(message)}"


def number_emoji(index: int) -> str:
    """第 index 个选项（从 0 开始）的编号表情。"""
    if index < len(NUMBER_EMOJIS):
        return NUMBER_EMOJIS[index]
    return f"{index + 1}️⃣"


def build_options_message(base_html: str, options: list[str]) -> str:
    """在正文后追加带编号的选项列表。没有选项时原样返回。"""
    if not options:
        return base_html
    lines = [f"{number_emoji(i)} {escape_html(opt)}" for i, opt in enumerate(options)]
    return f"{base_html}\n\n<b>Options:</b>\n" + "\n".join(lines)


def keyboard_rows(options: list[str]) -> list[list[tuple[str, str]]]:
    """
    计算内联按钮布局。

    按钮文字是编号（1..N），回调数据是选项原文；
    不超过 5 个选项时每行 5 个，更多时每行 3 个。

    返回:
        行列表，每个按钮为 (按钮文字, 回调数据)
    """
    per_row = 5 if len(options) <= 5 else 3
    rows: list[list[tuple[str, str]]] = []
    for start in range(0, len(options), per_row):
        rows.append([
            (str(i + 1), option_callback_data(i, options[i]))
            for i in range(start, min(start + per_row, len(options)))
        ])
    return rows


def option_callback_data(index: int, option: str) -> str:
    """选项原文放得进 callback_data 就直接用原文，否则用 #opt:<index> 令牌。"""
    if len(option.encode("utf-8")) <= MAX_CALLBACK_BYTES and not _INDEX_TOKEN.match(option):
        return option
    return f"#opt:{index}"


def decode_choice(data: str, options: list[str]) -> str:
    """把按钮回调数据还原为选项原文。"""
    m = _INDEX_TOKEN.match(data)
    if m:
        index = int(m.group(1))
        if 0 <= index < len(options):
            return options[index]
    return data


def countdown_suffix(remaining: int) -> str:
    """倒计时提示：10 秒以内标记为紧急。"""
    if remaining <= 10:
        return f"\n\n⚠️ <i>{remaining}s remaining <b>(URGENT)</b></i>"
    return f"\n\n⏰ <i>{remaining}s remaining</i>"


def selection_suffix(choice: str, options: list[str]) -> str:
    """按钮点击后追加到原消息末尾的已选提示。"""
    if choice in options:
        return f"\n\n✅ <b>Selected option {options.index(choice) + 1}:</b> <code>{escape_html(choice)}</code>"
    return f"\n\n✅ <b>Selected:</b> <code>{escape_html(choice)}</code>"


def selection_feedback(choice: str, options: list[str]) -> str:
    """按钮点击的弹出回执文字（纯文本）。"""
    if choice in options:
        return f"✅ Selected option {options.index(choice) + 1}"
    return f"✅ Selected: {choice}"
