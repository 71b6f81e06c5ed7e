"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取助手的 system prompt 模板，
用助手显示名填充后用于构造 ChatMessage(role="system")。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=8)
def _read_template(locale: str) -> str:
    fname = PROMPTS_DIR / locale / "assistant_system.md"
    return fname.read_text(encoding="utf-8").strip()


def load_system_prompt(assistant_name: str, locale: str = "en") -> str:
    """加载系统提示词文本，模板中的 {assistant_name} 替换为助手显示名。"""

    return _read_template(locale).replace("{assistant_name}", assistant_name)
