"""长消息切分。

传输层单次发送有长度上限（例如 2000 字符），超长回复需要按语义边界切成多段：
优先在段落、句子结尾处切，其次换行、逗号、空格，都找不到时硬切。
"""

from typing import List

# 按优先级排列：越靠前越优先
SEPARATORS = ("\n\n", ". ", "! ", "? ", "\n", ", ", " ")


def find_split_point(text: str, max_len: int) -> int:
    """返回切分位置（切点落在分隔符之后），保证 0 < 结果 <= max_len。"""

    if len(text) <= max_len:
        return len(text)
    window = text[:max_len]
    for sep in SEPARATORS:
        idx = window.rfind(sep)
        if idx != -1:
            return idx + len(sep)
    return max_len


def split_message(text: str, max_len: int) -> List[str]:
    """把 text 切成每段长度都不超过 max_len 的若干段。

    每段两端的空白会被去掉，去掉后为空的段直接丢弃。
    """

    if max_len < 1:
        raise ValueError(f"max_len must be >= 1, got {max_len}")
    if len(text) <= max_len:
        return [text]

    parts: List[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_len:
            parts.append(remaining)
            break
        cut = find_split_point(remaining, max_len)
        part = remaining[:cut].strip()
        if part:
            parts.append(part)
        remaining = remaining[cut:].strip()
    return parts
