"""传输边界：长消息切分与后台调度。"""

from relay_core.transport.segmenter import SEPARATORS, split_message

__all__ = ["SEPARATORS", "split_message"]
