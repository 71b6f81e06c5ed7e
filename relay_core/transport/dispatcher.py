"""入站消息的后台调度。

传输层收到消息后立即返回，编排在有界线程池里异步执行：

- 同时在途的消息数受 max_pending 限制，满了直接回复繁忙提示；
- 每条消息的处理结果（实际发出的分段列表）通过 Future 返回给传输层；
- 任何业务异常都转换为用户可见的错误提示，不会冒泡终止进程。
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List

from relay_core.agents.orchestrator import ConversationOrchestrator
from relay_core.domain.exceptions import BusinessError
from relay_core.domain.models import InboundMessage
from relay_core.infrastructure.logging.logger import logger
from relay_core.transport.segmenter import split_message


ERROR_REPLY = "An error occurred while contacting the AI."
BUSY_REPLY = "I'm handling too many messages right now. Please try again in a moment."

SendFunc = Callable[[str], Any]


class MessageDispatcher:
    def __init__(
        self,
        orchestrator: ConversationOrchestrator,
        *,
        max_workers: int = 8,
        max_pending: int = 64,
        max_message_length: int = 2000,
    ):
        self._orchestrator = orchestrator
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="relay-worker")
        self._slots = threading.BoundedSemaphore(max_pending)
        self._max_message_length = max_message_length

    def submit(self, event: InboundMessage, send: SendFunc) -> "Future[List[str]]":
        """提交一条消息，立即返回；Future 的结果是实际发出的分段。"""

        if not self._slots.acquire(blocking=False):
            _log(logging.WARNING, "Dispatcher saturated, rejecting message", tenant_id=event.tenant_id)
            send(BUSY_REPLY)
            rejected: "Future[List[str]]" = Future()
            rejected.set_result([BUSY_REPLY])
            return rejected
        try:
            future = self._executor.submit(self._handle, event, send)
        except RuntimeError:
            self._slots.release()
            raise
        future.add_done_callback(self._on_done)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _handle(self, event: InboundMessage, send: SendFunc) -> List[str]:
        # 名额在 Future 完成之前归还，调用方拿到结果后即可再次提交
        try:
            try:
                reply = self._orchestrator.get_response(event.tenant_id, event.display_name, event.text)
            except BusinessError as e:
                _log(logging.ERROR, "Error getting AI response", tenant_id=event.tenant_id, code=e.code, error=e.message)
                reply = ERROR_REPLY
            except Exception as e:
                logger.error(
                    "Unexpected error getting AI response",
                    exc_info=True,
                    extra={"extra": {"tenant_id": event.tenant_id, "error": repr(e)}},
                )
                reply = ERROR_REPLY
            chunks = split_message(reply, self._max_message_length)
            for chunk in chunks:
                send(chunk)
            return chunks
        finally:
            self._slots.release()

    def _on_done(self, future: Future) -> None:
        if future.cancelled():
            # 未开始执行就被取消，_handle 没有机会归还名额
            self._slots.release()
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Message task failed", exc_info=exc, extra={"extra": {"error": str(exc)}})


def _log(level: int, message: str, **fields: Any) -> None:
    logger.log(level, message, extra={"extra": fields})
