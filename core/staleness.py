"""异步重算的过期保护与防抖定时器"""
import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from config.settings import DEBOUNCE_DELAY_MS
from core.errors import StaleResultDiscarded

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StalenessGuard:
    """单调递增序号：只有最后发出的请求结果（或错误）可以生效"""

    def __init__(self):
        self._seq = 0

    @property
    def current(self) -> int:
        return self._seq

    def issue(self) -> int:
        self._seq += 1
        return self._seq

    def is_current(self, ticket: int) -> bool:
        return ticket == self._seq

    def invalidate(self):
        """切换版本 / 关闭编辑器时调用，在途结果全部作废"""
        self._seq += 1

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        ticket = self.issue()
        try:
            result = await factory()
        except StaleResultDiscarded:
            raise
        except Exception as exc:
            if not self.is_current(ticket):
                logger.debug(f"Discarding stale error from request #{ticket}: {exc}")
                raise StaleResultDiscarded(ticket, self._seq) from exc
            raise
        if not self.is_current(ticket):
            logger.debug(f"Discarding stale result from request #{ticket}")
            raise StaleResultDiscarded(ticket, self._seq)
        return result


def _log_task_failure(task: asyncio.Task):
    """取走已触发任务的异常并记录"""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Debounced task failed: {exc!r}")


class Debouncer:
    """可取消的定时器，新的 schedule 会取消尚未触发的上一个"""

    def __init__(self, delay_ms: int = DEBOUNCE_DELAY_MS):
        self.delay_ms = delay_ms
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, fn: Callable[[], object], delay_ms: Optional[int] = None):
        self.cancel_timer()
        delay = self.delay_ms if delay_ms is None else delay_ms
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(delay / 1000, self._fire, fn)

    def _fire(self, fn: Callable[[], object]):
        self._handle = None
        result = fn()
        if inspect.isawaitable(result):
            self._task = asyncio.ensure_future(result)
            self._task.add_done_callback(_log_task_failure)

    def cancel_timer(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def cancel(self):
        """取消定时器及已触发但未完成的任务"""
        self.cancel_timer()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self):
        """等待已触发的任务结束（测试和关闭时使用）"""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
