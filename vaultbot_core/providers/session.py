"""流式调用的取消令牌与会话。

StreamSession 描述一次流式调用的生命周期：绑定一个取消令牌、一个适配器、
一个 on_update 回调。调用开始时创建，流结束、终态失败或被取消时关闭。

取消不是错误：令牌触发后，正在进行的 HTTP 流会被中断（内部任务被 cancel，
httpx 的上下文管理器随之关闭连接），之后不再向回调投递任何片段。
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

from vaultbot_core.domain.models import StreamStats
from vaultbot_core.infrastructure.logging.logger import logger


T = TypeVar("T")
UpdateCallback = Callable[[str], None]


class CancellationToken:
    """调用方持有的取消信号，每次调用应使用新的令牌。"""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class StreamCancelled(Exception):
    """内部信号：调用方已取消。适配器边界处转换为静默返回。"""


class StreamSession:
    """一次流式调用。

    - deliver(fragment): 按到达顺序投递片段；观察到取消后拒绝投递。
    - run(coro): 让流协程与取消令牌赛跑。
    - complete(): 标记流已读到结尾。
    - close(): 记录统计信息；零片段的正常结束只告警，不报错。
    """

    def __init__(
        self,
        provider: str,
        model: str,
        on_update: UpdateCallback,
        cancel_token: Optional[CancellationToken] = None,
        forward_empty_fragments: bool = False,
    ):
        self.stats = StreamStats(provider=provider, model=model)
        self._on_update = on_update
        self._token = cancel_token or CancellationToken()
        self._forward_empty = forward_empty_fragments
        self._started = time.monotonic()

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def deliver(self, fragment: Optional[str]) -> None:
        if self._token.cancelled:
            raise StreamCancelled()
        text = fragment if isinstance(fragment, str) else ""
        if not text and not self._forward_empty:
            return
        self.stats.fragments += 1
        self.stats.characters += len(text)
        self._on_update(text)

    async def run(self, coro: Awaitable[T]) -> T:
        if self._token.cancelled:
            # 协程从未被调度，直接关闭避免 "never awaited" 警告
            close = getattr(coro, "close", None)
            if close:
                close()
            raise StreamCancelled()

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self._token.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            # 取消过程中底层抛出的异常与调用方无关，只记录
            logger.debug(
                "Error while aborting stream",
                extra={"extra": {"provider": self.stats.provider, "error": repr(exc)}},
            )
        raise StreamCancelled()

    def complete(self) -> None:
        self.stats.completed = True

    def close(self) -> StreamStats:
        self.stats.cancelled = self._token.cancelled or self.stats.cancelled
        self.stats.elapsed_seconds = round(time.monotonic() - self._started, 3)
        level = logging.DEBUG
        message = "Stream finished"
        if self.stats.empty:
            level = logging.WARNING
            message = "Stream completed but no data was received; this may indicate a model-specific issue"
        logger.log(
            level,
            message,
            extra={"extra": {
                "provider": self.stats.provider,
                "model": self.stats.model,
                "fragments": self.stats.fragments,
                "characters": self.stats.characters,
                "retried": self.stats.retried,
                "cancelled": self.stats.cancelled,
                "completed": self.stats.completed,
                "elapsed_seconds": self.stats.elapsed_seconds,
            }},
        )
        return self.stats
