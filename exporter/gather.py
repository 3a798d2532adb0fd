"""Scatter-gather over a thread pool with a single shared output queue"""
import queue
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Callable, Generic, Iterable, Iterator, List, Optional, Tuple, TypeVar

from logging_config import get_logger


logger = get_logger(__name__)

ItemT = TypeVar("ItemT")

Emit = Callable[[Any], None]

_CLOSED = object()


class Gather(Generic[ItemT]):
    """Run one producer per item and stream everything they emit.

    Every producer receives its item and an ``emit`` callable that puts a
    value on the shared queue. A closer thread waits for all producers to
    return and only then closes the queue, so iteration ends exactly once,
    after the last value. A producer that raises is logged and recorded in
    ``errors``; its siblings keep running.
    """

    def __init__(self, producer: Callable[[ItemT, Emit], None], items: Iterable[ItemT],
                 max_workers: Optional[int] = None, name: str = "gather"):
        self.name = name
        self.errors: List[Tuple[ItemT, Exception]] = []
        self._producer = producer
        self._items = list(items)
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._max_workers = max(1, min(max_workers or len(self._items), len(self._items) or 1))
        self._started = False

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def start(self) -> "Gather[ItemT]":
        if self._started:
            return self
        self._started = True

        executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix=self.name)
        futures = [executor.submit(self._run, item) for item in self._items]
        executor.shutdown(wait=False)

        closer = threading.Thread(target=self._close, args=(futures,), name=f"{self.name}_closer", daemon=True)
        closer.start()
        return self

    def _run(self, item: ItemT) -> None:
        try:
            self._producer(item, self._queue.put)
        except Exception as e:
            logger.error("Producer failed", gather=self.name, item=repr(item), error=str(e), error_type=type(e).__name__)
            self.errors.append((item, e))

    def _close(self, futures) -> None:
        wait(futures)
        self._queue.put(_CLOSED)

    def __iter__(self) -> Iterator[Any]:
        self.start()
        while True:
            value = self._queue.get()
            if value is _CLOSED:
                return
            yield value

    def collect(self) -> List[Any]:
        """Drain every emitted value into a list"""
        return list(self)
