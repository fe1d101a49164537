# SPDX-License-Identifier: AGPL-3.0-or-later
# Copyright (C) 2024 ZOCR contributors

"""Fixed pool of recognition workers fed through closable channels.

Tasks go through a bounded channel so that submitting blocks while the
workers are busy. Each result carries the ``char_index`` of its task, so the
caller can order results however they complete. Shutdown closes the task
channel; workers drain what is left and exit.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Generic, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised by ``put`` on a closed channel and by ``get`` once it is drained."""


class Channel(Generic[T]):
    """FIFO shared between threads; ``capacity=None`` is unbounded."""

    def __init__(self, capacity: Optional[int] = None) -> None:
        self.capacity = capacity
        self._items: Deque[T] = deque()
        self._closed = False
        self._cond = threading.Condition()

    def put(self, item: T) -> None:
        with self._cond:
            while not self._closed and self.capacity is not None and len(self._items) >= self.capacity:
                self._cond.wait()
            if self._closed:
                raise ChannelClosed()
            self._items.append(item)
            self._cond.notify_all()

    def get(self) -> T:
        with self._cond:
            while not self._items and not self._closed:
                self._cond.wait()
            if not self._items:
                raise ChannelClosed()
            item = self._items.popleft()
            self._cond.notify_all()
            return item

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)


@dataclass
class CharacterTask:
    char_index: int
    payload: object


@dataclass
class TaskResult(Generic[T]):
    char_index: int
    value: Optional[T] = None
    error: Optional[BaseException] = field(default=None, repr=False)


class TaskScheduler(Generic[T]):
    """Run ``worker(payload, char_index)`` on a fixed number of threads."""

    def __init__(
        self,
        worker: Callable[[object, int], T],
        threads: int = 4,
        queue_size: int = 10,
        name: str = "kanjiscan-ocr",
    ) -> None:
        if threads < 1:
            raise ValueError("threads must be >= 1")
        self.worker = worker
        self.tasks: Channel[CharacterTask] = Channel(queue_size)
        self.results: Channel[TaskResult[T]] = Channel()
        # one caller at a time submits and drains
        self._batch_lock = threading.Lock()
        self._threads = [
            threading.Thread(target=self._work, name=f"{name}-{i}", daemon=True) for i in range(threads)
        ]
        for thread in self._threads:
            thread.start()

    def _work(self) -> None:
        while True:
            try:
                task = self.tasks.get()
            except ChannelClosed:
                return
            try:
                value = self.worker(task.payload, task.char_index)
            except BaseException as exc:  # carried back to the caller
                logger.debug("task %d failed: %s", task.char_index, exc)
                self.results.put(TaskResult(task.char_index, error=exc))
                if not isinstance(exc, Exception):
                    raise
            else:
                self.results.put(TaskResult(task.char_index, value=value))

    def run(self, payloads: Sequence[object]) -> List[T]:
        """Process ``payloads`` and return results in submission order.

        Submitting blocks while the task channel is full. All results are
        drained before the first worker error is re-raised.
        """

        with self._batch_lock:
            if self.tasks.closed:
                raise RuntimeError("scheduler has been shut down")
            count = len(payloads)
            for index, payload in enumerate(payloads):
                try:
                    self.tasks.put(CharacterTask(index, payload))
                except ChannelClosed:
                    raise RuntimeError("scheduler has been shut down") from None
            collected: Dict[int, TaskResult[T]] = {}
            for _ in range(count):
                result = self.results.get()
                collected[result.char_index] = result
        for index in range(count):
            error = collected[index].error
            if error is not None:
                raise error
        return [collected[index].value for index in range(count)]

    def shutdown(self, wait: bool = True) -> None:
        self.tasks.close()
        if wait:
            for thread in self._threads:
                thread.join()

    @property
    def alive(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)


__all__ = ["Channel", "ChannelClosed", "CharacterTask", "TaskResult", "TaskScheduler"]
