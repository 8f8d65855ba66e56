from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterator

from loguru import logger


@dataclass
class Stopwatch:
    started: float
    stopped: float | None = None

    @property
    def elapsed_ms(self) -> float:
        end = self.stopped if self.stopped is not None else time.perf_counter()
        return (end - self.started) * 1000

    @property
    def elapsed(self) -> timedelta:
        return timedelta(milliseconds=self.elapsed_ms)


@contextmanager
def timed(label: str) -> Iterator[Stopwatch]:
    watch = Stopwatch(started=time.perf_counter())
    try:
        yield watch
    finally:
        watch.stopped = time.perf_counter()
        logger.info("{} took {:.2f}ms", label, watch.elapsed_ms)
