import logging
import os
from collections.abc import Callable, Iterable, Sequence
from multiprocessing.pool import ThreadPool
from typing import Any, Protocol

LOGGER = logging.getLogger(__name__)


class PhaseExecutor(Protocol):
    name: str

    def run_phase(self, fn: Callable[..., Any], tasks: Iterable[Sequence[Any]]) -> list[Any]: ...

    def close(self) -> None: ...


class SerialExecutor:
    """Runs every work item inline, in submission order."""

    name = "serial"

    def __enter__(self) -> "SerialExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        self.close()
        return False

    def close(self) -> None:
        return None

    def run_phase(self, fn: Callable[..., Any], tasks: Iterable[Sequence[Any]]) -> list[Any]:
        return [fn(*args) for args in tasks]


class WorkerPoolExecutor:
    """Reusable thread pool; each phase returns only when all of its items finished."""

    name = "worker_pool"

    def __init__(self, max_workers: int | None = None):
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be >= 1 but was {max_workers}")
        self._pool: ThreadPool | None = None
        if max_workers is None:
            self._worker_count = max(1, os.cpu_count() or 1)
        else:
            self._worker_count = max_workers

    @property
    def worker_count(self) -> int:
        return self._worker_count

    def __enter__(self) -> "WorkerPoolExecutor":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        del exc_type, exc, tb
        self.close()
        return False

    def close(self) -> None:
        if self._pool is None:
            return
        self._pool.close()
        self._pool.join()
        self._pool = None

    def _ensure_pool(self) -> ThreadPool:
        if self._pool is None:
            LOGGER.debug("starting worker pool with %d threads", self._worker_count)
            self._pool = ThreadPool(processes=self._worker_count)
        return self._pool

    def run_phase(self, fn: Callable[..., Any], tasks: Iterable[Sequence[Any]]) -> list[Any]:
        task_list = [tuple(args) for args in tasks]
        if not task_list:
            return []
        pool = self._ensure_pool()
        # starmap waits for every chunk, failed or not, before re-raising the
        # first worker exception.
        return pool.starmap(fn, task_list, chunksize=1)
