"""Reusable scratch buffers for per-frame image processing."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Tuple

import numpy as np

BufferKey = Tuple[Tuple[int, ...], str]


class BufferPool:
    """フレームサイズごとに作業用バッファを使い回すプール。

    lease() はコンテキストマネージャで、ブロックを抜けると例外の有無に
    かかわらずバッファがプールへ返却される。

    Args:
        max_idle: 1つのキーあたりに保持する未使用バッファの最大数。
    """

    def __init__(self, max_idle: int = 2) -> None:
        self.max_idle = max(0, max_idle)
        self._idle: Dict[BufferKey, List[np.ndarray]] = {}
        self._leased = 0
        self._lock = threading.Lock()

    @contextmanager
    def lease(self, shape: Tuple[int, ...], dtype=np.uint8) -> Iterator[np.ndarray]:
        key = (tuple(int(dim) for dim in shape), np.dtype(dtype).str)
        buffer = self._acquire(key)
        try:
            yield buffer
        finally:
            self._release(key, buffer)

    @property
    def leased(self) -> int:
        """現在貸し出し中のバッファ数。"""
        with self._lock:
            return self._leased

    def idle_count(self, shape: Tuple[int, ...], dtype=np.uint8) -> int:
        key = (tuple(int(dim) for dim in shape), np.dtype(dtype).str)
        with self._lock:
            return len(self._idle.get(key, ()))

    def clear(self) -> None:
        with self._lock:
            self._idle.clear()

    def _acquire(self, key: BufferKey) -> np.ndarray:
        with self._lock:
            self._leased += 1
            idle = self._idle.get(key)
            if idle:
                return idle.pop()
        shape, dtype = key
        try:
            return np.empty(shape, dtype=np.dtype(dtype))
        except MemoryError:
            with self._lock:
                self._leased -= 1
            raise

    def _release(self, key: BufferKey, buffer: np.ndarray) -> None:
        with self._lock:
            self._leased -= 1
            idle = self._idle.setdefault(key, [])
            if len(idle) < self.max_idle:
                idle.append(buffer)
