"""Runtime camera selection for switchable output streams."""

from __future__ import annotations

import logging
import math
import threading
from typing import Any, Dict, Optional

from .camera import CameraRegistry, SwitchBinding
from .streams import VideoOutput
from .table import EntryNotification, ListenerFlags, TableStore

SWITCH_FLAGS = ListenerFlags.IMMEDIATE | ListenerFlags.NEW | ListenerFlags.UPDATE


class CameraRouter:
    """共有テーブルのキーを購読し、切り替え出力のソースをカメラ間で差し替える。

    - 数値: カメラのインデックス（0始まり、小数は0方向へ切り捨て）。範囲外は無視。
    - 文字列: カメラ名。レジストリ順で最初に一致したカメラ。一致しなければ無視。
    - それ以外の型は無視する。

    Args:
        store: 購読する共有テーブル。
        registry: 切り替え先となるカメラのレジストリ。
    """

    def __init__(self, store: TableStore, registry: CameraRegistry) -> None:
        self.store = store
        self.registry = registry
        self.outputs: Dict[str, VideoOutput] = {}
        self._bound: Dict[str, Optional[int]] = {}
        self._lock = threading.Lock()

    def add_switched_camera(self, binding: SwitchBinding, output: Optional[VideoOutput] = None) -> VideoOutput:
        """切り替え出力を作成し、制御キーの購読を開始する。

        購読時にキーが既に存在すれば、その値で一度すぐに切り替える。
        """
        logging.info("Starting switched camera '%s' on %s", binding.name, binding.key)
        if output is None:
            output = VideoOutput(binding.name)
        with self._lock:
            self.outputs[binding.name] = output
            self._bound[binding.name] = None

        def _on_change(notification: EntryNotification) -> None:
            self.select(binding.name, notification.value)

        self.store.get_entry(binding.key).add_listener(_on_change, SWITCH_FLAGS)
        return output

    def bound_index(self, name: str) -> Optional[int]:
        """出力に現在割り当てられているカメラのインデックス。未割り当てならNone。"""
        with self._lock:
            return self._bound[name]

    def select(self, name: str, value: Any) -> bool:
        """値を解決して出力のソースを差し替える。差し替えた場合はTrue。"""
        index = self.resolve(value)
        if index is None:
            logging.debug("Switched camera '%s': ignoring value %r", name, value)
            return False
        with self._lock:
            output = self.outputs[name]
            output.set_source(self.registry.source(index))
            self._bound[name] = index
        logging.debug(
            "Switched camera '%s' -> '%s' (%d)", name, self.registry.descriptor(index).name, index
        )
        return True

    def resolve(self, value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                return None
            index = int(value)
            if 0 <= index < len(self.registry):
                return index
            return None
        if isinstance(value, str):
            return self.registry.index_of(value)
        return None
