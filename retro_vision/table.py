"""In-process shared key-value table with change listeners.

Mirrors the semantics the vision core needs from the robot's network tables:
atomic single-key reads and writes, namespaced sub-tables, and value-change
listeners delivered on a dedicated dispatcher thread.
"""

from __future__ import annotations

import enum
import logging
import math
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

PATH_SEPARATOR = "/"


class ListenerFlags(enum.IntFlag):
    """リスナーが通知を受け取るタイミング。"""

    IMMEDIATE = 0x01
    NEW = 0x02
    UPDATE = 0x04


@dataclass(frozen=True)
class EntryNotification:
    key: str
    value: Any
    flags: ListenerFlags


Listener = Callable[[EntryNotification], None]


class _Dispatcher:
    """通知をキューに積み、専用スレッドで順番に配信する。"""

    def __init__(self) -> None:
        self._queue: "queue.Queue[Tuple[Listener, EntryNotification]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def post(self, callback: Listener, notification: EntryNotification) -> None:
        self._ensure_started()
        self._queue.put((callback, notification))

    def flush(self) -> None:
        self._queue.join()

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name="table-listeners", daemon=True
                )
                self._thread.start()

    def _run(self) -> None:
        while True:
            callback, notification = self._queue.get()
            try:
                callback(notification)
            except Exception:
                logging.exception("Listener for '%s' raised", notification.key)
            finally:
                self._queue.task_done()


class Entry:
    """テーブル上の1つのキーへのハンドル。"""

    def __init__(self, store: "TableStore", key: str) -> None:
        self._store = store
        self.key = key

    def exists(self) -> bool:
        return self._store._get(self.key) is not None

    def get_value(self) -> Any:
        return self._store._get(self.key)

    def get_number(self, default: float) -> float:
        value = self._store._get(self.key)
        if _is_number(value):
            return float(value)
        return default

    def get_string(self, default: str) -> str:
        value = self._store._get(self.key)
        return value if isinstance(value, str) else default

    def get_boolean(self, default: bool) -> bool:
        value = self._store._get(self.key)
        return value if isinstance(value, bool) else default

    def set_number(self, value: float) -> None:
        self._store._put(self.key, float(value))

    def set_boolean(self, value: bool) -> None:
        self._store._put(self.key, bool(value))

    def set_string(self, value: str) -> None:
        self._store._put(self.key, str(value))

    def set_value(self, value: Any) -> None:
        if value is None:
            raise ValueError(f"cannot store None under '{self.key}'")
        self._store._put(self.key, value)

    def add_listener(self, callback: Listener, flags: ListenerFlags) -> None:
        """値の変化を購読する。

        Args:
            callback: EntryNotificationを受け取る関数。ディスパッチャスレッドで呼ばれる。
            flags: IMMEDIATEなら登録時に現在値で一度通知（キーが存在する場合）。
                NEWはキーの新規作成時、UPDATEはその後の値変更時に通知する。
        """
        self._store._add_listener(self.key, callback, flags)

    def __repr__(self) -> str:
        return f"Entry({self.key!r})"


class Table:
    """名前空間付きのサブテーブル。"""

    def __init__(self, store: "TableStore", name: str) -> None:
        self._store = store
        self.name = name

    def get_entry(self, key: str) -> Entry:
        return self._store.get_entry(f"{self.name}{PATH_SEPARATOR}{key}")


class TableStore:
    """スレッドセーフな共有キーバリューストア。

    各キーの読み書きはロックで原子的に行われる。複数キーにまたがる
    トランザクションは提供しない。
    """

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}
        self._listeners: Dict[str, List[Tuple[Listener, ListenerFlags]]] = {}
        self._lock = threading.Lock()
        self._dispatcher = _Dispatcher()
        self.mode: Optional[str] = None

    def start_server(self) -> None:
        self.mode = "server"
        logging.info("Shared table mode: server (transport external)")

    def start_client_team(self, team: int) -> None:
        self.mode = f"client:{team}"
        logging.info("Shared table mode: client for team %d (transport external)", team)

    def get_entry(self, key: str) -> Entry:
        return Entry(self, key.lstrip(PATH_SEPARATOR))

    def get_table(self, name: str) -> Table:
        return Table(self, name.strip(PATH_SEPARATOR))

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._values)

    def flush(self) -> None:
        """キューに積まれた通知がすべて配信されるまで待つ。"""
        self._dispatcher.flush()

    def _get(self, key: str) -> Any:
        with self._lock:
            return self._values.get(key)

    def _put(self, key: str, value: Any) -> None:
        with self._lock:
            previous = self._values.get(key)
            is_new = key not in self._values
            self._values[key] = value
            if not is_new and _same_value(previous, value):
                return
            wanted = ListenerFlags.NEW if is_new else ListenerFlags.UPDATE
            notification = EntryNotification(key, value, wanted)
            # posted under the lock so delivery order matches write order
            for callback, flags in self._listeners.get(key, ()):
                if flags & wanted:
                    self._dispatcher.post(callback, notification)

    def _add_listener(self, key: str, callback: Listener, flags: ListenerFlags) -> None:
        with self._lock:
            self._listeners.setdefault(key, []).append((callback, flags))
            current = self._values.get(key)
            if flags & ListenerFlags.IMMEDIATE and current is not None:
                self._dispatcher.post(
                    callback, EntryNotification(key, current, ListenerFlags.IMMEDIATE)
                )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _same_value(a: Any, b: Any) -> bool:
    if type(a) is not type(b):
        return False
    if isinstance(a, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b
