"""Detection results and their publication to the shared table."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .table import Table

TABLE_NAME = "Retroreflective Tape Target"
KEY_CENTER_X = "Retro x"
KEY_CENTER_Y = "Retro y"
KEY_FOUND = "Retroreflective Target Found"
KEY_ANGLE_X = "X Angle"


@dataclass(frozen=True)
class Detection:
    """1フレーム分の検出結果。foundがFalseのとき座標と角度はNone。"""

    found: bool
    center_x: Optional[float] = None
    center_y: Optional[float] = None
    angle_x: Optional[float] = None

    @classmethod
    def missing(cls) -> "Detection":
        return cls(found=False)


class DetectionPublisher:
    """検出結果を共有テーブルへ書き込む。

    ターゲットが見つからなかった場合は検出フラグだけを更新し、
    座標と角度は直前の値のまま残す。

    Args:
        table: 書き込み先のテーブル。
    """

    def __init__(self, table: Table) -> None:
        self.table = table
        self._center_x = table.get_entry(KEY_CENTER_X)
        self._center_y = table.get_entry(KEY_CENTER_Y)
        self._found = table.get_entry(KEY_FOUND)
        self._angle_x = table.get_entry(KEY_ANGLE_X)

    def publish(self, detection: Detection) -> None:
        if detection.found:
            self._center_x.set_number(detection.center_x)
            self._center_y.set_number(detection.center_y)
            self._found.set_boolean(True)
            self._angle_x.set_number(detection.angle_x)
            logging.debug(
                "Target at (%.1f, %.1f), %.2f°",
                detection.center_x,
                detection.center_y,
                detection.angle_x,
            )
        else:
            self._found.set_boolean(False)
