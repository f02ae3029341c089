"""Image processing pipeline pieces for retroreflective target detection."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from .buffers import BufferPool
from .geometry import pixel_to_angle
from .publisher import Detection

LOWER_COLOR = np.array([66, 90, 60], dtype=np.uint8)
UPPER_COLOR = np.array([100, 255, 240], dtype=np.uint8)
KERNEL_SIZE = (16, 16)
HORIZONTAL_FOV_DEG = 70.42

CENTERLINE_COLOR = (0, 0, 255)
CONTOUR_COLOR = (255, 0, 0)
LINE_THICKNESS = 5

Rect = Tuple[int, int, int, int]


class FrameDetector(ABC):
    """1フレームを受け取り、検出結果と出力フレームを返す処理の共通インターフェース。"""

    @abstractmethod
    def detect(self, frame: np.ndarray) -> Tuple[Optional[Detection], np.ndarray]:
        """フレームを処理する。

        Returns:
            (検出結果, 出力フレーム)。検出を行わない実装では検出結果はNone。
        """


class PassthroughDetector(FrameDetector):
    """フレームを加工せずにそのまま転送する。"""

    def detect(self, frame: np.ndarray) -> Tuple[Optional[Detection], np.ndarray]:
        return None, frame


class RetroTargetDetector(FrameDetector):
    """HSV色範囲と輪郭の外接矩形から再帰反射テープのターゲットを検出する。

    入力フレームには中心線と選ばれた輪郭が直接描き込まれる。

    Args:
        pool: 作業用バッファのプール。Noneの場合は新しく作成する。
        fov_degrees: カメラの水平視野角（度）。
    """

    def __init__(
        self,
        pool: Optional[BufferPool] = None,
        fov_degrees: float = HORIZONTAL_FOV_DEG,
    ) -> None:
        self.pool = pool if pool is not None else BufferPool()
        self.fov_degrees = fov_degrees
        self.kernel = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, KERNEL_SIZE)

    def detect(self, frame: np.ndarray) -> Tuple[Detection, np.ndarray]:
        height, width = frame.shape[:2]
        contours = self.find_contours(frame)

        index, rect = select_target(contours)
        if rect is None:
            detection = Detection.missing()
        else:
            center_x, center_y = rect_center_offset(rect, width, height)
            detection = Detection(
                found=True,
                center_x=center_x,
                center_y=center_y,
                angle_x=pixel_to_angle(width, self.fov_degrees, center_x),
            )

        self._draw_overlay(frame, contours, index)
        return detection, frame

    def find_contours(self, frame: np.ndarray) -> Tuple[np.ndarray, ...]:
        """色範囲マスクを膨張させ、輪郭を抽出する。作業用バッファはすべて返却される。"""
        height, width = frame.shape[:2]
        with self.pool.lease((height, width, 3)) as hsv, \
                self.pool.lease((height, width)) as mask, \
                self.pool.lease((height, width)) as dilated:
            hsv = cv2.cvtColor(frame, cv2.COLOR_BGR2HSV, dst=hsv)
            mask = cv2.inRange(hsv, LOWER_COLOR, UPPER_COLOR, dst=mask)
            dilated = cv2.dilate(mask, self.kernel, dst=dilated)
            contours, _ = cv2.findContours(dilated, cv2.RETR_TREE, cv2.CHAIN_APPROX_SIMPLE)
        return tuple(contours)

    @staticmethod
    def _draw_overlay(frame: np.ndarray, contours: Sequence[np.ndarray], index: int) -> None:
        height, width = frame.shape[:2]
        center = width // 2
        cv2.line(frame, (center, height), (center, 0), CENTERLINE_COLOR, LINE_THICKNESS)
        if index >= 0:
            cv2.drawContours(frame, contours, index, CONTOUR_COLOR, LINE_THICKNESS)


def select_target(contours: Sequence[np.ndarray]) -> Tuple[int, Optional[Rect]]:
    """横長の外接矩形のうち面積最大のものを選ぶ。

    同じ面積の場合は先に見つかった輪郭を優先する。

    Returns:
        (輪郭のインデックス, 外接矩形 (x, y, w, h))。該当なしの場合は (-1, None)。
    """
    max_area = -1
    best_index = -1
    best_rect: Optional[Rect] = None
    for i, contour in enumerate(contours):
        x, y, w, h = cv2.boundingRect(contour)
        if w <= h:
            continue
        area = w * h
        if area > max_area:
            max_area = area
            best_index = i
            best_rect = (x, y, w, h)
    return best_index, best_rect


def rect_center_offset(rect: Rect, frame_width: int, frame_height: int) -> Tuple[float, float]:
    """矩形中心のフレーム中心からの符号付きオフセットを計算する。

    半幅は整数除算で求め、+0.5 の補正を加える（ロボット側の値と一致させること）。
    """
    x, y, w, h = rect
    center_x = (x - frame_width // 2) + 0.5 + (w // 2)
    center_y = (y - frame_height // 2) + 0.5 + (h // 2)
    return center_x, center_y
