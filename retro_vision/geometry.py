"""Pixel to angle conversion for a pinhole camera model."""

from __future__ import annotations

import math


def pixel_to_angle(frame_width: float, fov_degrees: float, pixel_offset: float) -> float:
    """フレーム中心からの画素オフセットを水平角度（度）に変換する。

    Args:
        frame_width: フレームの幅（画素）。0より大きい値。
        fov_degrees: 水平視野角（度）。0〜180の範囲（両端を含まない）。
        pixel_offset: フレーム中心からの符号付き画素オフセット。

    Returns:
        符号付きの角度（度）。オフセットが負なら負の角度。
    """
    if frame_width <= 0:
        raise ValueError(f"frame_width must be positive, got {frame_width}")
    if not 0 < fov_degrees < 180:
        raise ValueError(f"fov_degrees must be in (0, 180), got {fov_degrees}")

    focal = (0.5 * frame_width) / math.tan(0.5 * (fov_degrees * math.pi / 180.0))
    dot = focal * focal
    # acos can see a ratio a hair above 1.0 from rounding at offset 0
    ratio = min(1.0, dot / (focal * math.sqrt(pixel_offset * pixel_offset + focal * focal)))
    alpha = math.acos(ratio)
    if pixel_offset < 0:
        alpha = -alpha
    return alpha * 180.0 / math.pi
