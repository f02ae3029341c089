"""Output video streams for the remote operator."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Tuple

import cv2

from .camera import VideoSource

DEFAULT_COMPRESSION = 75
DEFAULT_RESOLUTION = (320, 240)


class VideoOutput:
    """出力ストリーム。現在のソースの最新フレームをJPEGに圧縮して配信する。

    ソースの差し替えはロックで原子的に行われ、配信中でも安全に呼び出せる。
    外部の配信側は encode_frame() で送信するフレームを取得する。

    Args:
        name: ストリーム名。
        compression: JPEG品質（0〜100）。
        resolution: 配信解像度 (幅, 高さ)。
    """

    def __init__(
        self,
        name: str,
        compression: int = DEFAULT_COMPRESSION,
        resolution: Tuple[int, int] = DEFAULT_RESOLUTION,
    ) -> None:
        self.name = name
        self.compression = compression
        self.default_compression = compression
        self.resolution = resolution
        self.fps: Optional[int] = None
        self._source: Optional[VideoSource] = None
        self._lock = threading.Lock()

    @property
    def source(self) -> Optional[VideoSource]:
        with self._lock:
            return self._source

    def set_source(self, source: VideoSource) -> None:
        with self._lock:
            self._source = source

    def set_compression(self, quality: int) -> None:
        self.compression = _clamp_quality(quality)

    def set_default_compression(self, quality: int) -> None:
        self.default_compression = _clamp_quality(quality)

    def set_resolution(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"invalid resolution {width}x{height}")
        self.resolution = (width, height)

    def apply_config(self, config: Mapping[str, Any]) -> None:
        """カメラ設定の stream 要素に含まれるプロパティを適用する。"""
        width, height = self.resolution
        for prop in config.get("properties", ()):
            name = str(prop.get("name", "")).lower()
            value = prop.get("value")
            if name == "compression":
                self.set_compression(int(value))
            elif name == "default_compression":
                self.set_default_compression(int(value))
            elif name == "width":
                width = int(value)
            elif name == "height":
                height = int(value)
            elif name == "fps":
                self.fps = int(value)
            else:
                logging.warning("Stream '%s': unknown property '%s'", self.name, name)
        self.set_resolution(width, height)

    def encode_frame(self) -> Optional[bytes]:
        """現在のソースの最新フレームをJPEGバイト列にする。未接続またはフレーム未着ならNone。

        外部のMJPEG配信側がフレームごとに呼び出して送信データを取得する。
        配信のトランスポート自体はこのパッケージには含まれない。
        """
        source = self.source
        if source is None:
            return None
        frame = source.latest()
        if frame is None:
            return None
        if (frame.shape[1], frame.shape[0]) != self.resolution:
            frame = cv2.resize(frame, self.resolution, interpolation=cv2.INTER_AREA)
        ok, encoded = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, self.compression])
        if not ok:
            logging.warning("Stream '%s': JPEG encoding failed", self.name)
            return None
        return encoded.tobytes()


def _clamp_quality(quality: int) -> int:
    return max(0, min(100, int(quality)))
