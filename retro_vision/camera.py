"""Camera sources and the ordered camera registry."""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterator, Mapping, Optional, Sequence, Tuple

import cv2
import numpy as np

READ_RETRY_DELAY_S = 0.05

PIXEL_FORMATS = {
    "mjpeg": "MJPG",
    "yuyv": "YUYV",
    "rgb565": "RGBP",
    "bgr": "BGR3",
    "gray": "GREY",
}


class CameraError(RuntimeError):
    """カメラデバイスを開けなかった場合に送出される。"""


@dataclass(frozen=True)
class CameraDescriptor:
    """起動時設定から作られるカメラの定義。

    Args:
        name: カメラ名。レジストリ内で一意。
        path: デバイスパス（例: /dev/video0）。
        config: デバイス設定（設定ファイルのカメラ要素そのもの）。
        stream_config: 配信ストリームの設定。省略可能。

    設定は作成時に深いコピーを取り、読み取り専用のマッピングとして保持する。
    """

    name: str
    path: str
    config: Mapping[str, Any] = field(default_factory=dict)
    stream_config: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "config", MappingProxyType(copy.deepcopy(dict(self.config))))
        if self.stream_config is not None:
            object.__setattr__(
                self, "stream_config", MappingProxyType(copy.deepcopy(dict(self.stream_config)))
            )


@dataclass(frozen=True)
class SwitchBinding:
    """切り替え可能な出力ストリームと、それを制御するキーの組。"""

    name: str
    key: str


class VideoSource:
    """最新フレームだけを保持するフレーム供給元の基底クラス。

    フレームはキューに溜めず、新しいフレームが来たら古いものは捨てる。
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._frame: Optional[np.ndarray] = None
        self._sequence = 0
        self._cond = threading.Condition()

    def latest(self) -> Optional[np.ndarray]:
        """最新フレームを返す。呼び出し側は内容を書き換えてはならない。"""
        with self._cond:
            return self._frame

    @property
    def sequence(self) -> int:
        with self._cond:
            return self._sequence

    def wait_frame(self, after: int = 0) -> int:
        """after より新しいフレームが届くまで待ち、その番号だけを返す。複製はしない。"""
        with self._cond:
            while self._sequence <= after or self._frame is None:
                self._cond.wait()
            return self._sequence

    def grab_frame(self, after: int = 0) -> Tuple[int, np.ndarray]:
        """after より新しいフレームが届くまで待ち、その複製を返す。

        タイムアウトはなく、供給元が止まれば呼び出し側も止まる。

        Returns:
            (フレーム番号, 呼び出し側が専有してよいフレームの複製)。
        """
        with self._cond:
            while self._sequence <= after or self._frame is None:
                self._cond.wait()
            return self._sequence, self._frame.copy()

    def _store(self, frame: np.ndarray) -> None:
        with self._cond:
            self._frame = frame
            self._sequence += 1
            self._cond.notify_all()


class FrameSource(VideoSource):
    """処理済みフレームを受け取る出力用の供給元。

    Args:
        name: ソース名。
        pixel_format: 想定するピクセルフォーマット名。
        width: 想定するフレーム幅。
        height: 想定するフレーム高さ。
        fps: 想定するフレームレート。
    """

    def __init__(
        self,
        name: str,
        pixel_format: str = "MJPEG",
        width: int = 640,
        height: int = 480,
        fps: int = 30,
    ) -> None:
        super().__init__(name)
        self.pixel_format = pixel_format
        self.width = width
        self.height = height
        self.fps = fps

    def put_frame(self, frame: np.ndarray) -> None:
        """フレームの所有権を受け取る。渡した側はこのフレームを再利用しないこと。"""
        self._store(frame)


class CameraSource(VideoSource):
    """USBカメラを開き、専用スレッドで常にフレームを読み続ける。

    デバイスは利用者がいなくても開いたままにする。

    Args:
        descriptor: カメラの定義。
    """

    def __init__(self, descriptor: CameraDescriptor) -> None:
        super().__init__(descriptor.name)
        self.descriptor = descriptor
        self.cap = cv2.VideoCapture(descriptor.path)
        if not self.cap.isOpened():
            raise CameraError(f"Failed to open camera '{descriptor.name}' on {descriptor.path}")
        self.configure(descriptor.config)

        self._running = False
        self._thread: Optional[threading.Thread] = None

    def configure(self, config: Mapping[str, Any]) -> None:
        """デバイス設定をcv2のキャプチャプロパティとして適用する。"""
        pixel_format = config.get("pixel format")
        if pixel_format is not None:
            fourcc = PIXEL_FORMATS.get(str(pixel_format).lower())
            if fourcc is None:
                logging.warning("Camera '%s': unknown pixel format '%s'", self.name, pixel_format)
            else:
                self._set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*fourcc), "pixel format")

        for key, prop in (
            ("width", cv2.CAP_PROP_FRAME_WIDTH),
            ("height", cv2.CAP_PROP_FRAME_HEIGHT),
            ("fps", cv2.CAP_PROP_FPS),
            ("brightness", cv2.CAP_PROP_BRIGHTNESS),
        ):
            if key in config:
                self._set(prop, float(config[key]), key)

        if "white balance" in config:
            self._apply_auto_setting(
                config["white balance"],
                auto_prop=cv2.CAP_PROP_AUTO_WB,
                auto_on=1.0,
                auto_off=0.0,
                value_prop=cv2.CAP_PROP_WB_TEMPERATURE,
                label="white balance",
            )
        if "exposure" in config:
            # V4L2: 3 = aperture priority (auto), 1 = manual
            self._apply_auto_setting(
                config["exposure"],
                auto_prop=cv2.CAP_PROP_AUTO_EXPOSURE,
                auto_on=3.0,
                auto_off=1.0,
                value_prop=cv2.CAP_PROP_EXPOSURE,
                label="exposure",
            )

        for prop in config.get("properties", ()):
            name = str(prop.get("name", ""))
            attr = "CAP_PROP_" + name.upper().replace(" ", "_")
            if not hasattr(cv2, attr):
                logging.warning("Camera '%s': unknown property '%s'", self.name, name)
                continue
            self._set(getattr(cv2, attr), float(prop.get("value", 0)), name)

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._capture_loop, name=f"capture-{self.name}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        if self._thread:
            self._thread.join()
            self._thread = None

    def release(self) -> None:
        self.stop()
        if self.cap.isOpened():
            self.cap.release()

    def _capture_loop(self) -> None:
        while self._running:
            ret, frame = self.cap.read()
            if not ret or frame is None:
                logging.debug("Camera '%s': frame read failed", self.name)
                time.sleep(READ_RETRY_DELAY_S)
                continue
            self._store(frame)

    def _apply_auto_setting(
        self,
        value: Any,
        *,
        auto_prop: int,
        auto_on: float,
        auto_off: float,
        value_prop: int,
        label: str,
    ) -> None:
        if isinstance(value, str):
            mode = value.lower()
            if mode == "auto":
                self._set(auto_prop, auto_on, label)
            elif mode == "hold":
                self._set(auto_prop, auto_off, label)
            else:
                logging.warning("Camera '%s': could not understand %s value '%s'", self.name, label, value)
            return
        self._set(auto_prop, auto_off, label)
        self._set(value_prop, float(value), label)

    def _set(self, prop: int, value: float, label: str) -> None:
        if not self.cap.set(prop, value):
            logging.warning("Camera '%s': could not set %s to %s", self.name, label, value)


class CameraRegistry:
    """作成順に並んだカメラの不変レジストリ。インデックスが切り替え値になる。"""

    def __init__(self, descriptors: Sequence[CameraDescriptor], sources: Sequence[VideoSource]) -> None:
        if len(descriptors) != len(sources):
            raise ValueError("descriptors and sources must have the same length")
        self._descriptors: Tuple[CameraDescriptor, ...] = tuple(descriptors)
        self._sources: Tuple[VideoSource, ...] = tuple(sources)

    @classmethod
    def start(cls, descriptors: Sequence[CameraDescriptor]) -> "CameraRegistry":
        """設定順にカメラを開き、キャプチャを開始する。"""
        sources = []
        for descriptor in descriptors:
            logging.info("Starting camera '%s' on %s", descriptor.name, descriptor.path)
            source = CameraSource(descriptor)
            source.start()
            sources.append(source)
        return cls(descriptors, sources)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[Tuple[CameraDescriptor, VideoSource]]:
        return iter(zip(self._descriptors, self._sources))

    def descriptor(self, index: int) -> CameraDescriptor:
        return self._descriptors[index]

    def source(self, index: int) -> VideoSource:
        return self._sources[index]

    def index_of(self, name: str) -> Optional[int]:
        """名前で線形探索し、最初に一致したインデックスを返す。"""
        for i, descriptor in enumerate(self._descriptors):
            if descriptor.name == name:
                return i
        return None
