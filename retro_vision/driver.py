"""Per-camera pipeline driver threads."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import cv2

from .camera import FrameSource, VideoSource
from .gate import ModeGate
from .pipeline import FrameDetector
from .publisher import Detection, DetectionPublisher

FRAME_ERRORS = (cv2.error, MemoryError, ValueError)


class PipelineDriver:
    """1台のカメラからフレームを取り出し、検出器に通して出力へ渡す。

    ゲートが閉じているフレームは処理せずに捨てる。1フレームの処理で
    エラーが起きてもそのフレームを捨てるだけで、次のフレームから続行する。

    Args:
        name: ドライバ名（スレッド名に使う）。
        source: フレームの取得元。
        detector: フレームを処理する検出器。
        output: 処理後のフレームの渡し先。
        gate: 処理するかどうかを決めるゲート。Noneなら常に処理する。
        publisher: 検出結果の書き込み先。Noneなら書き込まない。
        on_result: 処理したフレームごとに呼ばれるコールバック。
    """

    def __init__(
        self,
        name: str,
        source: VideoSource,
        detector: FrameDetector,
        output: FrameSource,
        gate: Optional[ModeGate] = None,
        publisher: Optional[DetectionPublisher] = None,
        on_result: Optional[Callable[[Optional[Detection]], None]] = None,
    ) -> None:
        self.name = name
        self.source = source
        self.detector = detector
        self.output = output
        self.gate = gate
        self.publisher = publisher
        self.on_result = on_result

        self.frames_processed = 0
        self.frames_skipped = 0
        self.frames_failed = 0
        self._last_sequence = 0
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._loop, name=f"vision-{self.name}", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """次のフレームを受け取った時点でループを抜ける。"""
        self._running = False

    def run_once(self) -> Optional[Detection]:
        """次のフレームを1枚処理する。ゲートが閉じているかエラー時はNone。

        ゲートが閉じている間はフレーム番号だけ進め、フレームの複製は作らない。
        """
        sequence = self.source.wait_frame(self._last_sequence)

        if self.gate is not None and not self.gate.is_open():
            self._last_sequence = sequence
            self.frames_skipped += 1
            return None

        self._last_sequence, frame = self.source.grab_frame(sequence - 1)

        try:
            detection, result = self.detector.detect(frame)
        except FRAME_ERRORS as exc:
            self.frames_failed += 1
            logging.warning("Pipeline '%s': dropping frame: %s", self.name, exc)
            return None

        if detection is not None and self.publisher is not None:
            self.publisher.publish(detection)
        self.output.put_frame(result)
        self.frames_processed += 1

        if self.on_result is not None:
            self.on_result(detection)
        return detection

    def _loop(self) -> None:
        logging.debug("Pipeline '%s' started on '%s'", self.name, self.source.name)
        while self._running:
            try:
                self.run_once()
            except Exception:
                self.frames_failed += 1
                logging.exception("Pipeline '%s': frame cycle failed", self.name)
