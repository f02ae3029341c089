"""Process bootstrap: wires cameras, streams, router and pipeline drivers."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import time
from typing import Dict, List, Optional, Sequence

from .camera import CameraError, CameraRegistry, FrameSource
from .config import DEFAULT_CONFIG_FILE, ConfigError, VisionConfig, load_config
from .driver import PipelineDriver
from .gate import SWITCH_KEY, ModeGate
from .pipeline import PassthroughDetector, RetroTargetDetector
from .publisher import TABLE_NAME, DetectionPublisher
from .router import CameraRouter
from .streams import DEFAULT_COMPRESSION, VideoOutput
from .table import TableStore

PROCESSED_STREAM_NAME = "processedVideo"
PROCESSED_SOURCE_NAME = "myImage"
IDLE_SLEEP_S = 10.0


def setup_logging(debug: bool = False) -> None:
    """ログの設定を行う。"""

    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )


class VisionService:
    """設定からカメラ、出力ストリーム、切り替え、パイプラインを組み立てる。

    カメラ0では検出を行い、切り替え信号が0のときに結果を書き込む。
    カメラ1は信号が1のときだけ同じ処理済みストリームへフレームを転送する。

    Args:
        config: 検証済みの起動設定。
        store: 共有テーブル。
        registry: 起動済みカメラのレジストリ。Noneなら設定から起動する。
    """

    def __init__(
        self,
        config: VisionConfig,
        store: TableStore,
        registry: Optional[CameraRegistry] = None,
    ) -> None:
        self.config = config
        self.store = store
        if config.server:
            store.start_server()
        else:
            store.start_client_team(config.team)

        self.registry = registry if registry is not None else CameraRegistry.start(config.cameras)
        self.camera_outputs: Dict[str, VideoOutput] = {}
        for descriptor, source in self.registry:
            output = VideoOutput(descriptor.name)
            output.set_source(source)
            if descriptor.stream_config is not None:
                output.apply_config(descriptor.stream_config)
            self.camera_outputs[descriptor.name] = output

        self.router = CameraRouter(store, self.registry)
        for binding in config.switched:
            self.router.add_switched_camera(binding)

        self.processed_source = FrameSource(PROCESSED_SOURCE_NAME, "MJPEG", 640, 480, 30)
        self.processed_output = VideoOutput(PROCESSED_STREAM_NAME)
        self.processed_output.set_default_compression(DEFAULT_COMPRESSION)
        self.processed_output.set_source(self.processed_source)

        self.drivers: List[PipelineDriver] = self._build_drivers()

    def _build_drivers(self) -> List[PipelineDriver]:
        switch = self.store.get_entry(SWITCH_KEY)
        drivers = []
        if len(self.registry) >= 1:
            drivers.append(
                PipelineDriver(
                    name="target",
                    source=self.registry.source(0),
                    detector=RetroTargetDetector(),
                    output=self.processed_source,
                    gate=ModeGate(switch, 0.0),
                    publisher=DetectionPublisher(self.store.get_table(TABLE_NAME)),
                )
            )
        if len(self.registry) >= 2:
            drivers.append(
                PipelineDriver(
                    name="passthrough",
                    source=self.registry.source(1),
                    detector=PassthroughDetector(),
                    output=self.processed_source,
                    gate=ModeGate(switch, 1.0),
                )
            )
        return drivers

    def start(self) -> None:
        for driver in self.drivers:
            driver.start()

    def run(self) -> None:
        """パイプラインを開始し、プロセスが終了させられるまで待機する。"""
        self.start()
        while True:
            time.sleep(IDLE_SLEEP_S)


def register_signal_handlers() -> None:
    """Exit cleanly on termination signals."""

    def _handle_signal(signum, frame):  # pragma: no cover - signal handler
        logging.info("Received signal %s, shutting down", signum)
        sys.exit(0)

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handle_signal)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Retroreflective target vision service")
    parser.add_argument("config", nargs="?", default=DEFAULT_CONFIG_FILE, help="vision config JSON")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    args = parser.parse_args(argv)

    setup_logging(args.debug)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        logging.error("%s", exc)
        return 1

    register_signal_handlers()
    try:
        service = VisionService(config, TableStore())
    except CameraError as exc:
        logging.error("%s", exc)
        return 1
    service.run()
    return 0
