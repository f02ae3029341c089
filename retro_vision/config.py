"""Static startup configuration loaded from the vision JSON file.

Format::

    {
        "team": <team number>,
        "ntmode": <"client" or "server", "client" if unspecified>,
        "cameras": [
            {
                "name": <camera name>,
                "path": <path, e.g. "/dev/video0">,
                "pixel format": <"MJPEG", "YUYV", etc>,   // optional
                "width": <video mode width>,              // optional
                "height": <video mode height>,            // optional
                "fps": <video mode fps>,                  // optional
                "brightness": <brightness>,               // optional
                "white balance": <"auto", "hold", value>, // optional
                "exposure": <"auto", "hold", value>,      // optional
                "properties": [{"name": ..., "value": ...}],   // optional
                "stream": {"properties": [{"name": ..., "value": ...}]}  // optional
            }
        ],
        "switched cameras": [
            {"name": <virtual camera name>, "key": <table key used for selection>}
        ]
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .camera import CameraDescriptor, SwitchBinding

DEFAULT_CONFIG_FILE = "/boot/frc.json"


class ConfigError(ValueError):
    """設定ファイルの内容が不正な場合に送出される。"""

    def __init__(self, config_file: str, detail: str) -> None:
        super().__init__(f"config error in '{config_file}': {detail}")
        self.config_file = config_file
        self.detail = detail


@dataclass(frozen=True)
class VisionConfig:
    team: int
    server: bool
    cameras: Tuple[CameraDescriptor, ...]
    switched: Tuple[SwitchBinding, ...] = ()


def load_config(path: str = DEFAULT_CONFIG_FILE) -> VisionConfig:
    """設定ファイルを読み込み、検証済みの VisionConfig を返す。"""
    try:
        with open(path, encoding="utf-8") as fp:
            data = json.load(fp)
    except OSError as exc:
        raise ConfigError(path, f"could not open: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(path, f"invalid JSON: {exc}") from exc
    return parse_config(data, path)


def parse_config(data: Any, config_file: str = DEFAULT_CONFIG_FILE) -> VisionConfig:
    if not isinstance(data, Mapping):
        raise ConfigError(config_file, "must be JSON object")

    team = data.get("team")
    if team is None:
        raise ConfigError(config_file, "could not read team number")
    try:
        team = int(team)
    except (TypeError, ValueError) as exc:
        raise ConfigError(config_file, f"could not read team number '{team}'") from exc

    server = False
    if "ntmode" in data:
        mode = str(data["ntmode"]).lower()
        if mode == "server":
            server = True
        elif mode != "client":
            # reported but not fatal; stays a client
            logging.error("config error in '%s': could not understand ntmode value '%s'", config_file, data["ntmode"])

    cameras = data.get("cameras")
    if cameras is None:
        raise ConfigError(config_file, "could not read cameras")
    if not isinstance(cameras, list):
        raise ConfigError(config_file, "cameras must be a list")
    descriptors = tuple(_read_camera(camera, config_file) for camera in cameras)

    switched = data.get("switched cameras", [])
    if not isinstance(switched, list):
        raise ConfigError(config_file, "switched cameras must be a list")
    bindings = tuple(_read_switched_camera(camera, config_file) for camera in switched)

    return VisionConfig(team=team, server=server, cameras=descriptors, switched=bindings)


def _read_camera(config: Any, config_file: str) -> CameraDescriptor:
    if not isinstance(config, Mapping):
        raise ConfigError(config_file, "camera entry must be JSON object")
    name = config.get("name")
    if name is None:
        raise ConfigError(config_file, "could not read camera name")
    path = config.get("path")
    if path is None:
        raise ConfigError(config_file, f"camera '{name}': could not read path")
    stream = config.get("stream")
    if stream is not None and not isinstance(stream, Mapping):
        raise ConfigError(config_file, f"camera '{name}': stream must be JSON object")
    return CameraDescriptor(
        name=str(name),
        path=str(path),
        config=config,
        stream_config=stream,
    )


def _read_switched_camera(config: Any, config_file: str) -> SwitchBinding:
    if not isinstance(config, Mapping):
        raise ConfigError(config_file, "switched camera entry must be JSON object")
    name = config.get("name")
    if name is None:
        raise ConfigError(config_file, "could not read switched camera name")
    key = config.get("key")
    if key is None:
        raise ConfigError(config_file, f"switched camera '{name}': could not read key")
    return SwitchBinding(name=str(name), key=str(key))
