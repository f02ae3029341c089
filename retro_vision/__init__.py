"""Retroreflective target vision package."""

from .camera import CameraDescriptor, CameraRegistry, CameraSource, FrameSource, SwitchBinding
from .driver import PipelineDriver
from .gate import ModeGate, should_run
from .geometry import pixel_to_angle
from .pipeline import FrameDetector, PassthroughDetector, RetroTargetDetector
from .publisher import Detection, DetectionPublisher
from .router import CameraRouter
from .streams import VideoOutput
from .table import ListenerFlags, TableStore

__all__ = [
    "CameraDescriptor",
    "CameraRegistry",
    "CameraSource",
    "FrameSource",
    "SwitchBinding",
    "PipelineDriver",
    "ModeGate",
    "should_run",
    "pixel_to_angle",
    "FrameDetector",
    "PassthroughDetector",
    "RetroTargetDetector",
    "Detection",
    "DetectionPublisher",
    "CameraRouter",
    "VideoOutput",
    "ListenerFlags",
    "TableStore",
]
