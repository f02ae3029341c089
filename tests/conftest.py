import numpy as np
import pytest

from retro_vision.camera import CameraDescriptor, CameraRegistry, FrameSource
from retro_vision.table import TableStore

# BGR colour whose HSV value (80, 200, 200) sits inside the target range
TARGET_BGR = (148, 200, 43)
FRAME_WIDTH = 640
FRAME_HEIGHT = 480


@pytest.fixture
def store():
    return TableStore()


@pytest.fixture
def blank_frame():
    return np.zeros((FRAME_HEIGHT, FRAME_WIDTH, 3), dtype=np.uint8)


@pytest.fixture
def make_registry():
    def _make(*names):
        descriptors = [CameraDescriptor(name=name, path=f"/dev/video{i}") for i, name in enumerate(names)]
        sources = [FrameSource(name) for name in names]
        return CameraRegistry(descriptors, sources)

    return _make
