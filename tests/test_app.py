"""
Tests for service wiring and the command line entry point
"""

from retro_vision.app import PROCESSED_STREAM_NAME, VisionService, main
from retro_vision.camera import CameraDescriptor, CameraRegistry, FrameSource, SwitchBinding
from retro_vision.config import VisionConfig
from retro_vision.gate import SWITCH_KEY
from retro_vision.pipeline import PassthroughDetector, RetroTargetDetector


def make_config(registry, server=False, switched=()):
    descriptors = tuple(descriptor for descriptor, _ in registry)
    return VisionConfig(team=2429, server=server, cameras=descriptors, switched=tuple(switched))


class TestVisionService:

    def test_two_cameras_share_processed_stream(self, store, make_registry):
        registry = make_registry("front", "rear")
        service = VisionService(make_config(registry), store, registry)

        target, passthrough = service.drivers
        assert isinstance(target.detector, RetroTargetDetector)
        assert isinstance(passthrough.detector, PassthroughDetector)
        assert target.source is registry.source(0)
        assert passthrough.source is registry.source(1)
        assert target.output is passthrough.output is service.processed_source
        assert (target.gate.expected_value, passthrough.gate.expected_value) == (0.0, 1.0)
        assert target.gate.entry.key == passthrough.gate.entry.key == SWITCH_KEY
        assert target.publisher is not None and passthrough.publisher is None
        assert service.processed_output.name == PROCESSED_STREAM_NAME
        assert service.processed_output.source is service.processed_source
        assert store.mode == "client:2429"

    def test_single_camera_has_one_driver(self, store, make_registry):
        registry = make_registry("front")
        service = VisionService(make_config(registry, server=True), store, registry)

        assert len(service.drivers) == 1
        assert store.mode == "server"

    def test_camera_streams_and_switched_outputs(self, store, make_registry):
        registry = make_registry("front", "rear")
        store.get_entry("CameraSelect").set_string("rear")
        config = make_config(registry, switched=[SwitchBinding("driver", "CameraSelect")])

        service = VisionService(config, store, registry)
        store.flush()

        assert service.camera_outputs["front"].source is registry.source(0)
        assert service.camera_outputs["rear"].source is registry.source(1)
        assert service.router.outputs["driver"].source is registry.source(1)

    def test_stream_config_applied(self, store):
        descriptor = CameraDescriptor(
            "front", "/dev/video0", stream_config={"properties": [{"name": "compression", "value": 20}]}
        )
        registry = CameraRegistry([descriptor], [FrameSource("front")])
        config = VisionConfig(team=1, server=False, cameras=(descriptor,))

        service = VisionService(config, store, registry)

        assert service.camera_outputs["front"].compression == 20


class TestMain:

    def test_missing_config_exits_nonzero(self, tmp_path, caplog):
        assert main([str(tmp_path / "frc.json")]) == 1
        assert "config error in" in caplog.text

    def test_camera_failure_exits_nonzero(self, tmp_path, caplog, monkeypatch):
        path = tmp_path / "frc.json"
        path.write_text('{"team": 1, "cameras": [{"name": "front", "path": "/dev/does-not-exist"}]}')
        monkeypatch.setattr("retro_vision.app.register_signal_handlers", lambda: None)

        assert main([str(path)]) == 1
        assert "Failed to open camera 'front'" in caplog.text
