"""
Tests for detection publishing and the mode gate
"""

import pytest

from retro_vision.gate import SWITCH_KEY, ModeGate, should_run
from retro_vision.publisher import (
    KEY_ANGLE_X,
    KEY_CENTER_X,
    KEY_CENTER_Y,
    KEY_FOUND,
    TABLE_NAME,
    Detection,
    DetectionPublisher,
)


def snapshot(store):
    table = store.get_table(TABLE_NAME)
    return {key: table.get_entry(key).get_value() for key in (KEY_CENTER_X, KEY_CENTER_Y, KEY_FOUND, KEY_ANGLE_X)}


class TestDetectionPublisher:

    @pytest.fixture
    def publisher(self, store):
        return DetectionPublisher(store.get_table(TABLE_NAME))

    def test_found_writes_all_keys(self, store, publisher):
        publisher.publish(Detection(found=True, center_x=130.5, center_y=-19.5, angle_x=12.25))

        assert snapshot(store) == {
            KEY_CENTER_X: 130.5,
            KEY_CENTER_Y: -19.5,
            KEY_FOUND: True,
            KEY_ANGLE_X: 12.25,
        }

    def test_missing_only_updates_flag(self, store, publisher):
        publisher.publish(Detection.missing())

        assert snapshot(store) == {KEY_CENTER_X: None, KEY_CENTER_Y: None, KEY_FOUND: False, KEY_ANGLE_X: None}

    def test_missing_leaves_previous_numbers(self, store, publisher):
        publisher.publish(Detection(found=True, center_x=4.5, center_y=2.5, angle_x=1.0))
        publisher.publish(Detection.missing())

        assert snapshot(store) == {KEY_CENTER_X: 4.5, KEY_CENTER_Y: 2.5, KEY_FOUND: False, KEY_ANGLE_X: 1.0}

    def test_publish_is_idempotent(self, store, publisher):
        detection = Detection(found=True, center_x=-7.5, center_y=0.5, angle_x=-1.5)

        publisher.publish(detection)
        first = snapshot(store)
        publisher.publish(detection)

        assert snapshot(store) == first


class TestModeGate:

    def test_should_run_is_equality(self):
        assert should_run(0.0, 0.0) is True
        assert should_run(1.0, 0.0) is False
        assert should_run(1, 1.0) is True

    def test_absent_signal_defaults_to_zero(self, store):
        entry = store.get_entry(SWITCH_KEY)
        assert ModeGate(entry, 0.0).is_open() is True
        assert ModeGate(entry, 1.0).is_open() is False

    def test_reads_signal_every_call(self, store):
        entry = store.get_entry(SWITCH_KEY)
        first, second = ModeGate(entry, 0.0), ModeGate(entry, 1.0)

        entry.set_number(1)
        assert (first.is_open(), second.is_open()) == (False, True)

        entry.set_number(0)
        assert (first.is_open(), second.is_open()) == (True, False)

        entry.set_number(2)
        assert (first.is_open(), second.is_open()) == (False, False)
