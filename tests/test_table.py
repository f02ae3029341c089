"""
Tests for the shared key-value table
"""

import logging
import threading

import pytest

from retro_vision.table import ListenerFlags, TableStore


class Recorder:
    def __init__(self):
        self.events = []

    def __call__(self, notification):
        self.events.append((notification.value, notification.flags))


class TestEntries:

    def test_defaults_when_absent(self, store):
        entry = store.get_entry("PumpkinSwitch")
        assert entry.exists() is False
        assert entry.get_number(0) == 0
        assert entry.get_string("none") == "none"
        assert entry.get_boolean(True) is True

    def test_typed_reads(self, store):
        store.get_entry("n").set_number(3)
        store.get_entry("s").set_string("front")
        store.get_entry("b").set_boolean(False)

        assert store.get_entry("n").get_number(0) == 3.0
        assert store.get_entry("n").get_string("x") == "x"
        assert store.get_entry("s").get_number(-1) == -1
        assert store.get_entry("b").get_boolean(True) is False
        # booleans are not numbers
        assert store.get_entry("b").get_number(7) == 7

    def test_sub_table_keys_are_namespaced(self, store):
        store.get_table("Retroreflective Tape Target").get_entry("Retro x").set_number(1.5)

        assert store.get_entry("Retroreflective Tape Target/Retro x").get_number(0) == 1.5
        assert store.get_entry("/Retroreflective Tape Target/Retro x").get_number(0) == 1.5
        assert store.get_entry("Retro x").exists() is False

    def test_none_is_rejected(self, store):
        with pytest.raises(ValueError):
            store.get_entry("k").set_value(None)

    def test_concurrent_writers(self, store):
        def writer(n):
            for i in range(200):
                store.get_entry(f"k{n}").set_number(i)

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert [store.get_entry(f"k{n}").get_number(-1) for n in range(4)] == [199.0] * 4


class TestListeners:

    def test_immediate_fires_with_current_value(self, store):
        store.get_entry("cam").set_number(2)
        recorder = Recorder()

        store.get_entry("cam").add_listener(recorder, ListenerFlags.IMMEDIATE)
        store.flush()

        assert recorder.events == [(2.0, ListenerFlags.IMMEDIATE)]

    def test_immediate_skipped_when_key_missing(self, store):
        recorder = Recorder()
        store.get_entry("cam").add_listener(recorder, ListenerFlags.IMMEDIATE)
        store.flush()
        assert recorder.events == []

    def test_new_then_update(self, store):
        recorder = Recorder()
        store.get_entry("cam").add_listener(recorder, ListenerFlags.NEW | ListenerFlags.UPDATE)

        store.get_entry("cam").set_number(0)
        store.get_entry("cam").set_number(1)
        store.get_entry("cam").set_string("rear")
        store.flush()

        assert recorder.events == [
            (0.0, ListenerFlags.NEW),
            (1.0, ListenerFlags.UPDATE),
            ("rear", ListenerFlags.UPDATE),
        ]

    def test_unchanged_value_does_not_notify(self, store):
        recorder = Recorder()
        store.get_entry("cam").add_listener(recorder, ListenerFlags.UPDATE)
        store.get_entry("cam").set_number(1)
        store.get_entry("cam").set_number(1)
        store.flush()
        assert recorder.events == []

    def test_flags_filter_notifications(self, store):
        recorder = Recorder()
        store.get_entry("cam").add_listener(recorder, ListenerFlags.UPDATE)

        store.get_entry("cam").set_number(0)
        store.get_entry("cam").set_number(4)
        store.flush()

        assert recorder.events == [(4.0, ListenerFlags.UPDATE)]

    def test_delivered_on_dispatcher_thread(self, store):
        threads = []
        store.get_entry("cam").add_listener(
            lambda n: threads.append(threading.current_thread().name), ListenerFlags.NEW
        )
        store.get_entry("cam").set_number(1)
        store.flush()
        assert threads == ["table-listeners"]

    def test_failing_listener_does_not_block_others(self, store):
        recorder = Recorder()

        def broken(notification):
            raise RuntimeError("boom")

        store.get_entry("cam").add_listener(broken, ListenerFlags.NEW)
        store.get_entry("cam").add_listener(recorder, ListenerFlags.NEW)
        store.get_entry("cam").set_number(1)
        store.flush()

        assert recorder.events == [(1.0, ListenerFlags.NEW)]


class TestStartup:

    def test_modes(self):
        server = TableStore()
        server.start_server()
        client = TableStore()
        client.start_client_team(2429)

        assert server.mode == "server"
        assert client.mode == "client:2429"

    def test_mode_log_does_not_claim_a_transport(self, caplog):
        caplog.set_level(logging.INFO)
        TableStore().start_server()
        TableStore().start_client_team(2429)

        assert "Shared table mode: server (transport external)" in caplog.text
        assert "Shared table mode: client for team 2429 (transport external)" in caplog.text
        assert "Setting up" not in caplog.text
