"""Tests for core/callbacks.py — per-file callback fan-out."""

import pytest

from core import file_state
from core.callbacks import CallbackMultiplexer, FunctionCallback
from core.file_registry import FileRegistry
from tests.conftest import make_file


class RecordingCallback:
    def __init__(self, log, name, keep=True):
        self.log = log
        self.name = name
        self.keep = keep

    def on_update(self, file):
        self.log.append((self.name, file))
        return self.keep


@pytest.fixture()
def registry(backend):
    return FileRegistry(backend)


@pytest.fixture()
def mux(registry):
    return CallbackMultiplexer(registry)


class TestDispatch:
    def test_updates_registry_before_notifying(self, registry, mux):
        seen = []
        update = make_file(1, downloading=True)
        mux.register(1, FunctionCallback(lambda f: seen.append(registry.lookup(1)), lambda f: False))

        mux.dispatch(update)

        assert seen == [update]

    def test_unregistered_id_is_first_sight_registration(self, registry, mux):
        update = make_file(99)
        assert mux.dispatch(update) is update
        assert registry.lookup(99) is update

    def test_invokes_in_registration_order(self, mux):
        log = []
        for name in ("a", "b", "c"):
            mux.register(1, RecordingCallback(log, name))
        mux.dispatch(make_file(1))
        assert [name for name, _ in log] == ["a", "b", "c"]

    def test_only_callbacks_for_that_id_run(self, mux):
        log = []
        mux.register(1, RecordingCallback(log, "one"))
        mux.register(2, RecordingCallback(log, "two"))
        mux.dispatch(make_file(2))
        assert [name for name, _ in log] == ["two"]

    def test_drops_callbacks_no_longer_interested(self, mux):
        log = []
        mux.register(1, RecordingCallback(log, "done", keep=False))
        mux.register(1, RecordingCallback(log, "still", keep=True))

        mux.dispatch(make_file(1))
        mux.dispatch(make_file(1))

        assert [name for name, _ in log] == ["done", "still", "still"]
        assert mux.pending(1) == 1

    def test_relevance_follows_file_state(self, mux):
        calls = []
        mux.register(1, FunctionCallback(calls.append, file_state.is_downloading))

        mux.dispatch(make_file(1, downloading=True, downloaded_size=100))
        assert mux.pending(1) == 1
        mux.dispatch(make_file(1, downloaded=True, downloaded_size=1000))
        assert mux.pending(1) == 0
        assert len(calls) == 2

    def test_failing_callback_is_dropped_and_others_run(self, mux):
        log = []

        class Broken:
            def on_update(self, file):
                raise RuntimeError("boom")

        mux.register(1, Broken())
        mux.register(1, RecordingCallback(log, "ok"))

        mux.dispatch(make_file(1))

        assert [name for name, _ in log] == ["ok"]
        assert mux.pending(1) == 1


class TestReentrantRegistration:
    def test_registration_during_dispatch_waits_for_next_update(self, mux):
        log = []
        late = RecordingCallback(log, "late")

        def _register_more(file):
            log.append(("early", file))
            mux.register(1, late)

        mux.register(1, FunctionCallback(_register_more, lambda f: False))

        mux.dispatch(make_file(1))
        assert [name for name, _ in log] == ["early"]

        mux.dispatch(make_file(1))
        assert [name for name, _ in log] == ["early", "late"]

    def test_registration_for_other_id_during_dispatch(self, mux):
        log = []
        mux.register(1, FunctionCallback(lambda f: mux.register(2, RecordingCallback(log, "two")), lambda f: False))
        mux.dispatch(make_file(1))
        assert mux.pending(2) == 1
        mux.dispatch(make_file(2))
        assert [name for name, _ in log] == ["two"]


class TestBookkeeping:
    def test_discard_purges_id(self, mux):
        mux.register(1, RecordingCallback([], "a"))
        mux.register(1, RecordingCallback([], "b"))
        assert mux.discard(1) == 2
        assert mux.pending() == 0
        assert mux.watched_ids() == []
