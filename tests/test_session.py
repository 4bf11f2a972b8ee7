"""Tests for core/session.py — end-to-end wiring through the event system."""

import time
from dataclasses import dataclass

from core.event_system import EventType, FileUpdatedEventData, MessageReceivedEventData
from core.session import MediaSession
from network.protocol import ChatMessage, MessagePhoto
from tests.conftest import MockConfigManager, make_file, make_photo


@dataclass
class ChatTile:
    id: int


def _file_event(file):
    return FileUpdatedEventData(EventType.FILE_UPDATED, "test", time.time(), file=file)


class TestSession:
    def test_file_updates_flow_to_callbacks(self, backend, events, config):
        session = MediaSession(backend, config, events)
        calls = []
        session.download(make_file(1), 8, calls.append)

        done = make_file(1, downloaded=True, downloaded_size=1000)
        events.publish(_file_event(done))

        assert calls == [done]
        assert session.registry.lookup(1) is done

    def test_sessions_do_not_share_state(self, backend, config):
        first = MediaSession(backend, config)
        second = MediaSession(backend, config)
        first.registry.ensure(make_file(1))
        assert 1 not in second.registry
        assert first.event_system is not second.event_system

    def test_auto_download_follows_config(self, backend, events):
        config = MockConfigManager({"auto_download.enabled": True, "auto_download.chat_ids": [3]})
        session = MediaSession(backend, config, events)
        assert session.auto_download.enabled

        photo = make_photo((90, 90, make_file(1)), (800, 600, make_file(2)))
        message = ChatMessage(id=1, chat_id=3, content=MessagePhoto(photo=photo))
        events.publish(MessageReceivedEventData(EventType.MESSAGE_RECEIVED, "test", time.time(), message=message))

        assert [(r.file_id, r.priority) for r in backend.sent] == [(1, 32), (2, 5)]

    def test_render_and_selectors(self, backend, events, config):
        session = MediaSession(backend, config, events)
        photo = make_photo((90, 68, make_file(1)), (800, 600, make_file(2)))

        assert session.thumb(photo).width == 90
        assert session.highres(photo).width == 800
        assert session.best(photo, (40, 20)).width == 800

        handle = session.render(ChatTile(1), session.thumb(photo).photo)
        assert handle.content is None
        events.publish(_file_event(make_file(1, downloaded=True, path="")))
        assert handle.version == 1

    def test_cancel_delete_upload(self, backend, events, config):
        session = MediaSession(backend, config, events)
        backend.replies["upload_file"] = make_file(9, uploading=True)
        assert session.upload("/tmp/a.jpg", "photo").id == 9
        session.cancel(9)
        session.delete(9)
        assert backend.sent_commands() == ["cancel_download_file", "delete_file"]

    def test_close_unsubscribes_everything(self, backend, events):
        config = MockConfigManager({"auto_download.enabled": True})
        session = MediaSession(backend, config, events)
        assert events.subscriber_count() == 4
        session.close()
        assert events.subscriber_count() == 0
