"""
Shared pytest fixtures for chatmedia tests.
"""
import os
import sys

# Ensure project root is on path for all tests
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest

from network import protocol
from network.protocol import File, LocalFile, Photo, PhotoSize, RemoteFile
from core.event_system import EventSystem


class MockConfigManager:
    """Minimal ConfigManager substitute that accepts a plain dict."""

    def __init__(self, overrides: dict | None = None):
        self._cfg: dict = {
            "display": {"cell_width": 10, "cell_height": 20, "max_width": 40, "max_height": 20},
            "auto_download": {"enabled": False, "all_chats": False, "chat_ids": []},
            "priorities": {"render": 16},
        }
        if overrides:
            for key, value in overrides.items():
                self.set(key, value)

    def get(self, key: str, default=None):
        keys = key.split(".")
        val = self._cfg
        for k in keys:
            if isinstance(val, dict):
                val = val.get(k)
            else:
                return default
        return val if val is not None else default

    def set(self, key: str, value):
        keys = key.split(".")
        node = self._cfg
        for k in keys[:-1]:
            node = node.setdefault(k, {})
        node[keys[-1]] = value

    @property
    def cell_size(self):
        return self.get("display.cell_width"), self.get("display.cell_height")

    @property
    def max_display_size(self):
        return self.get("display.max_width"), self.get("display.max_height")

    def auto_download_filter(self):
        return lambda chat_id: chat_id in self.get("auto_download.chat_ids", [])


class FakeBackend:
    """In-memory backend recording every request.

    ``replies`` maps a command name to a File, an exception to raise, or a
    callable taking the request and returning a File.
    """

    def __init__(self):
        self.sent: list = []
        self.calls: list = []
        self.replies: dict = {}

    def send(self, request):
        self.sent.append(request)

    def call(self, request, response_model=protocol.FileResponse):
        self.calls.append(request)
        reply = self.replies.get(request.command)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(request)
        return response_model(file=reply)

    def sent_commands(self) -> list:
        return [r.command for r in self.sent]


def make_file(file_id: int, size: int = 1000, expected_size: int = 0, downloaded: bool = False,
              downloading: bool = False, can_download: bool = True, downloaded_size: int = 0,
              path: str = "", uploading: bool = False, uploaded: bool = False, uploaded_size: int = 0) -> File:
    return File(
        id=file_id,
        size=size,
        expected_size=expected_size,
        local=LocalFile(
            path=path,
            can_be_downloaded=can_download,
            is_downloading_active=downloading,
            is_downloading_completed=downloaded,
            downloaded_size=downloaded_size,
        ),
        remote=RemoteFile(
            is_uploading_active=uploading,
            is_uploading_completed=uploaded,
            uploaded_size=uploaded_size,
        ),
    )


def make_photo(*specs) -> Photo:
    """Build a Photo from (width, height, File) triples, ascending."""
    return Photo(sizes=[
        PhotoSize(type=code, width=w, height=h, photo=f)
        for code, (w, h, f) in zip("smxyw", specs)
    ])


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def events():
    return EventSystem()


@pytest.fixture()
def config():
    return MockConfigManager()
