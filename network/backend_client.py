"""Single connection to the messaging backend.

Two request shapes share the one socket:

* ``send()`` writes a fire-and-forget request and returns immediately.
* ``call()`` tags the request with a ``request_id`` and blocks until the reply
  carrying the same id arrives. Replies may come back in any order.

Frames without a ``request_id`` are unsolicited notifications. The reader
thread only decodes frames; notifications are queued and published on the
``EventSystem`` by a separate dispatcher thread, so subscribers may issue
blocking calls of their own without stalling reply delivery.
"""
from __future__ import annotations

import json
import logging
import queue
import socket
import threading
import time
import uuid
from typing import Dict, Optional, Type, TypeVar

from core.event_system import (
    ChatCreatedEventData,
    ConnectionLostEventData,
    EventSystem,
    EventType,
    FileUpdatedEventData,
    MessageReceivedEventData,
    UserUpdatedEventData,
)
from . import protocol
from ._framing import encode_frame, read_frame

logger = logging.getLogger(__name__)

_ValidationErrors = (ValueError, TypeError, KeyError, AttributeError)

R = TypeVar("R", bound=protocol.Response)


class BackendError(Exception):
    """The backend answered a request with an error reply."""


class BackendUnavailableError(BackendError):
    """The backend connection is not open or was lost before the reply arrived."""


class _PendingReply:
    __slots__ = ("event", "payload", "error")

    def __init__(self):
        self.event = threading.Event()
        self.payload: Optional[dict] = None
        self.error: Optional[BaseException] = None


class BackendClient:
    """Connection to the backend process over a Unix domain socket."""

    def __init__(self, socket_path: str, event_system: EventSystem, connect_timeout: float = 5.0):
        self.socket_path = socket_path
        self.event_system = event_system
        self.connect_timeout = connect_timeout
        self.sock: Optional[socket.socket] = None
        self.connected = False

        self._send_lock = threading.Lock()
        self._pending_lock = threading.Lock()
        self._pending: Dict[str, _PendingReply] = {}
        self._notifications: "queue.Queue[Optional[dict]]" = queue.Queue()
        self._reader: Optional[threading.Thread] = None
        self._dispatcher: Optional[threading.Thread] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def connect(self) -> None:
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self.connect_timeout)
        try:
            sock.connect(self.socket_path)
        except OSError as e:
            sock.close()
            raise BackendUnavailableError(f"Cannot connect to backend at {self.socket_path}: {e}") from e
        sock.settimeout(None)
        self.attach(sock)

    def attach(self, sock: socket.socket) -> None:
        """Start serving an already-connected socket."""
        self.sock = sock
        self.connected = True
        self._reader = threading.Thread(target=self._read_loop, name="backend-reader", daemon=True)
        self._dispatcher = threading.Thread(target=self._dispatch_loop, name="backend-dispatcher", daemon=True)
        self._reader.start()
        self._dispatcher.start()
        logger.info("Backend client connected.")

    def close(self) -> None:
        sock = self.sock
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()
        if self._reader is not None:
            self._reader.join(timeout=2.0)
        if self._dispatcher is not None:
            self._dispatcher.join(timeout=2.0)
        self.sock = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def send(self, request: protocol.Request) -> None:
        """Fire-and-forget: nothing is registered and no reply is awaited."""
        logger.debug(f"Sending {request.command}")
        self._write(request.model_dump())

    def call(self, request: protocol.Request, response_model: Type[R] = protocol.FileResponse) -> R:
        """Send *request* and block until the matching reply arrives."""
        request.request_id = uuid.uuid4().hex
        pending = _PendingReply()
        with self._pending_lock:
            self._pending[request.request_id] = pending
        try:
            self._write(request.model_dump())
            pending.event.wait()
        finally:
            with self._pending_lock:
                self._pending.pop(request.request_id, None)

        if pending.error is not None:
            raise pending.error
        payload = pending.payload or {}
        if payload.get("status") == "error":
            error = protocol.ErrorResponse.model_validate(payload)
            raise BackendError(f"{request.command} failed: {error.message}")
        try:
            return response_model.model_validate(payload)
        except _ValidationErrors as e:
            raise BackendError(f"Malformed reply to {request.command}: {e}") from e

    def _write(self, payload: dict) -> None:
        if not self.connected or self.sock is None:
            raise BackendUnavailableError("Backend is not connected")
        frame = encode_frame(payload)
        with self._send_lock:
            try:
                self.sock.sendall(frame)
            except OSError as e:
                raise BackendUnavailableError(f"Failed to send to backend: {e}") from e

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def _read_loop(self) -> None:
        reason = "backend closed the connection"
        try:
            while True:
                try:
                    frame = read_frame(self.sock)
                except (json.JSONDecodeError, UnicodeDecodeError) as e:
                    logger.error(f"Failed to decode backend frame: {e}")
                    continue
                if frame is None:
                    break
                if not isinstance(frame, dict):
                    logger.error(f"Unexpected frame type {type(frame)!r}; skipping.")
                    continue
                request_id = frame.get("request_id")
                if request_id:
                    self._resolve(request_id, frame)
                else:
                    self._notifications.put(frame)
        except (ConnectionError, OSError) as e:
            reason = str(e)
        finally:
            self.connected = False
            logger.warning(f"Backend connection lost: {reason}")
            self._fail_pending(BackendUnavailableError(reason))
            self._notifications.put({"type": "connection_lost", "data": {"reason": reason}})
            self._notifications.put(None)

    def _resolve(self, request_id: str, payload: dict) -> None:
        with self._pending_lock:
            pending = self._pending.get(request_id)
        if pending is None:
            logger.warning(f"Reply for unknown request {request_id}; dropping.")
            return
        pending.payload = payload
        pending.event.set()

    def _fail_pending(self, error: BaseException) -> None:
        with self._pending_lock:
            waiting = list(self._pending.values())
        for pending in waiting:
            pending.error = error
            pending.event.set()

    def _dispatch_loop(self) -> None:
        while True:
            frame = self._notifications.get()
            if frame is None:
                return
            self.dispatch(frame.get("type", ""), frame.get("data", {}))

    def dispatch(self, notification_type: str, data: dict) -> None:
        """Validate *data* and publish the matching event."""
        source = self.__class__.__name__
        now = time.time()
        try:
            match notification_type:
                case "file_updated":
                    event = FileUpdatedEventData(
                        EventType.FILE_UPDATED, source, now,
                        file=protocol.FileUpdatedData.model_validate(data).file,
                    )
                case "chat_created":
                    event = ChatCreatedEventData(
                        EventType.CHAT_CREATED, source, now,
                        chat=protocol.ChatCreatedData.model_validate(data).chat,
                    )
                case "user_updated":
                    event = UserUpdatedEventData(
                        EventType.USER_UPDATED, source, now,
                        user=protocol.UserUpdatedData.model_validate(data).user,
                    )
                case "message_received":
                    event = MessageReceivedEventData(
                        EventType.MESSAGE_RECEIVED, source, now,
                        message=protocol.MessageReceivedData.model_validate(data).message,
                    )
                case "connection_lost":
                    event = ConnectionLostEventData(
                        EventType.CONNECTION_LOST, source, now,
                        reason=data.get("reason", ""),
                    )
                case _:
                    logger.debug("BackendClient: unknown notification type %r", notification_type)
                    return
        except _ValidationErrors as e:
            logger.error("BackendClient: failed to validate %r notification: %s", notification_type, e)
            return
        self.event_system.publish(event)
