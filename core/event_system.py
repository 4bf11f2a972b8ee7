from PySide6.QtCore import QObject
from typing import Any, Dict, List, Callable, Optional, Tuple
from dataclasses import dataclass
from collections import deque
from enum import Enum
import logging
import threading

from network.protocol import Chat, ChatMessage, File, User

logger = logging.getLogger(__name__)


class EventType(Enum):
    # Backend notifications
    FILE_UPDATED = "file_updated"
    CHAT_CREATED = "chat_created"
    USER_UPDATED = "user_updated"
    MESSAGE_RECEIVED = "message_received"
    CONNECTION_LOST = "connection_lost"

    # Display
    REPAINT = "repaint"


@dataclass
class EventData:
    event_type: EventType
    source: str  # Source component name
    timestamp: float


@dataclass
class FileUpdatedEventData(EventData):
    file: File


@dataclass
class ChatCreatedEventData(EventData):
    chat: Chat


@dataclass
class UserUpdatedEventData(EventData):
    user: User


@dataclass
class MessageReceivedEventData(EventData):
    message: ChatMessage


@dataclass
class ConnectionLostEventData(EventData):
    reason: str


@dataclass
class RepaintEventData(EventData):
    cache_key: Tuple[str, Any]
    file_id: int


# High-frequency events that are not appended to history to avoid evicting
# genuinely useful events and to reduce lock hold time.
_EPHEMERAL_EVENT_TYPES: frozenset = frozenset({EventType.FILE_UPDATED, EventType.REPAINT})


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class EventSystem(QObject):
    """Per-session publish/subscribe hub. Callbacks run on the publishing thread."""

    def __init__(self):
        super().__init__()
        self._subscribers: Dict[EventType, List[Callable]] = {}
        self._event_history: deque[EventData] = deque(maxlen=500)
        self._lock = threading.Lock()

    def subscribe(self, event_type: EventType, callback: Callable[[EventData], None]):
        with self._lock:
            if event_type not in self._subscribers:
                self._subscribers[event_type] = []
            self._subscribers[event_type].append(callback)
        logger.debug(f"Subscribed to {event_type.value}: {_callback_name(callback)}")

    def unsubscribe(self, event_type: EventType, callback: Callable[[EventData], None]):
        with self._lock:
            if event_type in self._subscribers:
                try:
                    self._subscribers[event_type].remove(callback)
                    logger.debug(f"Unsubscribed from {event_type.value}: {_callback_name(callback)}")
                except ValueError:
                    logger.warning(f"Callback not found for {event_type.value}")
                if not self._subscribers[event_type]:
                    del self._subscribers[event_type]

    def subscriber_count(self, event_type: Optional[EventType] = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._subscribers.get(event_type, []))
            return sum(len(callbacks) for callbacks in self._subscribers.values())

    def publish(self, event_data: EventData):
        with self._lock:
            event_type = event_data.event_type
            if event_type not in _EPHEMERAL_EVENT_TYPES:
                self._event_history.append(event_data)
            # Snapshot the subscriber list so callbacks can safely call subscribe/unsubscribe.
            callbacks = list(self._subscribers.get(event_type, []))

        for callback in callbacks:
            try:
                callback(event_data)
            except Exception as e:
                # why: isolate handler crashes so one broken subscriber can't block others
                logger.error(f"Error in event callback for {event_type.value}: {e}", exc_info=True)

        logger.debug("Published event: %s from %s", event_type.value, event_data.source)

    def get_event_history(self, event_type: Optional[EventType] = None) -> List[EventData]:
        if event_type:
            return [e for e in self._event_history if e.event_type == event_type]
        return list(self._event_history)

    def clear_history(self):
        self._event_history.clear()
