import logging
from typing import Callable, Optional, assert_never

from network.protocol import (
    ChatMessage,
    File,
    MessageDocument,
    MessagePhoto,
    MessageText,
    MessageUnsupported,
    MessageVideo,
    Photo,
    PRIORITY_MAX,
)
from core import file_state
from core.event_system import (
    ChatCreatedEventData,
    EventSystem,
    EventType,
    MessageReceivedEventData,
    UserUpdatedEventData,
)
from core.file_registry import FileRegistry
from core.thumbnails import ThumbnailSelector
from core.transfers import TransferOrchestrator

logger = logging.getLogger(__name__)

AVATAR_PRIORITY = PRIORITY_MAX
PREVIEW_PRIORITY = PRIORITY_MAX
FULL_PHOTO_PRIORITY = 5


class AutoDownloadPolicy:
    """Starts downloads in reaction to chat, user and message events.

    ``chat_filter(chat_id)`` decides whether full-size photos are fetched for a
    chat; inline previews and avatars are always fetched.
    """

    def __init__(self, event_system: EventSystem, registry: FileRegistry, transfers: TransferOrchestrator,
                 selector: ThumbnailSelector, chat_filter: Callable[[int], bool]):
        self.event_system = event_system
        self.registry = registry
        self.transfers = transfers
        self.selector = selector
        self.chat_filter = chat_filter
        self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def install(self) -> None:
        if self._enabled:
            return
        self.event_system.subscribe(EventType.CHAT_CREATED, self._on_chat_created)
        self.event_system.subscribe(EventType.USER_UPDATED, self._on_user_updated)
        self.event_system.subscribe(EventType.MESSAGE_RECEIVED, self._on_message_received)
        self._enabled = True
        logger.info("Auto-download enabled")

    def uninstall(self) -> None:
        if not self._enabled:
            return
        self.event_system.unsubscribe(EventType.CHAT_CREATED, self._on_chat_created)
        self.event_system.unsubscribe(EventType.USER_UPDATED, self._on_user_updated)
        self.event_system.unsubscribe(EventType.MESSAGE_RECEIVED, self._on_message_received)
        self._enabled = False
        logger.info("Auto-download disabled")

    def _download_if_idle(self, file: File, priority: int) -> bool:
        if file_state.can_download(file) and not file_state.is_downloading(file):
            return self.transfers.download(file, priority)
        return False

    def _on_chat_created(self, event: ChatCreatedEventData) -> None:
        chat = event.chat
        if chat.photo is None:
            return
        self._download_if_idle(self.registry.renew(chat.photo, "small"), AVATAR_PRIORITY)

    def _on_user_updated(self, event: UserUpdatedEventData) -> None:
        user = event.user
        if user.profile_photo is None:
            return
        self._download_if_idle(self.registry.renew(user.profile_photo, "small"), AVATAR_PRIORITY)

    def _on_message_received(self, event: MessageReceivedEventData) -> None:
        self.handle_message(event.message)

    def handle_message(self, message: ChatMessage) -> None:
        content = message.content
        match content:
            case MessagePhoto():
                self._download_photo(message.chat_id, content.photo)
            case MessageVideo():
                pass
            case MessageDocument():
                pass
            case MessageText() | MessageUnsupported():
                pass
            case _:
                assert_never(content)

    def _download_photo(self, chat_id: int, photo: Optional[Photo]) -> None:
        assert photo is not None and photo.sizes, "photo message without a low-res variant"
        # Inline preview regardless of chat settings.
        for size in photo.sizes:
            if file_state.can_download(self.registry.renew(size, "photo")):
                self._download_if_idle(size.photo, PREVIEW_PRIORITY)
                break
        if not self.chat_filter(chat_id):
            return
        best = self.selector.highres(photo)
        if best is not None:
            self._download_if_idle(best.photo, FULL_PHOTO_PRIORITY)
