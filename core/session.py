import logging
from typing import Any, Optional, Tuple, Union

from network.protocol import File, Location, Photo, PhotoSize, PRIORITY_MIN
from core.auto_download import AutoDownloadPolicy
from core.callbacks import CallbackMultiplexer
from core.event_system import EventSystem, EventType, FileUpdatedEventData
from core.file_registry import FileRegistry
from core.image_cache import CachedImage, ImageCache
from core.thumbnails import ThumbnailSelector
from core.transfers import Callback, TransferOrchestrator

logger = logging.getLogger(__name__)


class MediaSession:
    """All media state for one client session, wired around one backend.

    Nothing is global: two sessions never share a registry, callback lists or
    an auto-download switch.
    """

    def __init__(self, backend, config_manager, event_system: Optional[EventSystem] = None):
        self.backend = backend
        self.config_manager = config_manager
        self.event_system = event_system if event_system is not None else EventSystem()

        self.registry = FileRegistry(backend)
        self.multiplexer = CallbackMultiplexer(self.registry)
        self.transfers = TransferOrchestrator(backend, self.registry, self.multiplexer)
        self.selector = ThumbnailSelector(
            self.registry,
            cell_size=config_manager.cell_size,
            max_limits=config_manager.max_display_size,
        )
        self.image_cache = ImageCache(
            self.event_system, self.registry, self.transfers,
            priority=config_manager.get("priorities.render", 16),
        )
        self.auto_download = AutoDownloadPolicy(
            self.event_system, self.registry, self.transfers, self.selector,
            chat_filter=config_manager.auto_download_filter(),
        )

        self.event_system.subscribe(EventType.FILE_UPDATED, self._on_file_updated)
        if config_manager.get("auto_download.enabled", True):
            self.auto_download.install()

    def _on_file_updated(self, event: FileUpdatedEventData) -> None:
        self.handle_file_update(event.file)

    def handle_file_update(self, file: File) -> File:
        return self.transfers.handle_update(file)

    # --- outward API ---

    def render(self, obj: Any, file_spec: Union[int, File], force: bool = False) -> CachedImage:
        return self.image_cache.render(obj, file_spec, force)

    def download(self, file: File, priority: int = PRIORITY_MIN, callback: Optional[Callback] = None) -> bool:
        return self.transfers.download(file, priority, callback)

    def upload(self, path: str, file_type: str, priority: int = PRIORITY_MIN,
               callback: Optional[Callback] = None) -> File:
        return self.transfers.upload(path, file_type, priority, callback)

    def cancel(self, file_id: int, only_if_pending: bool = False) -> None:
        self.transfers.cancel(file_id, only_if_pending)

    def delete(self, file_id: int) -> None:
        self.transfers.delete(file_id)

    def get_map_thumbnail(self, location: Location, **kwargs) -> File:
        return self.transfers.get_map_thumbnail(location, **kwargs)

    def highres(self, photo: Photo) -> Optional[PhotoSize]:
        return self.selector.highres(photo)

    def thumb(self, photo: Photo) -> Optional[PhotoSize]:
        return self.selector.thumb(photo)

    def best(self, photo: Photo, limits: Optional[Tuple[int, int]] = None) -> Optional[PhotoSize]:
        return self.selector.best(photo, limits)

    def close(self) -> None:
        self.auto_download.uninstall()
        self.event_system.unsubscribe(EventType.FILE_UPDATED, self._on_file_updated)
        pending = self.multiplexer.pending()
        if pending:
            logger.info(f"Closing session with {pending} pending file callback(s)")
