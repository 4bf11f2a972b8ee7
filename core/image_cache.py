import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, Set, Tuple, Union

from PIL import Image

from network.protocol import File
from core import file_state
from core.event_system import EventSystem, EventType, RepaintEventData
from core.file_registry import FileRegistry
from core.transfers import TransferOrchestrator

logger = logging.getLogger(__name__)

Renderer = Callable[[Any, File], Any]
CacheKey = Tuple[str, Any]


class CachedImage:
    """Handle shared by the cache and every display object showing it.

    ``replace`` swaps the content in place, so holders see refreshed images
    without re-fetching the handle.
    """

    def __init__(self, content: Any, file_id: int):
        self._lock = threading.Lock()
        self._content = content
        self.file_id = file_id
        self.version = 0

    @property
    def content(self) -> Any:
        with self._lock:
            return self._content

    def replace(self, content: Any, file_id: int) -> None:
        with self._lock:
            self._content = content
            self.file_id = file_id
            self.version += 1

    def __repr__(self):
        return f"CachedImage(file_id={self.file_id}, version={self.version})"


def load_image(obj: Any, file: File) -> Optional[Image.Image]:
    """Default renderer: the decoded local file, or None until it is downloaded."""
    if not file_state.is_downloaded(file) or not file.local.path:
        return None
    try:
        with Image.open(file.local.path) as img:
            if img.mode in ('RGBA', 'LA', 'P'):
                return img.convert('RGB')
            return img.copy()
    except (OSError, ValueError) as e:
        logger.error(f"Error decoding {file.local.path} for file {file.id}: {e}")
        return None


def cache_key(obj: Any) -> CacheKey:
    return type(obj).__name__, getattr(obj, "id", id(obj))


class _RefreshCallback:
    """Re-renders one cache entry on each update of a pending download."""

    def __init__(self, cache: "ImageCache", obj: Any, key: CacheKey):
        self.cache = cache
        self.obj = obj
        self.key = key

    def on_update(self, file: File) -> bool:
        still_pending = self.cache.transfers.download_pending(file)
        if not still_pending:
            self.cache._stop_watching(self.key)
        self.cache._refresh(self.obj, self.key, file)
        return still_pending

    def __repr__(self):
        return f"_RefreshCallback({self.key!r})"


class ImageCache:
    """One rendered image per display object, refreshed as its file downloads."""

    def __init__(self, event_system: EventSystem, registry: FileRegistry, transfers: TransferOrchestrator,
                 priority: int = 1, default_renderer: Renderer = load_image):
        self.event_system = event_system
        self.registry = registry
        self.transfers = transfers
        self.priority = priority
        self.default_renderer = default_renderer
        self._renderers: Dict[type, Renderer] = {}
        self._images: Dict[CacheKey, CachedImage] = {}
        self._watching: Set[CacheKey] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)

    def register_renderer(self, obj_type: type, renderer: Renderer) -> None:
        self._renderers[obj_type] = renderer

    def _renderer_for(self, obj: Any) -> Renderer:
        for klass in type(obj).__mro__:
            renderer = self._renderers.get(klass)
            if renderer is not None:
                return renderer
        return self.default_renderer

    def _resolve(self, file_spec: Union[int, File]) -> File:
        if isinstance(file_spec, File):
            return self.registry.resolve(file_spec)
        return self.registry.get(file_spec)

    def get(self, obj: Any) -> Optional[CachedImage]:
        with self._lock:
            return self._images.get(cache_key(obj))

    def invalidate(self, obj: Any) -> None:
        key = cache_key(obj)
        with self._lock:
            self._images.pop(key, None)
            self._watching.discard(key)

    def render(self, obj: Any, file_spec: Union[int, File], force: bool = False) -> CachedImage:
        """Cached image for *obj*, building (or rebuilding, if *force*) it from *file_spec*."""
        key = cache_key(obj)
        with self._lock:
            cached = self._images.get(key)
        if cached is not None and not force:
            return cached

        file = self._resolve(file_spec)
        content = self._renderer_for(obj)(obj, file)
        with self._lock:
            image = self._images.get(key)
            if image is None:
                image = CachedImage(content, file.id)
                self._images[key] = image
            else:
                image.replace(content, file.id)
            watch = not file_state.is_downloaded(file) and key not in self._watching
            if watch:
                self._watching.add(key)

        if watch:
            self.transfers.download(file, self.priority, _RefreshCallback(self, obj, key))
            if not self.transfers.download_pending(file):
                logger.debug(f"File {file.id} for {key!r} is not downloadable; showing placeholder")
                self._stop_watching(key)
        return image

    def _stop_watching(self, key: CacheKey) -> None:
        with self._lock:
            self._watching.discard(key)

    def _refresh(self, obj: Any, key: CacheKey, file: File) -> None:
        with self._lock:
            image = self._images.get(key)
        if image is None:
            return
        image.replace(self._renderer_for(obj)(obj, file), file.id)
        self.event_system.publish(RepaintEventData(
            event_type=EventType.REPAINT,
            source=self.__class__.__name__,
            timestamp=time.time(),
            cache_key=key,
            file_id=file.id,
        ))
