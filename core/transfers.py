import logging
from typing import Callable, Optional, Set, Union

from network import protocol
from network.protocol import File, Location, PRIORITY_MAX, PRIORITY_MIN
from core import file_state
from core.callbacks import CallbackMultiplexer, FileCallback, FunctionCallback
from core.file_registry import FileRegistry

logger = logging.getLogger(__name__)

Callback = Union[Callable[[File], None], FileCallback]


def _as_file_callback(callback: Callback, still_relevant: Callable[[File], bool]) -> FileCallback:
    if hasattr(callback, "on_update"):
        return callback
    return FunctionCallback(callback, still_relevant)


def _invoke(callback: Callback, file: File) -> None:
    if hasattr(callback, "on_update"):
        callback.on_update(file)
    else:
        callback(file)


class TransferOrchestrator:
    """Issues download/upload/cancel/delete requests and attaches callbacks.

    Per-file transfer state is derived from the File flags plus a local
    "requested" mark. The mark is set when a download request is sent and
    cleared only once the download is over: completed, no longer possible,
    or stopped after an update showed it active. Updates the backend produced
    before it picked up the request leave the mark alone, so at most one
    download request per file id is outstanding at any time.
    """

    def __init__(self, backend, registry: FileRegistry, multiplexer: CallbackMultiplexer):
        self.backend = backend
        self.registry = registry
        self.multiplexer = multiplexer
        self._lock = registry.lock
        self._requested: Set[int] = set()
        self._active: Set[int] = set()

    def is_requested(self, file_id: int) -> bool:
        with self._lock:
            return file_id in self._requested

    def download_pending(self, file: File) -> bool:
        """True while *file* is downloading or a request for it is outstanding."""
        with self._lock:
            return file_state.is_downloading(file) or file.id in self._requested

    def download(self, file: File, priority: int = PRIORITY_MIN, callback: Optional[Callback] = None) -> bool:
        """Make sure *file* is (being) downloaded and call *callback* on its updates.

        Returns True if a DownloadFile request was sent by this call.
        """
        if not (PRIORITY_MIN <= priority <= PRIORITY_MAX):
            raise ValueError(f"priority must be {PRIORITY_MIN}-{PRIORITY_MAX}, got {priority}")

        with self._lock:
            file = self.registry.resolve(file)
            if file_state.is_downloaded(file):
                if callback is not None:
                    _invoke(callback, file)
                return False

            if file_state.is_downloading(file) or file.id in self._requested:
                if callback is not None:
                    self.multiplexer.register(file.id, _as_file_callback(callback, self.download_pending))
                return False

            if not file_state.can_download(file):
                logger.debug(f"File {file.id} cannot be downloaded right now")
                return False

            self.backend.send(protocol.DownloadFileRequest(file_id=file.id, priority=priority))
            self._requested.add(file.id)
            if callback is not None:
                self.multiplexer.register(file.id, _as_file_callback(callback, self.download_pending))
        logger.debug(f"Requested download of file {file.id} at priority {priority}")
        return True

    def cancel(self, file_id: int, only_if_pending: bool = False) -> None:
        """Ask the backend to stop downloading. The outcome arrives as a later update."""
        with self._lock:
            self._requested.discard(file_id)
            self._active.discard(file_id)
        self.backend.send(protocol.CancelDownloadFileRequest(file_id=file_id, only_if_pending=only_if_pending))
        logger.debug(f"Cancel requested for file {file_id} (only_if_pending={only_if_pending})")

    def delete(self, file_id: int) -> None:
        """Ask the backend to evict the local copy. The registry record stays."""
        self.backend.send(protocol.DeleteFileRequest(file_id=file_id))
        logger.debug(f"Delete requested for file {file_id}")

    def upload(self, path: str, file_type: str, priority: int = PRIORITY_MIN,
               callback: Optional[Callback] = None) -> File:
        """Start uploading *path*; returns the backend's initial snapshot."""
        request = protocol.UploadFileRequest(path=path, file_type=file_type, priority=priority)
        response = self.backend.call(request, protocol.FileResponse)
        if response.file is None:
            raise ValueError(f"Backend returned no file for upload of {path}")
        with self._lock:
            # An update dispatched while the reply was in flight is newer than the reply.
            file = self.registry.lookup(response.file.id) or self.registry.ensure(response.file)
            if callback is not None:
                if file_state.is_uploaded(file):
                    _invoke(callback, file)
                else:
                    self.multiplexer.register(file.id, _as_file_callback(callback, file_state.is_uploading))
        logger.info(f"Upload of {path} started as file {file.id}")
        return file

    def cancel_upload(self, file_id: int) -> None:
        self.backend.send(protocol.CancelUploadFileRequest(file_id=file_id))
        logger.debug(f"Upload cancel requested for file {file_id}")

    def get_map_thumbnail(self, location: Location, zoom: int = 13, width: int = 300, height: int = 200,
                          scale: int = 1, chat_id: int = 0) -> File:
        """Fetch the File for a static map image centred on *location*."""
        request = protocol.GetMapThumbnailFileRequest(
            location=location, zoom=zoom, width=width, height=height, scale=scale, chat_id=chat_id,
        )
        response = self.backend.call(request, protocol.FileResponse)
        if response.file is None:
            raise ValueError(f"Backend returned no map thumbnail for {location}")
        return self.registry.ensure(response.file)

    def handle_update(self, file: File) -> File:
        """Apply a backend update: refresh transfer marks, then fan out."""
        with self._lock:
            if file_state.is_downloading(file):
                self._active.add(file.id)
            elif (file.id in self._active or file_state.is_downloaded(file)
                  or not file_state.can_download(file)):
                self._active.discard(file.id)
                self._requested.discard(file.id)
            return self.multiplexer.dispatch(file)
