import logging
import threading
from typing import Dict, Optional

from network import protocol
from network.protocol import File

logger = logging.getLogger(__name__)


class FileRegistry:
    """Canonical map from file id to the latest known File snapshot.

    Records are created on first touch (a fetch reply, an update event or an
    embedded stub) and live for the session. Snapshots are values: ``ensure``
    replaces, it never merges.
    """

    def __init__(self, backend):
        self.backend = backend
        # Shared with CallbackMultiplexer; the pair has a single writer at a time.
        self.lock = threading.RLock()
        self._files: Dict[int, File] = {}

    def __contains__(self, file_id: int) -> bool:
        with self.lock:
            return file_id in self._files

    def __len__(self) -> int:
        with self.lock:
            return len(self._files)

    def lookup(self, file_id: int) -> Optional[File]:
        """Canonical record for *file_id*, or None. Never contacts the backend."""
        with self.lock:
            return self._files.get(file_id)

    def get(self, file_id: int) -> File:
        """Canonical record for *file_id*, fetching it from the backend on a miss.

        Blocks until the reply arrives. BackendError propagates to the caller.
        """
        cached = self.lookup(file_id)
        if cached is not None:
            return cached
        logger.debug(f"Registry miss for file {file_id}; fetching from backend")
        response = self.backend.call(protocol.GetFileRequest(file_id=file_id), protocol.FileResponse)
        if response.file is None:
            raise ValueError(f"Backend returned no file for id {file_id}")
        return self.ensure(response.file)

    def ensure(self, file: File) -> File:
        """Install *file* as canonical for its id and return it (last write wins)."""
        with self.lock:
            self._files[file.id] = file
        return file

    def resolve(self, file: File) -> File:
        """Canonical record for *file*'s id, registering *file* if unseen."""
        with self.lock:
            canonical = self._files.get(file.id)
            if canonical is None:
                canonical = self.ensure(file)
            return canonical

    def renew(self, container, field: str) -> File:
        """Swap the File stub held at ``container.field`` for the canonical record."""
        stub = getattr(container, field)
        canonical = self.resolve(stub)
        setattr(container, field, canonical)
        return canonical
