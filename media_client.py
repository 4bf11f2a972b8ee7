import os
import sys
import logging
import signal
import threading

from config.config_manager import ConfigManager
from core.event_system import EventSystem, EventType
from core.session import MediaSession
from network.backend_client import BackendClient, BackendUnavailableError


def setup_logging(log_level, log_dir):
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "chatmedia.log")
    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[
            logging.FileHandler(log_path, mode="a"),
            logging.StreamHandler(sys.stderr)
        ]
    )


def main():
    config_manager = ConfigManager()
    cache_dir = os.path.expanduser(config_manager.get("files.cache.dir", "~/.chatmedia/cache"))
    setup_logging(config_manager.logging_level, cache_dir)
    logging.info(f"Logging level set to: {config_manager.logging_level.upper()}")

    socket_path = os.path.expanduser(config_manager.get("system.socket_path"))
    event_system = EventSystem()
    backend = BackendClient(socket_path, event_system, connect_timeout=config_manager.get("system.connect_timeout", 5.0))
    try:
        backend.connect()
    except BackendUnavailableError as e:
        logging.error(f"{e}")
        sys.exit(1)

    session = MediaSession(backend, config_manager, event_system)
    stopped = threading.Event()

    def shutdown(signum=None, frame=None):
        logging.info("Shutting down media client...")
        stopped.set()

    event_system.subscribe(EventType.CONNECTION_LOST, lambda event: shutdown())
    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    logging.info(f"Media client running against {socket_path}")
    while not stopped.is_set():
        stopped.wait(1.0)

    session.close()
    backend.close()
    logging.info("Media client shutdown complete.")


if __name__ == "__main__":
    main()
