import logging
import sys
import threading
from pathlib import Path
from typing import Optional

from werkzeug.serving import BaseWSGIServer, WSGIRequestHandler, make_server

from .app import create_app
from .config import ConfigurationError, ServerSettings, load_server_settings
from .logs import configure_logging
from .retention import RetentionScheduler
from .shutdown import ShutdownCoordinator
from .storage import EphemeralStore

logger = logging.getLogger("filerelay.server")


class RelayRequestHandler(WSGIRequestHandler):
    # One request per connection so an idle keep-alive socket never holds up a drain.
    protocol_version = "HTTP/1.0"


class RelayServer:
    """Owns the storage directory, retention scheduler and HTTP listener.

    ``start`` brings everything up and begins accepting connections on a
    background thread; ``drain`` stops accepting, lets in-flight requests
    finish and then deletes the storage directory.
    """

    def __init__(
        self,
        settings: ServerSettings,
        store: Optional[EphemeralStore] = None,
        retention: Optional[RetentionScheduler] = None,
    ) -> None:
        self.settings = settings
        self.store = store or EphemeralStore()
        self.retention = retention or RetentionScheduler(settings.retention_seconds)
        self._http: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None
        self._drained = False
        self._drain_lock = threading.Lock()

    @property
    def port(self) -> int:
        if self._http is None:
            raise RuntimeError("Server has not been started")
        return self._http.server_port

    @property
    def storage_path(self) -> Path:
        return self.store.path()

    def start(self) -> int:
        directory = self.store.init()
        logger.debug("storage_directory path=%s", directory)
        self.retention.start()

        app = create_app(self.settings, self.store, self.retention)
        self._http = make_server(
            self.settings.host,
            self.settings.port,
            app,
            threaded=True,
            request_handler=RelayRequestHandler,
        )
        # Join in-flight request threads when the listener closes.
        self._http.daemon_threads = False
        self._http.block_on_close = True

        self._thread = threading.Thread(
            target=self._http.serve_forever,
            name="filerelay-http",
            daemon=True,
        )
        self._thread.start()
        logger.info("Listening on %s:%d", self.settings.host, self.port)
        return self.port

    def serve_until(self, coordinator: ShutdownCoordinator) -> str:
        reason = coordinator.wait()
        logger.info("Shutting down due to %s", reason)
        self.drain()
        return reason or "unknown"

    def drain(self) -> None:
        with self._drain_lock:
            if self._drained:
                return
            self._drained = True

        if self._http is not None:
            # serve_forever closes the listening socket once the loop exits.
            self._http.shutdown()
        if self._thread is not None:
            self._thread.join()

        self.retention.shutdown()
        self.store.shutdown()


def run_server(
    settings: ServerSettings,
    stop_signal: Optional[threading.Event] = None,
    install_signal_handlers: bool = True,
) -> str:
    """Serve until a termination signal or ``stop_signal`` fires, then drain."""

    server = RelayServer(settings)
    coordinator = ShutdownCoordinator(
        stop_signal=stop_signal,
        install_signal_handlers=install_signal_handlers,
    )
    try:
        server.start()
    except BaseException:
        coordinator.restore()
        server.drain()
        raise

    try:
        return server.serve_until(coordinator)
    finally:
        coordinator.restore()


def main() -> int:
    try:
        settings = load_server_settings()
    except ConfigurationError as error:
        configure_logging()
        logger.error("configuration_error %s", error)
        return 1

    configure_logging(settings.log_level, settings.log_file)
    try:
        run_server(settings)
    except OSError as error:
        logger.error("startup_failed error=%s", error)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
