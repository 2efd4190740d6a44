import logging
import signal
import threading
from typing import Dict, List, Optional

logger = logging.getLogger("filerelay.shutdown")

SIGNAL_REASONS = {
    "SIGINT": "interrupt",
    "SIGTERM": "terminate",
    "SIGHUP": "hangup",
}


def available_signals() -> List[signal.Signals]:
    return [getattr(signal, name) for name in SIGNAL_REASONS if hasattr(signal, name)]


class ShutdownCoordinator:
    """Waits for the first of several shutdown triggers.

    Triggers are OS termination signals (when installed from the main thread)
    and an optional externally supplied :class:`threading.Event`. Whichever
    fires first decides the reason; later triggers are ignored.
    """

    def __init__(
        self,
        stop_signal: Optional[threading.Event] = None,
        install_signal_handlers: bool = True,
        poll_interval: float = 0.5,
    ) -> None:
        self._triggered = threading.Event()
        self._lock = threading.Lock()
        self._reason: Optional[str] = None
        self._poll_interval = poll_interval
        self._previous_handlers: Dict[signal.Signals, object] = {}

        if install_signal_handlers:
            self._install_signal_handlers()
        if stop_signal is not None:
            watcher = threading.Thread(
                target=self._watch_stop_signal,
                args=(stop_signal,),
                name="shutdown-stop-signal",
                daemon=True,
            )
            watcher.start()

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    @property
    def triggered(self) -> bool:
        return self._triggered.is_set()

    def trigger(self, reason: str) -> bool:
        """Record ``reason`` if nothing fired yet. Returns True for the winner."""

        with self._lock:
            if self._reason is not None:
                return False
            self._reason = reason
        logger.debug("shutdown_triggered reason=%s", reason)
        self._triggered.set()
        return True

    def wait(self, timeout: Optional[float] = None) -> Optional[str]:
        # Short waits keep the main thread responsive to signal delivery.
        if timeout is not None:
            self._triggered.wait(timeout)
            return self.reason
        while not self._triggered.wait(self._poll_interval):
            pass
        return self.reason

    def restore(self) -> None:
        """Put back whatever signal handlers were active before installation."""

        for signum, handler in self._previous_handlers.items():
            try:
                signal.signal(signum, handler)
            except (ValueError, OSError) as error:
                logger.warning("signal_restore_failed signal=%s error=%s", signum, error)
        self._previous_handlers.clear()

    def _install_signal_handlers(self) -> None:
        if threading.current_thread() is not threading.main_thread():
            logger.debug("signal_handlers_skipped reason=not_main_thread")
            return
        for signum in available_signals():
            try:
                self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
            except (ValueError, OSError) as error:
                logger.warning("signal_install_failed signal=%s error=%s", signum, error)

    def _handle_signal(self, signum, frame) -> None:
        name = signal.Signals(signum).name
        logger.debug("got %s", name)
        self.trigger(SIGNAL_REASONS.get(name, name.lower()))

    def _watch_stop_signal(self, stop_signal: threading.Event) -> None:
        while not stop_signal.wait(self._poll_interval):
            if self._triggered.is_set():
                return
        self.trigger("signal")
