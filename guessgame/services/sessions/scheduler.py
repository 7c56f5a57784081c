import itertools
import logging
import threading
import time
from typing import Callable, Dict


class BackgroundRoundScheduler:
    """One-shot round timers keyed by session id.

    - Each timer runs as a Socket.IO background task that sleeps until its
      deadline, then invokes the callback
    - At most one live timer per key; scheduling again replaces it
    - ``cancel`` is best effort: a timer whose token is no longer current
      when it wakes up simply returns
    """

    def __init__(self, socketio, logger=None):
        self.socketio = socketio
        self.logger = logger or logging.getLogger(__name__)
        self._tokens: Dict[str, int] = {}
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> int:
        token = next(self._counter)
        deadline = time.time() + delay
        with self._lock:
            self._tokens[key] = token
        self.logger.info(f"[timer-set] session={key} token={token} duration={delay}s deadline={deadline}")
        self.socketio.start_background_task(self._runner, key, token, deadline, callback)
        return token

    def cancel(self, key: str) -> bool:
        with self._lock:
            return self._tokens.pop(key, None) is not None

    def pending(self, key: str) -> bool:
        with self._lock:
            return key in self._tokens

    def _runner(self, key: str, token: int, deadline: float, callback: Callable[[], None]) -> None:
        sleep_for = max(0.0, deadline - time.time())
        if sleep_for:
            self.socketio.sleep(sleep_for)
        with self._lock:
            if self._tokens.get(key) != token:
                self.logger.info(f"[timer-abort] session={key} token={token} cancelled or replaced")
                return
            del self._tokens[key]
        self.logger.info(f"[timer-fire] session={key} token={token}")
        try:
            callback()
        except Exception:
            self.logger.exception(f"[timer-error] session={key} token={token}")
