"""In-memory session store for uploaded source images.

A session maps an unguessable id to one decoded upload so a client can
re-run the conversion with new parameters without uploading again. Every
successful lookup extends the session's life; a background reaper drops
sessions that have been idle longer than ``idle_timeout``. Nothing is
persisted: a restart discards every session.
"""

from __future__ import annotations

import secrets
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

import numpy as np

from pixgrid.errors import SessionIdError
from pixgrid.scaling import check_image

SESSION_ID_BYTES = 16  # 128 bits


class ReadWriteLock:
    """Many concurrent readers or one writer; waiting writers go first."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass
class Session:
    """One uploaded image awaiting conversions.

    ``image`` is read-only and never replaced. ``last_used_at`` only moves
    forward.
    """

    id: str
    image: np.ndarray
    created_at: float
    last_used_at: float

    def touch(self, now: float) -> None:
        self.last_used_at = max(self.last_used_at, now)

    def idle_for(self, now: float) -> float:
        return now - self.last_used_at


def new_session_id() -> str:
    """Return a fresh 128-bit hex token from the OS CSPRNG."""
    try:
        return secrets.token_hex(SESSION_ID_BYTES)
    except (OSError, NotImplementedError) as exc:
        raise SessionIdError(f"secure randomness unavailable: {exc}") from exc


class SessionStore:
    """Thread-safe id -> image map with idle expiry.

    Args:
        idle_timeout:  Seconds after the last access before a session expires.
        reap_interval: Seconds between background reaper ticks.
        clock:         Monotonic time source; injectable for tests.

    The reaper thread is started by :meth:`start` and stopped by
    :meth:`stop` (or by using the store as a context manager). Tests can
    call :meth:`reap_expired` directly instead of waiting on the timer.
    """

    def __init__(
        self,
        idle_timeout: float = 30 * 60,
        reap_interval: float = 5 * 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if reap_interval <= 0:
            raise ValueError("reap_interval must be positive")
        if idle_timeout <= reap_interval:
            raise ValueError("idle_timeout must exceed reap_interval")
        self.idle_timeout = idle_timeout
        self.reap_interval = reap_interval
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = ReadWriteLock()
        self._stop = threading.Event()
        self._reaper: threading.Thread | None = None

    # -- operations ----------------------------------------------------

    def create(self, image: np.ndarray) -> str:
        """Admit *image* and return its new session id.

        The store keeps its own read-only copy, so later changes to the
        caller's array are not visible to conversions.
        """
        check_image(image)
        owned = image.copy()
        owned.flags.writeable = False

        while True:
            session_id = new_session_id()
            with self._lock.write():
                if session_id in self._sessions:
                    continue
                now = self._clock()
                self._sessions[session_id] = Session(
                    id=session_id, image=owned, created_at=now, last_used_at=now,
                )
                return session_id

    def get(self, session_id: str) -> np.ndarray | None:
        """Return the stored image and mark the session used, or ``None``."""
        with self._lock.read():
            session = self._sessions.get(session_id)
        if session is None:
            return None
        with self._lock.write():
            # reaped between the two lock sections
            if self._sessions.get(session_id) is not session:
                return None
            session.touch(self._clock())
        return session.image

    def session(self, session_id: str) -> Session | None:
        """Snapshot of a session's record without touching it."""
        with self._lock.read():
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return Session(
                id=session.id,
                image=session.image,
                created_at=session.created_at,
                last_used_at=session.last_used_at,
            )

    def reap_expired(self, now: float | None = None) -> int:
        """Drop every session idle longer than ``idle_timeout``.

        Returns:
            Number of sessions removed.
        """
        with self._lock.write():
            if now is None:
                now = self._clock()
            expired = [
                sid for sid, s in self._sessions.items()
                if s.idle_for(now) > self.idle_timeout
            ]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock.read():
            return session_id in self._sessions

    # -- reaper lifecycle ----------------------------------------------

    @property
    def running(self) -> bool:
        return self._reaper is not None and self._reaper.is_alive()

    def start(self) -> None:
        """Start the background reaper (no-op if already running)."""
        if self.running:
            return
        self._stop.clear()
        self._reaper = threading.Thread(
            target=self._reap_loop, name="pixgrid-reaper", daemon=True,
        )
        self._reaper.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop the reaper and wait for it to exit."""
        self._stop.set()
        if self._reaper is not None:
            self._reaper.join(timeout)
            self._reaper = None

    def _reap_loop(self) -> None:
        while not self._stop.wait(self.reap_interval):
            self.reap_expired()

    def __enter__(self) -> SessionStore:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()
