"""Audit trail for security and domain events.

Entries are recorded fire-and-forget: ``log_event`` hands an immutable
``AuditEntry`` to the app's ``AuditPipeline`` and returns immediately. The
pipeline writes it on a background worker (or inline when ``AUDIT_ASYNC`` is
off). A failed write is rolled back and reported on the ``audit`` logger; it
never reaches, delays or alters the request that triggered it.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from flask import current_app, has_request_context, request

from models import db
from models.audit_log import AuditLog

logger = logging.getLogger("audit")

# Actions emitted by the security core
LOGIN_SUCCESS = "LOGIN_SUCCESS"
LOGIN_FAILED = "LOGIN_FAILED"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
CREATE_USER = "CREATE_USER"
PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
PASSWORD_RESET_SUCCESS = "PASSWORD_RESET_SUCCESS"
PASSWORD_RESET_FAILED = "PASSWORD_RESET_FAILED"
RATE_LIMITED = "RATE_LIMITED"

_STOP = object()


@dataclass(frozen=True)
class AuditEntry:
    action: str
    user_id: Optional[int] = None
    description: Optional[str] = None
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)


def client_ip() -> Optional[str]:
    # behind TRUSTED_PROXY_COUNT proxies, ProxyFix has already rewritten remote_addr
    if not has_request_context():
        return None
    return request.remote_addr


def _request_fields() -> Tuple[Optional[str], Optional[str]]:
    if not has_request_context():
        return None, None
    user_agent = request.headers.get("User-Agent")
    return client_ip(), (user_agent[:255] if user_agent else None)


def write_entry(entry: AuditEntry) -> None:
    """Persist one entry. Must run inside an app context."""
    row = AuditLog(
        user_id=entry.user_id,
        action=entry.action,
        description=entry.description,
        ip=entry.ip,
        user_agent=entry.user_agent,
        timestamp=entry.timestamp,
    )
    try:
        db.session.add(row)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


class InlineDispatcher:
    """Writes each entry on the calling thread, still isolating failures."""

    def __init__(self, app, writer: Callable[[AuditEntry], None]):
        self.app = app
        self.writer = writer

    def submit(self, entry: AuditEntry) -> None:
        _safe_write(self.app, self.writer, entry)

    def drain(self, timeout: Optional[float] = None) -> bool:
        return True

    def stop(self) -> None:
        pass


class ThreadedDispatcher:
    """Bounded queue drained by a single daemon worker thread."""

    def __init__(self, app, writer: Callable[[AuditEntry], None], maxsize: int = 1000):
        self.app = app
        self.writer = writer
        self._queue: "queue.Queue" = queue.Queue(maxsize=maxsize)
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self._dropped_lock = threading.Lock()
        self.dropped = 0

    def _ensure_started(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        with self._start_lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run,
                    daemon=True,
                    name="audit-writer",
                )
                self._thread.start()

    def submit(self, entry: AuditEntry) -> None:
        self._ensure_started()
        try:
            self._queue.put_nowait(entry)
        except queue.Full:
            with self._dropped_lock:
                self.dropped += 1
            logger.warning("Audit queue full, dropping %s entry", entry.action)

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is _STOP:
                    return
                _safe_write(self.app, self.writer, entry)
            finally:
                self._queue.task_done()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued entry has been handled, or the timeout passes."""
        done = self._queue.all_tasks_done
        with done:
            return done.wait_for(lambda: not self._queue.unfinished_tasks, timeout)

    def stop(self) -> None:
        if self._thread is None or not self._thread.is_alive():
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=5)
        self._thread = None


def _safe_write(app, writer, entry: AuditEntry) -> None:
    try:
        with app.app_context():
            writer(entry)
    except Exception:
        logger.exception(
            "Failed to write audit entry action=%s user=%s",
            entry.action,
            entry.user_id,
        )


class AuditPipeline:
    def __init__(self, app=None, writer: Callable[[AuditEntry], None] = write_entry):
        self.writer = writer
        self.dispatcher = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        if app.config.get("AUDIT_ASYNC", True):
            self.dispatcher = ThreadedDispatcher(
                app,
                self.writer,
                maxsize=app.config.get("AUDIT_QUEUE_SIZE", 1000),
            )
        else:
            self.dispatcher = InlineDispatcher(app, self.writer)
        app.extensions["audit"] = self

    def record(self, entry: AuditEntry) -> None:
        try:
            self.dispatcher.submit(entry)
        except Exception:
            logger.exception("Failed to dispatch audit entry action=%s", entry.action)

    def drain(self, timeout: Optional[float] = None) -> bool:
        return self.dispatcher.drain(timeout)

    def stop(self) -> None:
        self.dispatcher.stop()


def log_event(action: str, user_id=None, description=None) -> None:
    """Record an audit event for the current request. Never raises."""
    try:
        ip, user_agent = _request_fields()
        entry = AuditEntry(
            action=action,
            user_id=user_id,
            description=description,
            ip=ip,
            user_agent=user_agent,
        )
        current_app.extensions["audit"].record(entry)
    except Exception:
        logger.exception("Failed to record audit event %s", action)


def list_events(user_id=None, action=None, page: int = 1, limit: Optional[int] = None) -> Tuple[List[AuditLog], int, int, int]:
    """Returns (rows, total, page, limit), newest first."""
    default_limit = current_app.config.get("AUDIT_LOG_DEFAULT_LIMIT", 50)
    max_limit = current_app.config.get("AUDIT_LOG_MAX_LIMIT", 200)

    page = max(1, page or 1)
    limit = max(1, min(limit or default_limit, max_limit))

    q = AuditLog.query
    if user_id is not None:
        q = q.filter(AuditLog.user_id == user_id)
    if action:
        q = q.filter(AuditLog.action == action)

    total = q.count()
    rows = (
        q.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return rows, total, page, limit
