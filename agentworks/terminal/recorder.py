from __future__ import annotations

"""Session log recorder.

Each agent run gets a ``RunSession``: an append-only list of log entries that
is mirrored to the session store as it grows, fanned out to live subscribers,
and sealed with a final status when the run ends.

Live tail comes in two shapes:

- ``stream_logs(run_id, callback)`` replays the current buffer synchronously
  and then calls ``callback`` for every new entry until the returned
  unsubscribe function is called.
- ``subscribe(run_id)`` returns an async iterator over the same stream. Each
  subscriber has its own bounded queue; when a slow reader falls behind, its
  oldest queued entry is dropped, so a reader never blocks the writer.

A session opened by another process is picked up from the store on first use
while its stored status is still ``running``.
"""

import asyncio
import secrets
import string
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.concurrency import KeyedLock
from ..core.errors import CardNotFoundError, SessionClosedError, SessionNotFoundError
from ..core.logging_config import get_logger
from ..repos.interfaces import CardStore, SessionStore
from ..schemas.base import utc_now
from ..schemas.cards import AgentRunRecord
from ..schemas.sessions import LogEntry, LogLevel, RunSession, RunType, SessionStatus
from .export import export_session, render_html

logger = get_logger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
_END_OF_STREAM = object()

LogCallback = Callable[[LogEntry], Any]


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits)) or "0"


def generate_run_id() -> str:
    """``run_<base36 epoch millis>_<6 random base36 chars>``."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"run_{_to_base36(int(time.time() * 1000))}_{suffix}"


class LogSubscription:
    """Async iterator over a session's entries; ends when the session is sealed."""

    def __init__(self, run_id: str, max_queue: int, on_close: Callable[["LogSubscription"], None]) -> None:
        self.run_id = run_id
        self.dropped = 0
        self._max_queue = max_queue
        self._queue: asyncio.Queue = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    def _offer(self, entry: LogEntry) -> None:
        if self._closed:
            return
        if self._queue.qsize() >= self._max_queue:
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(entry)

    def _finish(self) -> None:
        if not self._closed:
            self._queue.put_nowait(_END_OF_STREAM)

    def __aiter__(self) -> "LogSubscription":
        return self

    async def __anext__(self) -> LogEntry:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _END_OF_STREAM:
            self.close()
            raise StopAsyncIteration
        return item

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._on_close(self)

    async def __aenter__(self) -> "LogSubscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


@dataclass
class _LiveSession:
    session: RunSession
    subscriptions: List[LogSubscription] = field(default_factory=list)
    callbacks: List[LogCallback] = field(default_factory=list)


class SessionLogRecorder:
    """
    Owns every live ``RunSession`` of this process.

    Args:
        store: Durable session storage.
        cards: Card store used to append a run record to the owning card when a
            session ends. Optional for recorders that only capture logs.
        card_locks: Lock family shared with the card automator so run records and
            card status updates never overwrite each other.
        max_subscriber_queue: Per-subscriber queue bound for ``subscribe``.
    """

    def __init__(
        self,
        store: SessionStore,
        cards: Optional[CardStore] = None,
        *,
        card_locks: Optional[KeyedLock] = None,
        max_subscriber_queue: int = 1000,
    ) -> None:
        self._store = store
        self._cards = cards
        self._card_locks = card_locks or KeyedLock()
        self._max_queue = max_subscriber_queue
        self._live: Dict[str, _LiveSession] = {}
        self._write_locks = KeyedLock()

    async def start_session(
        self,
        project_id: str,
        card_id: Optional[str],
        agent_name: str,
        run_type: Union[RunType, str] = RunType.manual,
    ) -> str:
        session = RunSession(
            id=generate_run_id(),
            project_id=project_id,
            card_id=card_id,
            agent_name=agent_name,
            run_type=RunType(run_type),
        )
        await self._store.create(session)
        self._live[session.id] = _LiveSession(session=session)
        logger.info(f"Terminal Logger: started session {session.id} for {agent_name}")
        return session.id

    async def _live_session(self, run_id: str) -> _LiveSession:
        live = self._live.get(run_id)
        if live is not None:
            return live
        stored = await self._store.load(run_id)
        if stored is None:
            raise SessionNotFoundError(f"Session {run_id} not found")
        if stored.sealed:
            raise SessionClosedError(f"Session {run_id} is closed ({stored.status.value})")
        live = self._live.setdefault(run_id, _LiveSession(session=stored))
        return live

    async def log(
        self,
        run_id: str,
        level: Union[LogLevel, str],
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LogEntry:
        """
        Append one entry to a running session.

        Raises:
            SessionNotFoundError: Unknown run id.
            SessionClosedError: The session has already been sealed.
        """
        async with self._write_locks.hold(run_id):
            live = await self._live_session(run_id)
            if live.session.sealed:
                raise SessionClosedError(f"Session {run_id} is closed ({live.session.status.value})")
            entry = LogEntry(level=LogLevel(level), message=message, metadata=metadata or {})
            await self._store.append(live.session, entry)
            live.session.entries.append(entry)

        logger.debug(f"[{run_id[-8:]}] {entry.level.value}: {message}")
        for subscription in list(live.subscriptions):
            subscription._offer(entry)
        for callback in list(live.callbacks):
            try:
                callback(entry)
            except Exception:
                logger.warning(f"Log stream callback for {run_id} raised; unsubscribing it", exc_info=True)
                if callback in live.callbacks:
                    live.callbacks.remove(callback)
        return entry

    async def end_session(
        self,
        run_id: str,
        status: Union[SessionStatus, str] = SessionStatus.completed,
        summary: Optional[Union[Dict[str, Any], str]] = None,
    ) -> RunSession:
        """
        Seal a session, persist its replay log and record the run on its card.

        Raises:
            ValueError: If ``status`` is not terminal.
            SessionNotFoundError: Unknown run id.
            SessionClosedError: The session was already sealed.
        """
        final = SessionStatus(status)
        if final is SessionStatus.running:
            raise ValueError("A session must end as completed or failed")
        if isinstance(summary, str):
            summary = {"message": summary}

        async with self._write_locks.hold(run_id):
            live = await self._live_session(run_id)
            session = live.session
            if session.sealed:
                raise SessionClosedError(f"Session {run_id} is already closed")
            session.status = final
            session.end_time = utc_now()
            session.summary = summary or {}
            await self._store.seal(session)
            self._live.pop(run_id, None)

        for subscription in live.subscriptions:
            subscription._finish()
        live.callbacks.clear()
        logger.info(f"Terminal Logger: session {run_id} ended ({final.value}, {len(session.entries)} entries)")

        await self._record_run_on_card(session)
        return session

    async def _record_run_on_card(self, session: RunSession) -> None:
        if self._cards is None or session.card_id is None:
            return
        record = AgentRunRecord(
            run_id=session.id,
            agent_name=session.agent_name,
            status=session.status.value,
            start_time=session.start_time,
            end_time=session.end_time,
            duration_ms=session.duration_ms,
            log_count=len(session.entries),
            summary=session.summary,
        )
        async with self._card_locks.hold((session.project_id, session.card_id)):
            try:
                card = await self._cards.get_card(session.project_id, session.card_id)
            except CardNotFoundError:
                logger.warning(f"Session {session.id} refers to missing card {session.card_id}; run not recorded")
                return
            card.agent_runs.append(record)
            card.updated_at = utc_now()
            await self._cards.save_card(session.project_id, card)

    async def get_session(self, run_id: str) -> RunSession:
        live = self._live.get(run_id)
        if live is not None:
            return live.session.model_copy(deep=True)
        stored = await self._store.load(run_id)
        if stored is None:
            raise SessionNotFoundError(f"Session {run_id} not found")
        return stored

    async def get_session_logs(self, run_id: str) -> List[LogEntry]:
        return list((await self.get_session(run_id)).entries)

    async def get_card_sessions(self, project_id: str, card_id: str) -> List[RunSession]:
        """Sessions recorded for a card, newest first."""
        return await self._store.list_for_card(project_id, card_id)

    def is_live(self, run_id: str) -> bool:
        return run_id in self._live

    def stream_logs(self, run_id: str, callback: LogCallback) -> Callable[[], None]:
        """
        Replay the buffered entries into ``callback`` and keep it subscribed.

        Only sessions live in this recorder can be streamed. A callback that
        raises during the replay is logged and left unsubscribed.

        Returns:
            A function that unsubscribes ``callback``; calling it twice is harmless.

        Raises:
            SessionNotFoundError: If the session is not live here.
        """
        live = self._live.get(run_id)
        if live is None:
            raise SessionNotFoundError(f"Session {run_id} is not live in this process")

        def unsubscribe() -> None:
            if callback in live.callbacks:
                live.callbacks.remove(callback)

        for entry in list(live.session.entries):
            try:
                callback(entry)
            except Exception:
                logger.warning(
                    f"Log stream callback for {run_id} raised during replay; not subscribing it", exc_info=True
                )
                return unsubscribe
        live.callbacks.append(callback)
        return unsubscribe

    async def subscribe(self, run_id: str, *, replay: bool = True) -> LogSubscription:
        """
        Async-iterable live tail of a session.

        A sealed (or other-process) session yields its stored entries and ends.
        """
        live = self._live.get(run_id)
        if live is None:
            session = await self.get_session(run_id)
            subscription = LogSubscription(run_id, max(self._max_queue, len(session.entries)), lambda _: None)
            for entry in session.entries if replay else []:
                subscription._offer(entry)
            subscription._finish()
            return subscription

        backlog = live.session.entries if replay else []
        subscription = LogSubscription(run_id, self._max_queue + len(backlog), self._detach(live))
        for entry in list(backlog):
            subscription._offer(entry)
        live.subscriptions.append(subscription)
        return subscription

    @staticmethod
    def _detach(live: _LiveSession) -> Callable[[LogSubscription], None]:
        def _remove(subscription: LogSubscription) -> None:
            if subscription in live.subscriptions:
                live.subscriptions.remove(subscription)

        return _remove

    async def export(self, run_id: str, format: str = "json") -> str:
        """Export a session as ``json`` or ``txt``; raises ``ValueError`` for other formats."""
        return export_session(await self.get_session(run_id), format)

    async def render_html(self, run_id: str, theme: str = "dark") -> str:
        return render_html(await self.get_session(run_id), theme)
