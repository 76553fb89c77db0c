"""
Inbox reconciliation engine.

Keeps one user's list of conversation previews consistent across three
inputs: the authoritative bulk load, the live message stream and local
archive/delete overlays awaiting the next load.

Entry lifecycle::

    ACTIVE -> ARCHIVED   manual archive, or automatic once the job is
                         COMPLETED/CANCELLED and the server has no flag
    ARCHIVED -> ACTIVE   unarchive (manual archive only)
    * -> DELETED         terminal, hidden everywhere

The engine runs on a single event loop. Overlapping loads are not
cancelled; each takes a sequence number and only the newest one may write.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable, NoReturn, Optional, Protocol

from chowkar.marketplace.chat.messaging import MessageEvent, MessageEventType
from chowkar.marketplace.errors import InboxActionError, JobNotFoundError, UpstreamError
from chowkar.marketplace.inbox.models import (
    InboxChatSummary,
    InboxEntryState,
    InboxTab,
    LastMessage,
    Notification,
    OverlayState,
)

logger = logging.getLogger(__name__)

RELOAD_DEBOUNCE_SECONDS = 5.0
PREFETCH_LIMIT = 5
PREFETCH_INTERVAL_SECONDS = 0.2


class InboxBackend(Protocol):
    """Remote calls the inbox depends on."""

    async def fetch_inbox_summaries(self, user_id: str) -> list[dict[str, Any]]:
        """Return one summary row per job the user participates in."""
        ...

    async def archive_chat(self, job_id: str) -> None:
        ...

    async def unarchive_chat(self, job_id: str) -> None:
        ...

    async def delete_chat(self, job_id: str) -> None:
        ...

    async def get_job_details(self, job_id: str) -> dict[str, Any]:
        """Full job with bids, used to warm detail views."""
        ...


class InboxEngine:
    """Per-user inbox state.

    Args:
        user_id: The signed-in user
        backend: Remote calls (see :class:`InboxBackend`)
        clock: Monotonic clock in seconds, injectable for tests
        reload_debounce: Minimum seconds between successful bulk loads
        prefetch_limit: How many recent entries get a detail prefetch
        prefetch_interval: Seconds between consecutive prefetch requests
    """

    def __init__(
        self,
        user_id: str,
        backend: InboxBackend,
        *,
        clock: Callable[[], float] = time.monotonic,
        reload_debounce: float = RELOAD_DEBOUNCE_SECONDS,
        prefetch_limit: int = PREFETCH_LIMIT,
        prefetch_interval: float = PREFETCH_INTERVAL_SECONDS,
    ):
        self.user_id = user_id
        self.backend = backend
        self.reload_debounce = reload_debounce
        self.prefetch_limit = prefetch_limit
        self.prefetch_interval = prefetch_interval
        self.overlay = OverlayState()
        self.job_details: dict[str, dict[str, Any]] = {}

        self._clock = clock
        self._chats: list[InboxChatSummary] = []
        self._load_seq = 0
        self._last_loaded_at: Optional[float] = None
        self._retry_pending = False
        self._prefetch_tasks: set[asyncio.Task] = set()
        self._notifications: dict[str, Notification] = {}
        self._feed_observed = False

    # === Reads ===

    @property
    def chats(self) -> list[InboxChatSummary]:
        """Entries in list order (most recently touched first after events)."""
        return list(self._chats)

    def get(self, job_id: str) -> Optional[InboxChatSummary]:
        index = self._index_of(job_id)
        return self._chats[index] if index is not None else None

    def _index_of(self, job_id: str) -> Optional[int]:
        for i, summary in enumerate(self._chats):
            if summary.job_id == job_id:
                return i
        return None

    # === Bulk load ===

    async def load(self, force: bool = False) -> bool:
        """Replace the list with a fresh bulk fetch.

        Returns:
            True if the list was replaced, False if the load was skipped by
            the debounce or superseded by a newer load.

        Raises:
            UpstreamError: If the fetch fails. The previous list is kept and
                the next call bypasses the debounce.
        """
        if not force and not self._retry_pending and self._last_loaded_at is not None:
            elapsed = self._clock() - self._last_loaded_at
            if elapsed < self.reload_debounce:
                logger.debug(f"Inbox reload skipped, last load {elapsed:.1f}s ago")
                return False

        self._load_seq += 1
        seq = self._load_seq
        try:
            rows = await self.backend.fetch_inbox_summaries(self.user_id)
        except Exception as e:
            self._load_failed(seq, e)

        if seq != self._load_seq:
            logger.debug(f"Discarding inbox load #{seq}, newer load #{self._load_seq} started")
            return False

        try:
            chats = [
                row if isinstance(row, InboxChatSummary) else InboxChatSummary.from_row(row)
                for row in rows
            ]
        except (KeyError, TypeError, ValueError) as e:
            self._load_failed(seq, e)

        self._chats = chats
        # Server flags are authoritative again.
        self.overlay.clear()
        self._last_loaded_at = self._clock()
        self._retry_pending = False
        logger.info(f"Inbox loaded | user={self.user_id} | entries={len(self._chats)}")
        self._schedule_prefetch()
        return True

    def _load_failed(self, seq: int, error: Exception) -> NoReturn:
        # Only the newest load may re-open the debounce for a retry.
        if seq == self._load_seq:
            self._retry_pending = True
        logger.warning(f"Inbox load #{seq} failed, keeping {len(self._chats)} cached entries: {error}")
        raise UpstreamError(f"Inbox load failed: {error}") from error

    def _schedule_prefetch(self) -> None:
        self._cancel_prefetch()
        recent = sorted(self._chats, key=lambda s: s.sort_key, reverse=True)[: self.prefetch_limit]
        for position, summary in enumerate(recent):
            task = asyncio.create_task(
                self._prefetch(summary.job_id, position * self.prefetch_interval)
            )
            self._prefetch_tasks.add(task)
            task.add_done_callback(self._prefetch_tasks.discard)

    async def _prefetch(self, job_id: str, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        try:
            self.job_details[job_id] = await self.backend.get_job_details(job_id)
        except Exception as e:
            # Best effort; detail views fetch on demand.
            logger.debug(f"Prefetch failed for job {job_id}: {e}")

    def _cancel_prefetch(self) -> None:
        for task in list(self._prefetch_tasks):
            task.cancel()
        self._prefetch_tasks.clear()

    async def aclose(self) -> None:
        """Cancel outstanding prefetches."""
        tasks = list(self._prefetch_tasks)
        self._cancel_prefetch()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # === Live events ===

    def apply_event(self, event: MessageEvent) -> bool:
        """Fold a live message event into the list.

        Events for jobs outside the loaded list are ignored until the next
        bulk load picks the conversation up. Returns True if applied.
        """
        index = self._index_of(event.job_id)
        if index is None:
            return False
        summary = self._chats[index]

        if event.type == MessageEventType.INSERT:
            updated = replace(
                summary,
                last_message=LastMessage(
                    text=event.display_text,
                    timestamp=event.timestamp,
                    sender_id=event.sender_id,
                    is_read=False,
                ),
            )
            del self._chats[index]
            self._chats.insert(0, updated)
            return True

        # Only the newest message's metadata is tracked.
        last = summary.last_message
        if last is None or last.timestamp != event.timestamp:
            return False
        self._chats[index] = replace(
            summary,
            last_message=replace(last, text=event.display_text, is_read=event.read),
        )
        return True

    # === Unread counts ===

    def sync_notifications(self, notifications: Iterable[Notification]) -> None:
        """Replace the notification feed snapshot."""
        self._notifications = {n.id: n for n in notifications}
        self._feed_observed = True

    def record_notification(self, notification: Notification) -> None:
        """Add or update a single live notification."""
        self._notifications[notification.id] = notification
        self._feed_observed = True

    def mark_job_read(self, job_id: str) -> None:
        """Mark every notification and the preview for a job as read."""
        for key, n in self._notifications.items():
            if n.job_id == job_id and not n.read:
                self._notifications[key] = replace(n, read=True)
        index = self._index_of(job_id)
        if index is not None:
            summary = self._chats[index]
            last = summary.last_message
            self._chats[index] = replace(
                summary,
                unread_count=0,
                last_message=replace(last, is_read=True) if last else None,
            )

    def unread_count(self, job_id: str) -> int:
        """Badge count for a conversation.

        Derived from the live notification feed once any feed data has been
        seen in this session, otherwise from the bulk-loaded count.
        """
        if self._feed_observed:
            return sum(1 for n in self._notifications.values() if n.job_id == job_id and not n.read)
        summary = self.get(job_id)
        return summary.unread_count if summary else 0

    # === Visibility ===

    def _state_of(self, summary: InboxChatSummary) -> InboxEntryState:
        job_id = summary.job_id
        if summary.is_deleted or job_id in self.overlay.deleted:
            return InboxEntryState.DELETED
        manual = job_id in self.overlay.archived or (
            summary.is_archived is True and job_id not in self.overlay.unarchived
        )
        automatic = summary.job_is_terminal and summary.is_archived is None
        if manual or automatic:
            return InboxEntryState.ARCHIVED
        return InboxEntryState.ACTIVE

    def entry_state(self, job_id: str) -> InboxEntryState:
        """Effective state of one entry.

        Raises:
            JobNotFoundError: If the job is not in the loaded inbox
        """
        summary = self.get(job_id)
        if summary is None:
            raise JobNotFoundError(f"Job {job_id} is not in the inbox")
        return self._state_of(summary)

    def visible_chats(
        self,
        tab: InboxTab = InboxTab.ALL,
        search: str = "",
        show_archived: bool = False,
    ) -> list[InboxChatSummary]:
        """Entries for display, newest first.

        ``show_archived`` switches between the active view and the archived
        view. Deleted entries never appear.
        """
        query = (search or "").strip().lower()
        tab = InboxTab(tab)
        visible = []
        for summary in self._chats:
            state = self._state_of(summary)
            if state == InboxEntryState.DELETED:
                continue
            if (state == InboxEntryState.ARCHIVED) != show_archived:
                continue
            if tab == InboxTab.AS_POSTER and not summary.is_poster(self.user_id):
                continue
            if tab == InboxTab.AS_WORKER and summary.is_poster(self.user_id):
                continue
            if query and query not in summary.counterpart.name.lower() and query not in summary.job_title.lower():
                continue
            visible.append(summary)
        return sorted(visible, key=lambda s: s.sort_key, reverse=True)

    # === Overlay actions ===

    async def archive(self, job_id: str) -> None:
        await self._run_action(self.backend.archive_chat, job_id, "archive")
        self.overlay.archived.add(job_id)
        self.overlay.unarchived.discard(job_id)

    async def unarchive(self, job_id: str) -> None:
        """Undo a manual archive. Automatic archival stays until the server sets a flag."""
        await self._run_action(self.backend.unarchive_chat, job_id, "unarchive")
        self.overlay.archived.discard(job_id)
        self.overlay.unarchived.add(job_id)

    async def delete(self, job_id: str) -> None:
        await self._run_action(self.backend.delete_chat, job_id, "delete")
        self.overlay.deleted.add(job_id)

    async def _run_action(
        self, call: Callable[[str], Awaitable[Any]], job_id: str, verb: str
    ) -> None:
        try:
            await call(job_id)
        except Exception as e:
            logger.error(f"Failed to {verb} chat {job_id}: {e}")
            raise InboxActionError(f"Could not {verb} this chat. Please try again.") from e
        logger.info(f"Chat {verb}d | job={job_id} | user={self.user_id}")
