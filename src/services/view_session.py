"""
Presentation state for one browser view session.

A ViewSession pairs a SyncController with what the screen needs on top of it:
which screen to show, the add form, per-row flags and the current notice. The
registry maps the browser's session cookie to its ViewSession.
"""
import logging
import secrets
import time
from collections.abc import Callable
from enum import Enum

from pydantic import ValidationError

from schemas.bookmark import BookmarkCreate, BookmarkRecord
from services.exceptions import AuthError, BookmarkSyncError
from services.record_store import RecordStore
from services.session_provider import SessionProvider
from services.sync_controller import SyncController, SyncState

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = 3600.0
DEFAULT_MAX_SESSIONS = 10_000
# Upper bound on how often the registry scans for idle sessions, in seconds
SWEEP_INTERVAL = 60.0


class Screen(str, Enum):
    """Which of the three screens to render."""

    LOADING = "loading"
    SIGN_IN = "sign_in"
    WORKSPACE = "workspace"


class ViewSession:
    """One browser's view of its bookmarks."""

    def __init__(
        self,
        session_id: str,
        session_provider: SessionProvider,
        controller: SyncController,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id
        self._clock = clock
        self.last_seen = clock()
        self.session_provider = session_provider
        self.controller = controller
        self.form_open = False
        self.form_url = ""
        self.form_title = ""
        self.submitting = False
        self.deleting_ids: set[str] = set()
        self.notice: str | None = None

    @property
    def screen(self) -> Screen:
        state = self.controller.state
        if state is SyncState.UNRESOLVED:
            return Screen.LOADING
        if state is SyncState.ANONYMOUS:
            return Screen.SIGN_IN
        return Screen.WORKSPACE

    @property
    def bookmarks(self) -> tuple[BookmarkRecord, ...]:
        return self.controller.bookmarks

    @property
    def link_count_label(self) -> str:
        count = len(self.controller.bookmarks)
        return f"{count} saved {'link' if count == 1 else 'links'}"

    def is_deleting(self, bookmark_id: str) -> bool:
        return bookmark_id in self.deleting_ids

    def touch(self) -> None:
        """Record activity from the browser."""
        self.last_seen = self._clock()

    def idle_for(self) -> float:
        return self._clock() - self.last_seen

    async def start(self) -> None:
        await self.controller.start()

    def open_form(self) -> None:
        self.form_open = True

    def cancel_form(self) -> None:
        self.form_open = False
        self.form_url = ""
        self.form_title = ""

    async def submit_add(self, url: str, title: str) -> bool:
        """
        Handle the add form.

        Success clears and closes the form. Failure keeps it open with the
        input preserved and sets a notice. Returns whether the bookmark was
        saved.
        """
        if self.submitting:
            # The submit control is disabled while an add is in flight
            return False
        self.form_open = True
        self.form_url = url
        self.form_title = title
        try:
            data = BookmarkCreate(url=url, title=title)
        except ValidationError as e:
            if any(error["type"] == "url_scheme" for error in e.errors()):
                self.notice = "Only http:// and https:// links can be saved."
            else:
                self.notice = "Both a URL and a title are required."
            return False

        self.submitting = True
        try:
            await self.controller.add(data.url, data.title)
        except BookmarkSyncError as e:
            logger.warning("add_failed: %s", e)
            self.notice = str(e)
            return False
        finally:
            self.submitting = False

        self.cancel_form()
        return True

    async def request_remove(self, bookmark_id: str) -> bool:
        """Delete a row, marking it as deleting until the request settles."""
        self.deleting_ids.add(bookmark_id)
        try:
            await self.controller.remove(bookmark_id)
        except BookmarkSyncError as e:
            logger.warning("remove_failed: %s", e)
            self.notice = str(e)
            return False
        finally:
            self.deleting_ids.discard(bookmark_id)
        return True

    async def refresh(self) -> None:
        """Manual refresh; the retry path after a failed read."""
        try:
            await self.controller.refetch()
        except BookmarkSyncError as e:
            self.notice = str(e)

    async def begin_sign_in(self, redirect_to: str) -> str | None:
        """Return the provider URL to send the browser to, or None on failure."""
        try:
            return await self.session_provider.begin_sign_in(redirect_to)
        except AuthError as e:
            logger.warning("sign_in_failed: %s", e)
            self.notice = str(e)
            return None

    async def complete_sign_in(self, code: str, state: str) -> bool:
        try:
            await self.session_provider.complete_sign_in(code, state)
        except AuthError as e:
            logger.warning("sign_in_failed: %s", e)
            self.notice = str(e)
            return False
        return True

    async def sign_out(self) -> None:
        self.cancel_form()
        self.deleting_ids.clear()
        try:
            await self.session_provider.sign_out()
        except AuthError as e:
            logger.warning("sign_out_failed: %s", e)
            self.notice = str(e)

    def dismiss_notice(self) -> None:
        self.notice = None

    async def close(self) -> None:
        await self.controller.close()


class ViewSessionRegistry:
    """
    View sessions keyed by the browser's session cookie.

    Sessions idle for longer than `idle_timeout` seconds are closed on a later
    request, and at most `max_sessions` are kept: creating one more closes the
    least recently seen.
    """

    def __init__(
        self,
        session_provider_factory: Callable[[], SessionProvider],
        record_store: RecordStore,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_provider_factory = session_provider_factory
        self._record_store = record_store
        self._idle_timeout = idle_timeout
        self._max_sessions = max_sessions
        self._clock = clock
        self._sessions: dict[str, ViewSession] = {}
        self._next_sweep = clock() + min(idle_timeout, SWEEP_INTERVAL)

    def get(self, session_id: str | None) -> ViewSession | None:
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    async def get_or_create(self, session_id: str | None) -> ViewSession:
        """Existing session for the cookie, or a freshly started one."""
        await self._sweep_if_due()
        view = self.get(session_id)
        if view is not None:
            view.touch()
            return view

        if len(self._sessions) >= self._max_sessions:
            oldest = min(self._sessions.values(), key=lambda v: v.last_seen)
            logger.info("view_session_evicted", extra={"idle_seconds": oldest.idle_for()})
            await self.discard(oldest.session_id)

        provider = self._session_provider_factory()
        controller = SyncController(provider, self._record_store)
        view = ViewSession(secrets.token_urlsafe(32), provider, controller, clock=self._clock)
        self._sessions[view.session_id] = view
        await view.start()
        logger.debug("Created view session (%d active)", len(self._sessions))
        return view

    async def sweep_idle(self) -> int:
        """Close sessions idle past the timeout. Returns how many were closed."""
        expired = [
            session_id
            for session_id, view in self._sessions.items()
            if view.idle_for() > self._idle_timeout
        ]
        for session_id in expired:
            await self.discard(session_id)
        if expired:
            logger.info(
                "Expired %d idle view sessions (%d active)", len(expired), len(self._sessions),
            )
        return len(expired)

    async def _sweep_if_due(self) -> None:
        now = self._clock()
        if now < self._next_sweep:
            return
        self._next_sweep = now + min(self._idle_timeout, SWEEP_INTERVAL)
        await self.sweep_idle()

    async def discard(self, session_id: str) -> None:
        view = self._sessions.pop(session_id, None)
        if view is not None:
            await view.close()

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.discard(session_id)

    def __len__(self) -> int:
        return len(self._sessions)
