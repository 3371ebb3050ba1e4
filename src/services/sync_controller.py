"""
Keeps a local, newest-first snapshot of the signed-in identity's bookmarks
consistent with the record store.

Reconciliation is invalidate-and-reload: any change event for the identity's
rows, and every successful write made here, triggers a full refetch that
replaces the snapshot wholesale. Event payloads are never merged into the
snapshot.

Overlapping operations are not ordered; the last refetch to complete wins,
except that results for an identity that is no longer current are dropped.
"""
import logging
from collections.abc import Awaitable, Callable
from enum import Enum

from schemas.bookmark import BookmarkRecord
from schemas.identity import Identity
from services.change_feed import ChangeEvent, Subscription
from services.exceptions import AuthError, StoreReadError
from services.record_store import RecordStore
from services.session_provider import SessionProvider

logger = logging.getLogger(__name__)

SnapshotListener = Callable[[], Awaitable[None]]


class SyncState(str, Enum):
    """Lifecycle of the controller."""

    UNRESOLVED = "unresolved"  # start() has not read the identity yet
    ANONYMOUS = "anonymous"
    SYNCING = "syncing"  # identity set, no successful refetch yet
    SYNCED = "synced"


class SyncController:
    """Bridges a session provider and a record store into one view's state."""

    def __init__(self, session_provider: SessionProvider, record_store: RecordStore) -> None:
        self._session_provider = session_provider
        self._store = record_store
        self._identity: Identity | None = None
        self._bookmarks: tuple[BookmarkRecord, ...] = ()
        self._state = SyncState.UNRESOLVED
        self._subscription: Subscription | None = None
        self._unsubscribe_identity: Callable[[], None] | None = None
        self._listeners: list[SnapshotListener] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._identity

    @property
    def bookmarks(self) -> tuple[BookmarkRecord, ...]:
        return self._bookmarks

    async def start(self) -> None:
        """Resolve the current identity and follow its changes."""
        if self._unsubscribe_identity is None:
            self._unsubscribe_identity = self._session_provider.on_identity_change(
                self.on_identity_change,
            )
        identity = await self._session_provider.get_identity()
        await self.on_identity_change(identity)

    async def on_identity_change(self, identity: Identity | None) -> None:
        """
        Replace the current identity.

        None empties the snapshot at once and drops the change subscription. A
        different identity gets a fresh, empty snapshot, a subscription scoped
        to its rows, and an immediate refetch.
        """
        previous = self._identity
        self._identity = identity

        if identity is None:
            self._bookmarks = ()
            self._state = SyncState.ANONYMOUS
            await self._release_subscription()
            await self._notify()
            return

        if (
            previous is not None
            and previous.id == identity.id
            and self._state is not SyncState.UNRESOLVED
        ):
            return

        await self._release_subscription()
        self._bookmarks = ()
        self._state = SyncState.SYNCING
        subscription = await self._store.subscribe(identity.id, self._handle_change)
        if self._identity is not identity:
            # Superseded while subscribing
            await subscription.unsubscribe()
            return
        self._subscription = subscription
        logger.info("sync_started", extra={"identity_id": identity.id})
        await self._notify()
        await self._refetch_logged()

    async def refetch(self) -> None:
        """
        Reload all of the identity's bookmarks and replace the snapshot.

        On failure the previous snapshot stays and StoreReadError is raised.
        """
        identity = self._identity
        if identity is None:
            return
        try:
            rows = await self._store.list_for_owner(identity.id)
        except StoreReadError:
            logger.warning("refetch_failed", extra={"identity_id": identity.id})
            raise

        current = self._identity
        if current is None or current.id != identity.id:
            logger.debug("Dropping refetch result for previous identity %s", identity.id)
            return
        self._bookmarks = tuple(rows)
        self._state = SyncState.SYNCED
        await self._notify()

    async def add(self, url: str, title: str) -> BookmarkRecord:
        """
        Insert a bookmark owned by the current identity, then refetch.

        Raises StoreWriteError when the insert fails; nothing is retried and the
        snapshot is unchanged.
        """
        if not url or not title:
            raise ValueError("url and title are required")
        identity = self._identity
        if identity is None:
            raise AuthError("Sign in to add bookmarks")

        record = await self._store.insert(identity.id, url, title)
        logger.info(
            "bookmark_added",
            extra={"identity_id": identity.id, "bookmark_id": record.id},
        )
        await self._refetch_logged()
        return record

    async def remove(self, bookmark_id: str) -> None:
        """
        Delete a bookmark shown in the snapshot, then refetch.

        An id that is not in the snapshot is ignored. Raises StoreWriteError
        when the delete fails; the row stays.
        """
        identity = self._identity
        if identity is None:
            raise AuthError("Sign in to delete bookmarks")
        if not any(bookmark.id == bookmark_id for bookmark in self._bookmarks):
            logger.info("remove_ignored_absent", extra={"bookmark_id": bookmark_id})
            return

        await self._store.delete(bookmark_id, identity.id)
        logger.info(
            "bookmark_removed",
            extra={"identity_id": identity.id, "bookmark_id": bookmark_id},
        )
        await self._refetch_logged()

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call listener after every state or snapshot change."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def close(self) -> None:
        """Tear down the identity and change subscriptions."""
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        await self._release_subscription()
        self._listeners.clear()

    async def _handle_change(self, event: ChangeEvent) -> None:
        identity = self._identity
        if identity is None or event.owner_id != identity.id:
            return
        logger.debug("Change %s on %s, refetching", event.type.value, event.record_id)
        await self._refetch_logged()

    async def _refetch_logged(self) -> None:
        """Refetch where a read failure must not fail the caller."""
        try:
            await self.refetch()
        except StoreReadError:
            # Already logged; the next change event or a manual refresh retries.
            return

    async def _release_subscription(self) -> None:
        subscription = self._subscription
        self._subscription = None
        if subscription is not None:
            await subscription.unsubscribe()

    async def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                await listener()
            except Exception:
                logger.exception("snapshot_listener_failed")
