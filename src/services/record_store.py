"""Record store for bookmark rows."""
import logging
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from models.bookmark import Bookmark
from schemas.bookmark import BookmarkRecord
from services.change_feed import (
    ChangeEvent,
    ChangeFeed,
    ChangeHandler,
    ChangeType,
    Subscription,
)
from services.exceptions import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Bookmark table plus its change notifications, scoped by owner."""

    async def list_for_owner(self, owner_id: str) -> list[BookmarkRecord]:
        """All rows owned by owner_id, newest created_at first."""

    async def insert(self, owner_id: str, url: str, title: str) -> BookmarkRecord:
        """Insert a row; the store assigns id and created_at."""

    async def delete(self, bookmark_id: str, owner_id: str) -> None:
        """Delete a row by id. Deleting a missing row succeeds."""

    async def subscribe(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        """Deliver an event to handler on any change to owner_id's rows."""


class SQLAlchemyRecordStore:
    """
    Record store over an async SQLAlchemy database.

    Every committed write is announced on the change feed, which plays the role
    of the database's realtime channel.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        change_feed: ChangeFeed,
    ) -> None:
        self._session_factory = session_factory
        self._change_feed = change_feed

    async def list_for_owner(self, owner_id: str) -> list[BookmarkRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Bookmark)
                    .where(Bookmark.user_id == owner_id)
                    .order_by(Bookmark.created_at.desc()),
                )
                return [BookmarkRecord.model_validate(row) for row in result.scalars()]
        except SQLAlchemyError as e:
            logger.exception("bookmark_select_failed", extra={"owner_id": owner_id})
            raise StoreReadError("Could not load bookmarks") from e

    async def insert(self, owner_id: str, url: str, title: str) -> BookmarkRecord:
        bookmark = Bookmark(user_id=owner_id, url=url, title=title)
        try:
            async with self._session_factory() as session:
                session.add(bookmark)
                await session.commit()
                record = BookmarkRecord.model_validate(bookmark)
        except SQLAlchemyError as e:
            logger.exception("bookmark_insert_failed", extra={"owner_id": owner_id})
            raise StoreWriteError("Could not save bookmark") from e

        await self._change_feed.publish(
            ChangeEvent(type=ChangeType.INSERT, owner_id=owner_id, record_id=record.id),
        )
        return record

    async def delete(self, bookmark_id: str, owner_id: str) -> None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(Bookmark).where(
                        Bookmark.id == bookmark_id,
                        Bookmark.user_id == owner_id,
                    ),
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.exception(
                "bookmark_delete_failed",
                extra={"owner_id": owner_id, "bookmark_id": bookmark_id},
            )
            raise StoreWriteError("Could not delete bookmark") from e

        if result.rowcount:
            await self._change_feed.publish(
                ChangeEvent(type=ChangeType.DELETE, owner_id=owner_id, record_id=bookmark_id),
            )

    async def subscribe(self, owner_id: str, handler: ChangeHandler) -> Subscription:
        return await self._change_feed.subscribe(owner_id, handler)
