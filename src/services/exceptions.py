"""Errors raised by the bookmark sync layer."""


class BookmarkSyncError(Exception):
    """Base class for non-fatal sync errors surfaced to the view."""


class AuthError(BookmarkSyncError):
    """Sign-in or sign-out failed, or an operation needs a signed-in identity."""


class StoreWriteError(BookmarkSyncError):
    """An insert or delete against the record store failed."""


class StoreReadError(BookmarkSyncError):
    """Reading the current identity's bookmarks failed."""
