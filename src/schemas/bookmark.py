"""Pydantic schemas for bookmarks."""
from datetime import datetime
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic_core import PydanticCustomError


FAVICON_URL = "https://www.google.com/s2/favicons?domain={hostname}&sz=32"
WEB_SCHEMES = ("http", "https")


class BookmarkCreate(BaseModel):
    """
    Schema for the add form.

    Both fields are required and must be non-blank, and the URL must be an
    http(s) link. This is the only place they are validated; stored rows are
    not re-checked, so rendering checks `is_web_link` before linking.
    """

    url: str
    title: str

    @field_validator("url", "title")
    @classmethod
    def not_blank(cls, v: str) -> str:
        """Strip surrounding whitespace and reject empty values."""
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("url")
    @classmethod
    def web_scheme(cls, v: str) -> str:
        """Only http and https links; rejects javascript: and data: URLs."""
        parsed = urlparse(v)
        if parsed.scheme.lower() not in WEB_SCHEMES or not parsed.netloc:
            raise PydanticCustomError("url_scheme", "URL must start with http:// or https://")
        return v


class BookmarkRecord(BaseModel):
    """
    One stored bookmark row.

    Frozen so that two snapshots compare by value.
    """

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    user_id: str
    url: str
    title: str
    created_at: datetime

    @property
    def hostname(self) -> str:
        """Host part of the URL, or an empty string if the URL does not parse."""
        try:
            return urlparse(self.url).hostname or ""
        except ValueError:
            return ""

    @property
    def is_web_link(self) -> bool:
        """True for http(s) URLs, the only ones rendered as links."""
        try:
            return urlparse(self.url).scheme.lower() in WEB_SCHEMES
        except ValueError:
            return False

    @property
    def favicon_url(self) -> str:
        """Favicon service URL for the bookmark's host."""
        return FAVICON_URL.format(hostname=self.hostname)


class BookmarkListResponse(BaseModel):
    """Schema for the JSON snapshot of a view session."""

    state: str
    items: list[BookmarkRecord]
    total: int
