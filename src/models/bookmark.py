"""Bookmark model for storing user bookmarks."""
import uuid

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, TimestampMixin


def new_bookmark_id() -> str:
    """Opaque unique identifier for a new bookmark row."""
    return str(uuid.uuid4())


class Bookmark(Base, TimestampMixin):
    """Bookmark model - stores a URL and title owned by one identity."""

    __tablename__ = "bookmarks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_bookmark_id)
    user_id: Mapped[str] = mapped_column(
        String(255),
        index=True,
        comment="Identity id issued by the session provider (OAuth 'sub')",
    )
    url: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
