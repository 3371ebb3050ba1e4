"""FastAPI dependencies for injection."""
from pathlib import Path

from fastapi import Request
from fastapi.templating import Jinja2Templates

from core.config import Settings
from services.view_session import ViewSession


templates = Jinja2Templates(directory=Path(__file__).parent / "templates")


def get_settings(request: Request) -> Settings:
    """Settings the application was created with."""
    return request.app.state.settings


def get_view_session(request: Request) -> ViewSession:
    """View session attached by the session cookie middleware."""
    return request.state.view_session


__all__ = [
    "get_settings",
    "get_view_session",
    "templates",
]
