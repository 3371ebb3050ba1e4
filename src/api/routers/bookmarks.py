"""Bookmark endpoints: add/remove intents, snapshot and live updates."""
import asyncio
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, StreamingResponse

from api.dependencies import get_view_session, templates
from schemas.bookmark import BookmarkListResponse
from services.view_session import ViewSession

router = APIRouter(prefix="/bookmarks", tags=["bookmarks"])

KEEPALIVE_SECONDS = 15.0


def build_snapshot(view: ViewSession) -> BookmarkListResponse:
    bookmarks = view.bookmarks
    return BookmarkListResponse(
        state=view.controller.state.value,
        items=list(bookmarks),
        total=len(bookmarks),
    )


def home() -> RedirectResponse:
    return RedirectResponse("/", status_code=303)


@router.get("/", response_model=BookmarkListResponse)
async def list_bookmarks(view: ViewSession = Depends(get_view_session)) -> BookmarkListResponse:
    """Current snapshot, newest first."""
    return build_snapshot(view)


@router.post("/")
async def add_bookmark(
    url: str = Form(default=""),
    title: str = Form(default=""),
    view: ViewSession = Depends(get_view_session),
) -> RedirectResponse:
    """Add intent from the form. On failure the form keeps its input."""
    await view.submit_add(url, title)
    return home()


@router.post("/form/open")
async def open_form(view: ViewSession = Depends(get_view_session)) -> RedirectResponse:
    view.open_form()
    return home()


@router.post("/form/cancel")
async def cancel_form(view: ViewSession = Depends(get_view_session)) -> RedirectResponse:
    view.cancel_form()
    return home()


@router.post("/refresh")
async def refresh(view: ViewSession = Depends(get_view_session)) -> RedirectResponse:
    """Reload the snapshot by hand."""
    await view.refresh()
    return home()


@router.post("/{bookmark_id}/delete")
async def delete_bookmark(
    bookmark_id: str,
    view: ViewSession = Depends(get_view_session),
) -> RedirectResponse:
    """Remove intent for one row."""
    await view.request_remove(bookmark_id)
    return home()


@router.get("/list", response_class=HTMLResponse)
async def bookmark_list_fragment(
    request: Request,
    view: ViewSession = Depends(get_view_session),
) -> HTMLResponse:
    """The bookmark list alone, swapped into the page on live updates."""
    return templates.TemplateResponse(request, "_bookmark_list.html", {"view": view})


async def snapshot_events(request: Request, view: ViewSession) -> AsyncIterator[str]:
    """
    Server-sent events: one `snapshot` event now and after each change.

    Changes that land while an event is being sent are coalesced into the next
    one.
    """
    changed: asyncio.Queue[None] = asyncio.Queue(maxsize=1)

    async def on_change() -> None:
        if changed.empty():
            changed.put_nowait(None)

    remove_listener = view.controller.add_listener(on_change)
    try:
        yield f"event: snapshot\ndata: {build_snapshot(view).model_dump_json()}\n\n"
        while not await request.is_disconnected():
            view.touch()
            try:
                await asyncio.wait_for(changed.get(), timeout=KEEPALIVE_SECONDS)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield f"event: snapshot\ndata: {build_snapshot(view).model_dump_json()}\n\n"
    finally:
        remove_listener()


@router.get("/events")
async def bookmark_events(
    request: Request,
    view: ViewSession = Depends(get_view_session),
) -> StreamingResponse:
    """Live snapshot stream for the open page."""
    return StreamingResponse(
        snapshot_events(request, view),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )
