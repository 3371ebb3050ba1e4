"""Sign-in and sign-out endpoints."""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from api.dependencies import get_view_session
from services.view_session import ViewSession

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/sign-in")
async def sign_in(
    request: Request,
    view: ViewSession = Depends(get_view_session),
) -> RedirectResponse:
    """Send the browser to the OAuth provider."""
    redirect_to = str(request.url_for("auth_callback"))
    url = await view.begin_sign_in(redirect_to)
    return RedirectResponse(url or "/", status_code=303)


@router.get("/callback", name="auth_callback")
async def auth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    view: ViewSession = Depends(get_view_session),
) -> RedirectResponse:
    """
    Finish sign-in with the provider's callback parameters.

    Failures are shown as a notice on the sign-in screen.
    """
    if error is not None:
        view.notice = f"Sign in error: {error}"
    elif code is None or state is None:
        view.notice = "Sign in error: missing authorization code"
    else:
        await view.complete_sign_in(code, state)
    return RedirectResponse("/", status_code=303)


@router.post("/sign-out")
async def sign_out(view: ViewSession = Depends(get_view_session)) -> RedirectResponse:
    """Sign out and return to the sign-in screen."""
    await view.sign_out()
    return RedirectResponse("/", status_code=303)
