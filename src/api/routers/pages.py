"""Server-rendered screens."""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from api.dependencies import get_view_session, templates
from services.ambient import AmbientScene, SceneVariant
from services.view_session import Screen, ViewSession

router = APIRouter(tags=["pages"])

TEMPLATES: dict[Screen, str] = {
    Screen.LOADING: "loading.html",
    Screen.SIGN_IN: "sign_in.html",
    Screen.WORKSPACE: "workspace.html",
}


def scene_for(screen: Screen) -> AmbientScene:
    """Fresh ambient scene at the density of the screen's mode."""
    variant = SceneVariant.MAIN if screen is Screen.WORKSPACE else SceneVariant.LOGIN
    return AmbientScene.create(variant)


@router.get("/", response_class=HTMLResponse, name="home")
async def home(
    request: Request,
    view: ViewSession = Depends(get_view_session),
) -> HTMLResponse:
    """Render the loading, sign-in or workspace screen."""
    screen = view.screen
    return templates.TemplateResponse(
        request,
        TEMPLATES[screen],
        {"view": view, "scene": scene_for(screen).to_dict()},
    )


@router.post("/notice/dismiss")
async def dismiss_notice(view: ViewSession = Depends(get_view_session)) -> RedirectResponse:
    """Close the notice banner."""
    view.dismiss_notice()
    return RedirectResponse("/", status_code=303)
