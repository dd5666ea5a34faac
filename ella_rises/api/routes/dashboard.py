from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response

from ella_rises.api.rendering import notice_redirect, render
from ella_rises.core.security import require_authenticated
from ella_rises.services.reporting import load_dashboard
from ella_rises.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("/dashboard")
async def dashboard(
    request: Request,
    principal=Depends(require_authenticated),
    repository=Depends(get_repository),
) -> Response:
    try:
        summary = await load_dashboard(repository)
    except RepositoryError as exc:
        return notice_redirect(request, "/", f"Error loading dashboard: {exc}")
    return render(request, "dashboard.html", {"summary": summary})
