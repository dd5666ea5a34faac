from fastapi import APIRouter, Response

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/tea")
async def tea() -> Response:
    # Empty body, no session or database access.
    return Response(status_code=418)
