from fastapi import APIRouter, Request, status

from webanalyzer.platform.config import settings
from webanalyzer.platform.response import api_response

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check(request: Request):
    components = getattr(request.app.state, "components", None)
    queued = await components.queue.size() if components else None
    return api_response(
        data={"status": "ok", "service": settings.APP_NAME, "queued_jobs": queued},
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
