from fastapi import APIRouter

from webanalyzer.features.analysis.routes.analysis import router as analysis_router
from webanalyzer.features.analysis.routes.events import router as analysis_events_router

api_router = APIRouter()

api_router.include_router(analysis_router)
api_router.include_router(analysis_events_router)
