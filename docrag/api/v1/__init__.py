"""V1 API router aggregation."""

from fastapi import APIRouter

from docrag.api.v1.jobs import router as jobs_router
from docrag.api.v1.retrieval import router as retrieval_router
from docrag.api.v1.sessions import router as sessions_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(jobs_router)
v1_router.include_router(retrieval_router)
v1_router.include_router(sessions_router)
