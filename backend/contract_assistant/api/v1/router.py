"""API v1 router."""
from fastapi import APIRouter

from contract_assistant.api.v1 import analyses, queues

api_router: APIRouter = APIRouter()
api_router.include_router(analyses.router, tags=["analyses"])
api_router.include_router(queues.router, tags=["queues"])
