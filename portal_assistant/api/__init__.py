"""API router for v1 endpoints."""

from fastapi import APIRouter

from portal_assistant.api import assistant

router = APIRouter()

# Assistant dispatch (action routing + writer features)
router.include_router(assistant.router, tags=["assistant"])
