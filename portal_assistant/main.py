"""FastAPI application entry point."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from portal_assistant.api import router as api_router
from portal_assistant.core.errors import AuthenticationError
from portal_assistant.core.logging import setup_logging

setup_logging()

app = FastAPI(
    title="Portal Assistant",
    description="Natural-language action routing for the client portal",
    version="0.1.0",
)


@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    return JSONResponse(content={"error": exc.message, "kind": "authentication"}, status_code=401)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
