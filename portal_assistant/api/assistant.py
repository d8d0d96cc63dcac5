"""Assistant dispatch endpoint.

POST /assistant/dispatch {"feature": ..., "payload": {...}}

Status mapping:
    401  no valid session
    400  unknown feature or invalid payload
    429  LLM provider quota / rate limit
    503  LLM credential missing or rejected
    500  anything unexpected
Every other failure is a normal 200 whose result explains what went wrong.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from portal_assistant.chains.article_writer import is_writer_feature, run_writer_feature
from portal_assistant.chains.assistant_pipeline import AssistantPipeline
from portal_assistant.core.auth import AuthContext, require_user
from portal_assistant.core.errors import (
    AssistantError,
    ConfigurationError,
    QuotaError,
)
from portal_assistant.core.llm import CompletionClient
from portal_assistant.core.logging import get_logger, log_with_context
from portal_assistant.core.schemas_workspace import (
    AnalyzeProjectsPayload,
    DispatchError,
    DispatchRequest,
    DispatchResponse,
)
from portal_assistant.core.text_extractors import TextExtractor
from portal_assistant.db.chat_history import ConversationStateStore, HistoryStore
from portal_assistant.db.supabase_client import get_user_supabase
from portal_assistant.db.workspace import WorkspaceStore

logger = get_logger(__name__)

router = APIRouter()

ANALYZE_PROJECTS_FEATURE = "analyze-projects"


def _error(status_code: int, message: str, kind: str) -> JSONResponse:
    return JSONResponse(
        content=DispatchError(error=message, kind=kind).model_dump(),
        status_code=status_code,
    )


def build_pipeline(auth: AuthContext) -> AssistantPipeline:
    """Wire the pipeline to a Supabase client that acts as the caller."""
    client = get_user_supabase(auth.token)
    return AssistantPipeline(
        store=WorkspaceStore(client),
        history=HistoryStore(client),
        state=ConversationStateStore(client),
        completion=CompletionClient(),
        extractor=TextExtractor(),
    )


@router.post("/assistant/dispatch")
async def dispatch(
    request: Request,
    auth: AuthContext = Depends(require_user),
) -> JSONResponse:
    """
    Run one assistant feature for the authenticated caller.

    Returns:
        {"result": "..."} on success, {"error": "...", "kind": "..."} otherwise
    """
    try:
        body = DispatchRequest.model_validate(await request.json())
    except (ValidationError, json.JSONDecodeError):
        return _error(400, "Request body must be {\"feature\": ..., \"payload\": {...}}.", "invalid_request")

    feature = body.feature
    log_with_context(logger, logging.INFO, "Assistant dispatch", user_id=auth.user_id, feature=feature)

    try:
        if feature == ANALYZE_PROJECTS_FEATURE:
            payload = AnalyzeProjectsPayload.model_validate(body.payload)
            result = await build_pipeline(auth).run_turn(auth.user_id, payload)
        elif is_writer_feature(feature):
            result = await run_writer_feature(CompletionClient(), feature, body.payload, auth.user_id)
        else:
            return _error(400, f"Unknown or missing feature: {feature}", "invalid_request")

    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        return _error(400, f"Invalid payload for '{feature}': check {fields}.", "invalid_request")
    except ValueError as e:
        return _error(400, str(e), "invalid_request")
    except ConfigurationError as e:
        logger.error(f"Configuration error for feature '{feature}': {e.message}")
        return _error(503, e.message, "configuration")
    except QuotaError as e:
        return _error(429, e.message, "quota")
    except AssistantError as e:
        # Upstream / timeout failures are shown to the user as the result
        logger.warning(f"Feature '{feature}' failed for user {auth.user_id}: {e.message}")
        result = e.message
    except Exception:
        logger.exception(f"Unexpected error in feature '{feature}' for user {auth.user_id}")
        return _error(500, "An unexpected error occurred. Please try again.", "failure")

    return JSONResponse(content=DispatchResponse(result=result).model_dump(), status_code=200)
