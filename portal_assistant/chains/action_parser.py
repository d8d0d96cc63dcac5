"""Extract an action payload from a completion.

Candidates are tried in order: the first fenced code block, then the
outermost bare {...} object. Anything that fails to parse or validate is
"no action" and the completion is shown to the user as an answer.
"""

import json
import re

from pydantic import BaseModel

from portal_assistant.core.errors import ParseError
from portal_assistant.core.logging import get_logger
from portal_assistant.core.schemas_actions import decode_action

logger = get_logger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL | re.IGNORECASE)


def _candidates(text: str) -> list[str]:
    candidates = []
    fence_match = _FENCE_RE.search(text)
    if fence_match:
        candidates.append(fence_match.group(1).strip())

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        bare = text[start : end + 1]
        if bare not in candidates:
            candidates.append(bare)
    return candidates


def _decode_candidate(candidate: str) -> BaseModel:
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ParseError(f"not valid JSON ({e.msg} at position {e.pos})") from e

    action = decode_action(data)
    if action is None:
        raise ParseError("JSON is not a known action payload")
    return action


def parse_action(completion_text: str) -> BaseModel | None:
    """
    Find and decode an action in model output.

    Args:
        completion_text: Raw completion text

    Returns:
        Decoded action payload, or None when the text is an answer
    """
    if not completion_text:
        return None

    for candidate in _candidates(completion_text.strip()):
        try:
            action = _decode_candidate(candidate)
        except ParseError as e:
            logger.debug(f"Skipping action candidate: {e.message}")
            continue
        logger.debug(f"Parsed action {action.action}")
        return action

    return None
