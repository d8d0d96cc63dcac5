"""Single-call writing helpers for the knowledge-base editor.

Each feature is one completion with a fixed system prompt and no actions:
generate / expand / improve / summarize article HTML, and pick an icon for a
title from a caller-supplied list.

Usage:
    from portal_assistant.chains.article_writer import run_writer_feature

    html = await run_writer_feature(client, "improve-article-content", {"content": html})
"""

from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator

from portal_assistant.core.llm import PROVIDER_ANTHROPIC, CompletionClient, UserTurn
from portal_assistant.core.logging import get_logger

logger = get_logger(__name__)


class TitlePayload(BaseModel):
    title: str = Field(min_length=1)


class ExpandPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_content: str = Field(default="", alias="fullContent")
    selected_text: str = Field(min_length=1, alias="selectedText")


class ContentPayload(BaseModel):
    content: str = Field(min_length=1)


class SuggestIconPayload(BaseModel):
    title: str = Field(min_length=1)
    icons: list[str] = Field(min_length=1)

    @field_validator("icons")
    @classmethod
    def _strip_icons(cls, value: list[str]) -> list[str]:
        icons = [i.strip() for i in value if i and i.strip()]
        if not icons:
            raise ValueError("icons must contain at least one name")
        return icons


@dataclass(frozen=True)
class WriterFeature:
    """Prompt and limits for one writer feature."""

    payload_model: type[BaseModel]
    system: str
    build_user: Callable[[Any], str]
    max_tokens: int


WRITER_FEATURES: dict[str, WriterFeature] = {
    "generate-article-from-title": WriterFeature(
        payload_model=TitlePayload,
        system=(
            "You are an expert writer. Generate a well-structured article in HTML format based on "
            "the provided title. Include a heading, an introduction, several paragraphs with "
            "valuable insights, a bulleted or numbered list with actionable steps, and a "
            "conclusion. The response must be ONLY the HTML content of the article body."
        ),
        build_user=lambda p: f"Title: {p.title}",
        max_tokens=1500,
    ),
    "expand-article-text": WriterFeature(
        payload_model=ExpandPayload,
        system=(
            "You are an expert writer. Expand upon the selected text within the context of the "
            "full article. Maintain the original tone and style. The response must be ONLY the "
            "new, expanded HTML content to replace the selection."
        ),
        build_user=lambda p: (
            f"Full Article Content:\n{p.full_content}\n\nSelected Text to Expand:\n{p.selected_text}"
        ),
        max_tokens=1000,
    ),
    "improve-article-content": WriterFeature(
        payload_model=ContentPayload,
        system=(
            "You are an expert editor. Rewrite the following article content to be more "
            "professional, engaging, and clear. Fix any grammatical errors. The response must be "
            "ONLY the improved HTML content of the article body."
        ),
        build_user=lambda p: f"Original Content:\n{p.content}",
        max_tokens=2000,
    ),
    "summarize-article-content": WriterFeature(
        payload_model=ContentPayload,
        system=(
            "You are an expert summarizer. Summarize the following content into a concise "
            "paragraph. The response must be ONLY the summarized HTML content."
        ),
        build_user=lambda p: f"Content to Summarize:\n{p.content}",
        max_tokens=500,
    ),
}

SUGGEST_ICON_FEATURE = "suggest-icon"
SUGGEST_ICON_SYSTEM = (
    "You are an AI assistant that suggests the best icon for a given title from a list. Your "
    "response must be ONLY the name of the icon from the list provided, with no extra text, "
    "explanation, or punctuation."
)
SUGGEST_ICON_MAX_TOKENS = 20


def is_writer_feature(feature: str) -> bool:
    return feature in WRITER_FEATURES or feature == SUGGEST_ICON_FEATURE


def _pick_icon(answer: str, icons: list[str]) -> str:
    """Constrain the model's answer to the list; fall back to the first icon."""
    cleaned = answer.strip().strip("\"'`.").strip()
    by_lower = {icon.lower(): icon for icon in icons}
    if cleaned.lower() in by_lower:
        return by_lower[cleaned.lower()]
    for icon in icons:
        if icon.lower() in cleaned.lower():
            return icon
    logger.info(f"Icon suggestion {cleaned!r} not in list, using {icons[0]!r}")
    return icons[0]


async def suggest_icon(client: CompletionClient, payload: dict[str, Any], user_id: str | None = None) -> str:
    data = SuggestIconPayload.model_validate(payload)
    user_prompt = f'Title: "{data.title}"\n\nIcons: [{", ".join(data.icons)}]'
    answer = await client.complete(
        SUGGEST_ICON_SYSTEM,
        [],
        UserTurn(text=user_prompt),
        temperature=0,
        max_tokens=SUGGEST_ICON_MAX_TOKENS,
        workflow=SUGGEST_ICON_FEATURE,
        user_id=user_id,
    )
    return _pick_icon(answer, data.icons)


async def run_writer_feature(
    client: CompletionClient,
    feature: str,
    payload: dict[str, Any],
    user_id: str | None = None,
) -> str:
    """
    Run one writer feature.

    Raises:
        KeyError: Unknown feature
        pydantic.ValidationError: Payload is missing required fields
        ConfigurationError / QuotaError / UpstreamError: From the completion client
    """
    if feature == SUGGEST_ICON_FEATURE:
        return await suggest_icon(client, payload, user_id)

    writer = WRITER_FEATURES[feature]
    data = writer.payload_model.model_validate(payload)
    settings = client.settings
    model = settings.WRITER_MODEL if client.provider == PROVIDER_ANTHROPIC else settings.OPENAI_WRITER_MODEL

    result = await client.complete(
        writer.system,
        [],
        UserTurn(text=writer.build_user(data)),
        temperature=settings.WRITER_TEMPERATURE,
        max_tokens=writer.max_tokens,
        model=model,
        workflow=feature,
        user_id=user_id,
    )
    return result.strip()
