"""Action-routing pipeline for one assistant turn.

    utterance (+ attachment)
      -> attachment normalization
      -> context snapshot -> system prompt -> completion
      -> action parse -> entity resolution -> (confirmation gate) -> execution
      -> history

Sensitive actions (task creation and deletes) pass through an explicit,
persisted confirmation state:

    Idle --sensitive action--> AwaitingConfirmation
    AwaitingConfirmation --affirmative--> execute pending action --> Idle
    AwaitingConfirmation --anything else--> Idle, message handled as a new request

A sensitive action skips the stored state only when the previous assistant
turn was itself a confirmation question and the reply is a bare "yes".

Store, history and state calls run on worker threads, so the turn's timeout
also covers execution.

Only ConfigurationError and QuotaError leave this module; every other
failure is turned into a message for the user.
"""

import asyncio
import re
from datetime import datetime, timedelta, timezone

from portal_assistant.chains.action_executor import execute
from portal_assistant.chains.action_parser import parse_action
from portal_assistant.chains.context_builder import build_context
from portal_assistant.chains.entity_resolver import ResolvedAction, resolve
from portal_assistant.chains.prompts import compose_system_prompt
from portal_assistant.core.config import Settings, get_settings
from portal_assistant.core.errors import (
    AssistantTimeoutError,
    ExtractionError,
    ResolutionError,
    UpstreamError,
)
from portal_assistant.core.image_search import ImageSearch
from portal_assistant.core.llm import CompletionClient, UserTurn
from portal_assistant.core.logging import get_logger
from portal_assistant.core.place_search import PlaceSearch
from portal_assistant.core.schemas_actions import (
    confirmation_question,
    decode_action,
    get_action_schema,
)
from portal_assistant.core.schemas_workspace import (
    AnalyzeProjectsPayload,
    ConversationState,
    ConversationTurn,
    Sender,
)
from portal_assistant.core.text_extractors import VOICE_MESSAGE_PREFIX, TextExtractor
from portal_assistant.db.chat_history import ConversationStateStore, HistoryStore
from portal_assistant.db.workspace import WorkspaceStore

logger = get_logger(__name__)

TIMEOUT_MESSAGE = "I couldn't complete that in time. Please try again in a moment."
EMPTY_COMPLETION_MESSAGE = "I'm not sure how to respond to that. Could you rephrase?"
PENDING_MISSING_MESSAGE = "I no longer have the action you confirmed. Could you ask again?"

_AFFIRMATIVE_WORDS = {
    "y", "yes", "yeah", "yep", "yup", "sure", "ok", "okay", "k", "proceed", "confirm",
    "confirmed", "correct", "absolutely", "definitely", "ya", "iya", "oke", "boleh", "lanjut",
    "gas", "setuju",
}
_AFFIRMATIVE_PHRASES = (
    "go ahead", "do it", "please do", "sounds good", "that's right", "of course", "sure thing",
)
_FILLER_WORDS = {"please", "thanks", "thank", "you", "then", "now", "dong", "aja"}
_MAX_AFFIRMATIVE_WORDS = 6

_CONFIRMATION_CUES = re.compile(
    r"\b(should i|shall i|do you want me to|would you like me to|are you sure|"
    r"just to confirm|can you confirm|please confirm)\b",
    re.IGNORECASE,
)


def is_affirmative(text: str) -> bool:
    """True for a short reply made only of "yes"-style words.

    Any other word ("ok, delete X instead") makes the reply a new request.
    """
    tokens = re.findall(r"[a-z']+", (text or "").lower())
    if not tokens or len(tokens) > _MAX_AFFIRMATIVE_WORDS:
        return False
    remaining = f" {' '.join(tokens)} "
    for phrase in _AFFIRMATIVE_PHRASES:
        remaining = remaining.replace(f" {phrase} ", " + ")
    left = remaining.split()
    if "+" not in left and not any(t in _AFFIRMATIVE_WORDS for t in left):
        return False
    return all(t == "+" or t in _AFFIRMATIVE_WORDS or t in _FILLER_WORDS for t in left)


def asks_for_confirmation(text: str) -> bool:
    """True when an assistant reply is a yes/no confirmation question."""
    return "?" in (text or "") and bool(_CONFIRMATION_CUES.search(text))


def _history_text(payload: AnalyzeProjectsPayload) -> str:
    if payload.request:
        return payload.request
    return f"(Attachment: {payload.attachment_type or 'file'})"


class AssistantPipeline:
    """One assistant turn for one authenticated user."""

    def __init__(
        self,
        store: WorkspaceStore,
        history: HistoryStore,
        state: ConversationStateStore,
        completion: CompletionClient,
        extractor: TextExtractor,
        *,
        image_search: ImageSearch | None = None,
        place_search: PlaceSearch | None = None,
        settings: Settings | None = None,
    ):
        self.store = store
        self.history = history
        self.state = state
        self.completion = completion
        self.extractor = extractor
        self.image_search = image_search
        self.place_search = place_search
        self.settings = settings or get_settings()

    async def run_turn(self, user_id: str, payload: AnalyzeProjectsPayload) -> str:
        """
        Handle one utterance and return the reply text.

        Args:
            user_id: Authenticated caller
            payload: Utterance and optional attachment

        Returns:
            Reply text (answer, confirmation question or action outcome)

        Raises:
            ValueError: Neither text nor attachment was provided
            ConfigurationError: LLM credential missing or rejected
            QuotaError: Provider quota exceeded
        """
        if not payload.request.strip() and not payload.attachment_url:
            raise ValueError("An analysis request is required.")

        try:
            prior_turns = await asyncio.to_thread(
                self.history.recent, user_id, self.settings.HISTORY_LIMIT
            )
        except Exception as e:
            logger.warning(f"Failed to load history for user {user_id}, continuing without it: {e}")
            prior_turns = []

        await asyncio.to_thread(
            self.history.append,
            user_id,
            ConversationTurn(sender=Sender.USER, content=_history_text(payload)),
        )

        notice = ""
        try:
            user_turn = await self.extractor.normalize_attachment(
                payload.request, payload.attachment_url, payload.attachment_type
            )
        except ExtractionError as e:
            logger.warning(f"Attachment extraction failed for user {user_id}: {e.message}")
            apology = f"I'm sorry, I had trouble reading the attachment. Error: {e.message}"
            if not payload.request.strip():
                return await self._reply(user_id, apology)
            notice = apology + "\n\n"
            user_turn = UserTurn(text=payload.request)

        if user_turn.transcribed:
            await asyncio.to_thread(
                self.history.rewrite_latest_user_turn,
                user_id,
                f"{VOICE_MESSAGE_PREFIX}{user_turn.text}",
            )

        try:
            result = await self._respond_within_budget(user_id, user_turn, prior_turns)
        except (AssistantTimeoutError, UpstreamError) as e:
            result = e.message

        return await self._reply(user_id, notice + result)

    async def _reply(self, user_id: str, text: str) -> str:
        await asyncio.to_thread(
            self.history.append, user_id, ConversationTurn(sender=Sender.ASSISTANT, content=text)
        )
        return text

    async def _respond_within_budget(
        self, user_id: str, user_turn: UserTurn, prior_turns: list[ConversationTurn]
    ) -> str:
        budget = self.settings.ASSISTANT_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(self._respond(user_id, user_turn, prior_turns), timeout=budget)
        except asyncio.TimeoutError as e:
            logger.error(f"Assistant turn for user {user_id} exceeded {budget}s")
            raise AssistantTimeoutError(TIMEOUT_MESSAGE) from e

    def _is_expired(self, state: ConversationState) -> bool:
        if state.requested_at is None:
            return False
        requested_at = state.requested_at
        if requested_at.tzinfo is None:
            requested_at = requested_at.replace(tzinfo=timezone.utc)
        ttl = timedelta(seconds=self.settings.CONFIRMATION_TTL_SECONDS)
        return datetime.now(timezone.utc) - requested_at > ttl

    async def _respond(
        self, user_id: str, user_turn: UserTurn, prior_turns: list[ConversationTurn]
    ) -> str:
        state = await asyncio.to_thread(self.state.get, user_id)
        if state.is_awaiting:
            await asyncio.to_thread(self.state.clear, user_id)
            if self._is_expired(state):
                logger.info(f"Dropping expired pending action for user {user_id}")
            elif is_affirmative(user_turn.text):
                return await self._run_pending(user_id, state)
            else:
                logger.info(f"User {user_id} did not confirm, treating message as a new request")

        context = await build_context(self.store, user_id)
        system_prompt = compose_system_prompt(context, context.display_name_for(user_id))
        completion_text = await self.completion.complete(
            system_prompt,
            prior_turns,
            user_turn,
            temperature=self.settings.ACTION_TEMPERATURE,
            max_tokens=self.settings.ACTION_MAX_TOKENS,
            user_id=user_id,
        )

        action = parse_action(completion_text)
        if action is None:
            return completion_text.strip() or EMPTY_COMPLETION_MESSAGE

        try:
            resolved = resolve(action, context)
        except ResolutionError as e:
            logger.info(f"Resolution {e.kind} for {e.field}={e.value!r} (user {user_id})")
            return e.message

        schema = get_action_schema(action)
        if schema.requires_confirmation and not self._confirmed_in_conversation(user_turn, prior_turns):
            await asyncio.to_thread(
                self.state.await_confirmation,
                user_id,
                action.model_dump(mode="json", exclude_unset=True),
            )
            return self._confirmation_for(resolved)

        return await self._execute(resolved, user_id)

    def _confirmed_in_conversation(
        self, user_turn: UserTurn, prior_turns: list[ConversationTurn]
    ) -> bool:
        """The model asked a confirmation question last turn and the user just said yes."""
        return (
            bool(prior_turns)
            and prior_turns[-1].sender == Sender.ASSISTANT
            and asks_for_confirmation(prior_turns[-1].content)
            and is_affirmative(user_turn.text)
        )

    def _confirmation_for(self, resolved: ResolvedAction) -> str:
        task = getattr(resolved.action, "task_title", None)
        return confirmation_question(resolved.action, name=resolved.target_name, task=task)

    async def _run_pending(self, user_id: str, state: ConversationState) -> str:
        action = decode_action(state.pending_action)
        if action is None:
            logger.warning(f"Stored pending action for user {user_id} could not be decoded")
            return PENDING_MISSING_MESSAGE

        # Re-resolve against a fresh snapshot; the workspace may have changed
        context = await build_context(self.store, user_id)
        try:
            resolved = resolve(action, context)
        except ResolutionError as e:
            return e.message
        return await self._execute(resolved, user_id)

    async def _execute(self, resolved: ResolvedAction, user_id: str) -> str:
        return await execute(
            resolved,
            self.store,
            user_id,
            image_search=self.image_search,
            place_search=self.place_search,
        )
