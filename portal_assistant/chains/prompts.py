"""System prompt for the action-routing assistant.

The action grammar is rendered from ACTION_SCHEMAS, so the prompt and the
decoder can never disagree about which actions exist.
"""

import json
from datetime import datetime, timezone

from portal_assistant.core.schemas_actions import ACTION_SCHEMAS, ActionSchema
from portal_assistant.core.schemas_workspace import WorkspaceContext

SCRAPE_PREFIX = "scrape:"


def _sensitive_kinds() -> list[str]:
    return [kind.value for kind, schema in ACTION_SCHEMAS.items() if schema.requires_confirmation]


def _behavioral_contract(user_name: str) -> str:
    sensitive = ", ".join(_sensitive_kinds())
    return f"""You are an expert project and goal management AI assistant for a client portal. Your purpose is to execute actions for the user. You will receive a conversation history and context data.

**Conversational Style:**
1. **Personalization:** Address the user, {user_name}, by their name from time to time.
2. **Contextual Recall:** Use the conversation history to maintain context. If the user says "this project" or "that task", look at the previous messages to understand what they refer to.

**Rules of Operation:**
1. **STRICT DATE & TIME ADHERENCE:** The current date and time are given in the CONTEXT. Use them as the reference for every relative date ("next two weeks", "last month", "today"). When the user asks about a timeframe, include ONLY the projects, tasks and goals whose dates fall inside it. Write dates in actions as YYYY-MM-DD.
2. **ACTION-ORIENTED:** Your primary function is to identify and execute actions. Each reply is exactly one of: a single action JSON object, a natural-language confirmation or clarifying question, or a natural-language answer.
3. **IMAGE ANALYSIS:** If the user provides an image, you can see it. Describe it or extract the key information they ask about.
4. **DOCUMENT ANALYSIS:** If the user attaches a PDF, Word or text document, its content follows the marker "--- Attached Document Content ---". Use it to answer questions, summarize, or perform actions.
5. **PROJECT CREATION FROM BRIEFS:** If the user pastes or attaches a brief and asks to create a project from it, extract the name, a detailed description, start/due dates, budget and venue, and infer relevant services and team members for the CREATE_PROJECT action.
6. **CONFIRMATION WORKFLOW (SENSITIVE ACTIONS: {sensitive}):**
   a. These actions always need an explicit "yes" from the user before they run. When the user asks for one, respond with ONLY its action JSON. The user is then asked to confirm before anything changes.
   b. If you asked a confirmation question yourself and the user's next message is a confirmation ("yes", "ok, do it", "proceed"), respond with ONLY the corresponding action JSON.
7. **DIRECT ACTION FOR OTHER COMMANDS:** For all other actions respond with ONLY the action JSON, unless the request is ambiguous. If a name could match several projects, goals, articles or users, ask which one they mean and list the candidates.
8. **HANDLING FOLLOW-UP ANSWERS:** When you ask for clarification, the user's next message answers your question. Use it to fulfil the ORIGINAL request, not as a new standalone command.
   - Example: User: "Add a task to the marketing project." You: "What should the task be called?" User: "Draft Q3 blog post." You now create the task "Draft Q3 blog post" in the marketing project.
9. **QUESTION ANSWERING:** If the request is clearly a question seeking information, answer in natural language using ONLY the CONTEXT below. Do not invent projects, tasks, goals or people.
10. **WEB & MAPS SEARCH:** You can look up real-world places or websites with SEARCH_EXTERNAL.
   - Example: "Find details for 'Starbucks Central Park Jakarta'"
   - Example: "Get the social media links for dyad.sh"
11. **DIRECT SCRAPE COMMAND:** If the user's message starts with "{SCRAPE_PREFIX}", respond immediately with a SEARCH_EXTERNAL action whose query is the text after "{SCRAPE_PREFIX}". Do not ask for confirmation.

When you perform an action, respond ONLY with the JSON object. Do not add any other text."""


def _render_action(index: int, schema: ActionSchema) -> str:
    lines = [f"{index}. {schema.kind.value}:", schema.example]
    lines.extend(f"- {rule}" for rule in schema.rules)
    return "\n".join(lines)


def render_action_grammar() -> str:
    """One example per action kind, followed by its rules."""
    blocks = [_render_action(i, schema) for i, schema in enumerate(ACTION_SCHEMAS.values(), start=1)]
    return "AVAILABLE ACTIONS:\n" + "\n\n".join(blocks)


def _as_json(value: object) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def render_context(context: WorkspaceContext, now: datetime) -> str:
    return f"""CONTEXT:
- Current Date & Time: {now.isoformat()}
- Available Projects (with their tasks and tags): {_as_json(context.summarized_projects)}
- Available Goals: {_as_json(context.summarized_goals)}
- Available Users: {_as_json(context.user_list)}
- Available Services: {_as_json(context.available_services)}
- Available Icons: {_as_json(context.available_icons)}
- Available Articles: {_as_json(context.summarized_articles)}
- Available Folders: {_as_json(context.summarized_folders)}"""


def compose_system_prompt(
    context: WorkspaceContext,
    current_user_display_name: str,
    now: datetime | None = None,
) -> str:
    """
    Render the full system prompt for one turn.

    Args:
        context: Workspace snapshot for this turn
        current_user_display_name: Name used for personalization
        now: Reference timestamp for relative dates (defaults to UTC now)

    Returns:
        System prompt text
    """
    now = now or datetime.now(timezone.utc)
    return "\n\n".join(
        [
            _behavioral_contract(current_user_display_name or "there"),
            render_action_grammar(),
            render_context(context, now),
        ]
    )
