"""Action payload schemas and the action registry.

Every action the assistant can perform is one variant of a closed tagged
union discriminated on the ``action`` field. The registry pairs each variant
with the grammar example and rules the prompt shows the model, and with
whether the action needs an explicit confirmation turn.

Adding an action kind means adding one model here, one registry entry, and
one executor branch.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from portal_assistant.core.logging import get_logger

logger = get_logger(__name__)


class ActionKind(str, Enum):
    """Supported action tags."""

    CREATE_PROJECT = "CREATE_PROJECT"
    UPDATE_PROJECT = "UPDATE_PROJECT"
    DELETE_PROJECT = "DELETE_PROJECT"
    CREATE_TASK = "CREATE_TASK"
    ASSIGN_TASK = "ASSIGN_TASK"
    UNASSIGN_TASK = "UNASSIGN_TASK"
    CREATE_GOAL = "CREATE_GOAL"
    UPDATE_GOAL = "UPDATE_GOAL"
    DELETE_GOAL = "DELETE_GOAL"
    CREATE_ARTICLE = "CREATE_ARTICLE"
    UPDATE_ARTICLE = "UPDATE_ARTICLE"
    DELETE_ARTICLE = "DELETE_ARTICLE"
    CREATE_FOLDER = "CREATE_FOLDER"
    SEARCH_EXTERNAL = "SEARCH_EXTERNAL"


# Older prompts used this tag for the maps/website lookup
LEGACY_SEARCH_TAG = "SEARCH_MAPS_AND_WEBSITE"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class NewTag(_Payload):
    name: str
    color: str | None = None


def _coerce_tags(value: Any) -> Any:
    """Accept bare tag names as well as {name, color} objects."""
    if isinstance(value, list):
        return [{"name": v} if isinstance(v, str) else v for v in value]
    return value


# =============================================================================
# Projects
# =============================================================================


class ProjectDetails(_Payload):
    name: str | None = None
    description: str | None = None
    start_date: str | None = None
    due_date: str | None = None
    venue: str | None = None
    budget: float | None = None
    services: list[str] = Field(default_factory=list)
    members: list[str] = Field(default_factory=list)


class ProjectUpdates(_Payload):
    """Merge-style project updates. Only fields present in the payload apply."""

    name: str | None = None
    description: str | None = None
    category: str | None = None
    status: str | None = None
    payment_status: str | None = None
    payment_due_date: str | None = None
    budget: float | None = None
    start_date: str | None = None
    due_date: str | None = None
    venue: str | None = None
    services: list[str] | None = None
    add_members: list[str] = Field(default_factory=list)
    remove_members: list[str] = Field(default_factory=list)
    add_services: list[str] = Field(default_factory=list)
    remove_services: list[str] = Field(default_factory=list)
    add_tags: list[str] = Field(default_factory=list)
    remove_tags: list[str] = Field(default_factory=list)


class CreateProjectAction(_Payload):
    action: Literal["CREATE_PROJECT"]
    project_details: ProjectDetails


class UpdateProjectAction(_Payload):
    action: Literal["UPDATE_PROJECT"]
    project_name: str
    updates: ProjectUpdates = Field(default_factory=ProjectUpdates)


class DeleteProjectAction(_Payload):
    action: Literal["DELETE_PROJECT"]
    project_name: str


# =============================================================================
# Tasks
# =============================================================================


class CreateTaskAction(_Payload):
    action: Literal["CREATE_TASK"]
    project_name: str
    task_title: str
    assignees: list[str] = Field(default_factory=list)


class AssignTaskAction(_Payload):
    action: Literal["ASSIGN_TASK"]
    project_name: str
    task_title: str
    assignees: list[str] = Field(default_factory=list)


class UnassignTaskAction(_Payload):
    action: Literal["UNASSIGN_TASK"]
    project_name: str
    task_title: str
    assignees: list[str] = Field(default_factory=list)


# =============================================================================
# Goals
# =============================================================================


class GoalDetails(_Payload):
    title: str | None = None
    description: str | None = None
    type: str | None = None
    frequency: str | None = None
    specific_days: list[str] | None = None
    target_quantity: float | None = None
    target_period: str | None = None
    target_value: float | None = None
    unit: str | None = None
    icon: str | None = None
    color: str | None = None
    tags: list[NewTag] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> Any:
        return _coerce_tags(value)


class GoalUpdates(_Payload):
    title: str | None = None
    description: str | None = None
    type: str | None = None
    frequency: str | None = None
    specific_days: list[str] | None = None
    target_quantity: float | None = None
    target_period: str | None = None
    target_value: float | None = None
    unit: str | None = None
    icon: str | None = None
    color: str | None = None
    add_tags: list[str] = Field(default_factory=list)
    remove_tags: list[str] = Field(default_factory=list)


class CreateGoalAction(_Payload):
    action: Literal["CREATE_GOAL"]
    goal_details: GoalDetails


class UpdateGoalAction(_Payload):
    action: Literal["UPDATE_GOAL"]
    goal_title: str
    updates: GoalUpdates = Field(default_factory=GoalUpdates)


class DeleteGoalAction(_Payload):
    action: Literal["DELETE_GOAL"]
    goal_title: str


# =============================================================================
# Knowledge base
# =============================================================================


class ArticleDetails(_Payload):
    title: str | None = None
    content: str = ""
    folder_name: str | None = None
    header_image_search_query: str | None = None


class ArticleUpdates(_Payload):
    title: str | None = None
    content: str | None = None
    folder_name: str | None = None
    header_image_search_query: str | None = None


class FolderDetails(_Payload):
    name: str | None = None
    description: str | None = None
    icon: str | None = None
    color: str | None = None
    category: str | None = None


class CreateArticleAction(_Payload):
    action: Literal["CREATE_ARTICLE"]
    article_details: ArticleDetails


class UpdateArticleAction(_Payload):
    action: Literal["UPDATE_ARTICLE"]
    article_title: str
    updates: ArticleUpdates = Field(default_factory=ArticleUpdates)


class DeleteArticleAction(_Payload):
    action: Literal["DELETE_ARTICLE"]
    article_title: str


class CreateFolderAction(_Payload):
    action: Literal["CREATE_FOLDER"]
    folder_details: FolderDetails


# =============================================================================
# External lookups
# =============================================================================


class SearchExternalAction(_Payload):
    action: Literal["SEARCH_EXTERNAL", "SEARCH_MAPS_AND_WEBSITE"]
    query: str = ""


ActionPayload = Annotated[
    Union[
        CreateProjectAction,
        UpdateProjectAction,
        DeleteProjectAction,
        CreateTaskAction,
        AssignTaskAction,
        UnassignTaskAction,
        CreateGoalAction,
        UpdateGoalAction,
        DeleteGoalAction,
        CreateArticleAction,
        UpdateArticleAction,
        DeleteArticleAction,
        CreateFolderAction,
        SearchExternalAction,
    ],
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter = TypeAdapter(ActionPayload)


def action_kind(action: BaseModel) -> ActionKind:
    """Canonical kind of a decoded payload (folds the legacy search tag)."""
    tag = getattr(action, "action")
    if tag == LEGACY_SEARCH_TAG:
        return ActionKind.SEARCH_EXTERNAL
    return ActionKind(tag)


def decode_action(data: Any) -> BaseModel | None:
    """
    Decode a parsed JSON object into an action payload.

    Unknown ``action`` tags and shapes that fail validation both decode to
    None, which callers treat as "no action".

    Args:
        data: Parsed JSON value from the model output

    Returns:
        One of the action payload models, or None
    """
    if not isinstance(data, dict) or "action" not in data:
        return None

    try:
        return _ACTION_ADAPTER.validate_python(data)
    except ValidationError as e:
        logger.info(
            f"Discarding action payload with tag {data.get('action')!r}: "
            f"{e.error_count()} validation error(s)"
        )
        return None


# =============================================================================
# Registry
# =============================================================================


@dataclass(frozen=True)
class ActionSchema:
    """Prompt grammar and policy for one action kind."""

    kind: ActionKind
    example: str
    rules: list[str] = field(default_factory=list)
    requires_confirmation: bool = False
    confirmation_template: str | None = None


ACTION_SCHEMAS: dict[ActionKind, ActionSchema] = {
    ActionKind.CREATE_PROJECT: ActionSchema(
        kind=ActionKind.CREATE_PROJECT,
        example='{"action": "CREATE_PROJECT", "project_details": {"name": "<project name>", "description": "<desc>", "start_date": "YYYY-MM-DD", "due_date": "YYYY-MM-DD", "venue": "<venue>", "budget": 12345, "services": ["Service 1"], "members": ["User Name"]}}',
        rules=[
            "The current user will be the project owner. 'members' are additional people to add to the project.",
            "If the user does not explicitly list services, you MUST analyze the project name and description to infer a list of relevant services from the 'Available Services' context and include them in the 'services' array. For example, a 'gala dinner' project might need 'Venue', 'Food & Beverage', and 'Entertainment'.",
        ],
    ),
    ActionKind.UPDATE_PROJECT: ActionSchema(
        kind=ActionKind.UPDATE_PROJECT,
        example='{"action": "UPDATE_PROJECT", "project_name": "<project name>", "updates": {"field": "value", "another_field": "value"}}',
        rules=[
            "Valid fields for 'updates' are: name, description, category, status, payment_status, payment_due_date, budget, start_date, due_date, venue, add_members, remove_members, add_services, remove_services, add_tags, remove_tags.",
            "Only include the fields the user wants to change.",
            "For 'add_tags' and 'remove_tags', the value should be an array of tag names. If a tag doesn't exist, it will be created with a default color.",
        ],
    ),
    ActionKind.DELETE_PROJECT: ActionSchema(
        kind=ActionKind.DELETE_PROJECT,
        example='{"action": "DELETE_PROJECT", "project_name": "<name of project to delete>"}',
        requires_confirmation=True,
        confirmation_template=(
            'Just to confirm, you want to permanently delete the project "{name}"? '
            "This cannot be undone. Should I proceed?"
        ),
    ),
    ActionKind.CREATE_TASK: ActionSchema(
        kind=ActionKind.CREATE_TASK,
        example='{"action": "CREATE_TASK", "project_name": "<project name>", "task_title": "<title of the new task>", "assignees": ["<optional user name>"]}',
        requires_confirmation=True,
        confirmation_template=(
            'Sure, I can create the task "{task}" in the "{name}" project. Should I proceed?'
        ),
    ),
    ActionKind.ASSIGN_TASK: ActionSchema(
        kind=ActionKind.ASSIGN_TASK,
        example='{"action": "ASSIGN_TASK", "project_name": "<project name>", "task_title": "<title of the task>", "assignees": ["<user name 1>", "<user name 2>"]}',
    ),
    ActionKind.UNASSIGN_TASK: ActionSchema(
        kind=ActionKind.UNASSIGN_TASK,
        example='{"action": "UNASSIGN_TASK", "project_name": "<project name>", "task_title": "<title of the task>", "assignees": ["<user name 1>"]}',
    ),
    ActionKind.CREATE_GOAL: ActionSchema(
        kind=ActionKind.CREATE_GOAL,
        example='{"action": "CREATE_GOAL", "goal_details": {"title": "<goal title>", "description": "<desc>", "type": "<type>", "frequency": "<freq>", "specific_days": ["Mo", "We"], "target_quantity": 123, "target_period": "Weekly", "target_value": 123, "unit": "USD", "icon": "IconName", "color": "#RRGGBB", "tags": [{"name": "Tag1", "color": "#RRGGBB"}]}}',
        rules=[
            "If a user provides only a title for a new goal, you MUST infer the other details.",
            "Choose an appropriate 'type' ('frequency', 'quantity', or 'value').",
            "Suggest a relevant 'icon' from the 'Available Icons' list and a suitable 'color'.",
            "Create 2-3 relevant 'tags' as an array of objects like [{\"name\": \"Health\", \"color\": \"#FF6B6B\"}]. These will be new tags.",
        ],
    ),
    ActionKind.UPDATE_GOAL: ActionSchema(
        kind=ActionKind.UPDATE_GOAL,
        example='{"action": "UPDATE_GOAL", "goal_title": "<title of the goal to update>", "updates": {"field": "value", "another_field": "value"}}',
        rules=[
            "Valid fields for 'updates' are: title, description, type, frequency, specific_days, target_quantity, target_period, target_value, unit, icon, color, add_tags, remove_tags.",
            "For 'add_tags' and 'remove_tags', the value should be an array of tag names.",
        ],
    ),
    ActionKind.DELETE_GOAL: ActionSchema(
        kind=ActionKind.DELETE_GOAL,
        example='{"action": "DELETE_GOAL", "goal_title": "<title of goal to delete>"}',
        requires_confirmation=True,
        confirmation_template=(
            'Just to confirm, you want to permanently delete the goal "{name}"? '
            "This cannot be undone. Should I proceed?"
        ),
    ),
    ActionKind.CREATE_ARTICLE: ActionSchema(
        kind=ActionKind.CREATE_ARTICLE,
        example='{"action": "CREATE_ARTICLE", "article_details": {"title": "<article title>", "content": "<HTML content>", "folder_name": "<optional folder name>", "header_image_search_query": "<optional image search query>"}}',
        rules=[
            "If folder_name is not provided or does not exist, the article is placed in the user's default folder.",
            "If the user asks for an image, you MUST provide a 'header_image_search_query' with 2 strong, contextual keywords in English.",
        ],
    ),
    ActionKind.UPDATE_ARTICLE: ActionSchema(
        kind=ActionKind.UPDATE_ARTICLE,
        example='{"action": "UPDATE_ARTICLE", "article_title": "<title of article to update>", "updates": {"title": "<new title>", "content": "<new HTML content>", "folder_name": "<new folder name>", "header_image_search_query": "<optional image search query>"}}',
        rules=[
            "'content' replaces the existing content.",
            "Use 'header_image_search_query' to find and set a new header image for the article.",
        ],
    ),
    ActionKind.DELETE_ARTICLE: ActionSchema(
        kind=ActionKind.DELETE_ARTICLE,
        example='{"action": "DELETE_ARTICLE", "article_title": "<title of article to delete>"}',
        requires_confirmation=True,
        confirmation_template=(
            'Just to confirm, you want to permanently delete the article "{name}"? '
            "This cannot be undone. Should I proceed?"
        ),
    ),
    ActionKind.CREATE_FOLDER: ActionSchema(
        kind=ActionKind.CREATE_FOLDER,
        example='{"action": "CREATE_FOLDER", "folder_details": {"name": "<folder name>", "description": "<desc>", "icon": "IconName", "color": "#RRGGBB", "category": "<category>"}}',
        rules=[
            "If the user only provides a name, you MUST infer the other details.",
            "Suggest a relevant 'icon' from the 'Available Icons' list and a suitable 'color'.",
        ],
    ),
    ActionKind.SEARCH_EXTERNAL: ActionSchema(
        kind=ActionKind.SEARCH_EXTERNAL,
        example='{"action": "SEARCH_EXTERNAL", "query": "<search query for a place or a website URL>"}',
        rules=[
            "Use this to look up real-world places (address, rating, hours, phone) or a website's contact and social links.",
        ],
    ),
}


def get_action_schema(action: BaseModel) -> ActionSchema:
    """Registry entry for a decoded payload."""
    return ACTION_SCHEMAS[action_kind(action)]


def confirmation_question(
    action: BaseModel, name: str | None = None, task: str | None = None
) -> str:
    """Natural-language question restating a sensitive action.

    ``name`` and ``task`` override the names as written by the model, so the
    question can show the resolved record names.
    """
    schema = get_action_schema(action)
    template = schema.confirmation_template or "Should I go ahead with {kind}?"
    if name is None:
        name = (
            getattr(action, "project_name", None)
            or getattr(action, "goal_title", None)
            or getattr(action, "article_title", None)
            or ""
        )
    if task is None:
        task = getattr(action, "task_title", "")
    return template.format(name=name, task=task, kind=schema.kind.value)
