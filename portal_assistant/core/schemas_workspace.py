"""Pydantic models for the workspace context snapshot and conversation history.

The snapshot is built once per conversational turn and only ever read. Entity
resolution runs exclusively against it, so it is a point-in-time view that can
race with concurrent writes.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from portal_assistant.core.reference_data import ICON_LIST, SERVICE_LIST


# =============================================================================
# Workspace entities
# =============================================================================


class TagRef(BaseModel):
    """A tag that can be attached to projects and goals."""

    id: str
    name: str
    color: str | None = None


class UserRef(BaseModel):
    """A portal user as seen by the assistant."""

    id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str = ""

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return full or self.email


class TaskRef(BaseModel):
    """A task nested under its project. Identity key is the title within that project."""

    id: str
    title: str
    completed: bool = False
    assignee_names: list[str] = Field(default_factory=list)
    assignee_ids: list[str] = Field(default_factory=list)


class ProjectSummary(BaseModel):
    """A project row with the fields the assistant can read or merge-update."""

    id: str
    name: str
    slug: str | None = None
    status: str | None = None
    description: str | None = None
    category: str | None = None
    budget: float | None = None
    start_date: str | None = None
    due_date: str | None = None
    venue: str | None = None
    payment_status: str | None = None
    payment_due_date: str | None = None
    tasks: list[TaskRef] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)
    tags: list[TagRef] = Field(default_factory=list)
    assigned_user_ids: list[str] = Field(default_factory=list)


class GoalSummary(BaseModel):
    """A goal with its tracking configuration."""

    id: str
    title: str
    slug: str | None = None
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
    progress: int = 0
    tags: list[TagRef] = Field(default_factory=list)


class FolderRef(BaseModel):
    """A knowledge-base folder."""

    id: str
    name: str
    slug: str | None = None


class ArticleSummary(BaseModel):
    """A knowledge-base article."""

    id: str
    title: str
    slug: str | None = None
    folder_id: str | None = None
    folder_name: str | None = None
    header_image_url: str | None = None


class WorkspaceContext(BaseModel):
    """Immutable per-request snapshot of the user's workspace."""

    model_config = ConfigDict(frozen=True)

    projects: list[ProjectSummary] = Field(default_factory=list)
    users: list[UserRef] = Field(default_factory=list)
    goals: list[GoalSummary] = Field(default_factory=list)
    tags: list[TagRef] = Field(default_factory=list)
    articles: list[ArticleSummary] = Field(default_factory=list)
    folders: list[FolderRef] = Field(default_factory=list)
    available_services: list[str] = Field(default_factory=lambda: list(SERVICE_LIST))
    available_icons: list[str] = Field(default_factory=lambda: list(ICON_LIST))

    # Prompt-facing summaries (no ids, bounded descriptions)

    @property
    def summarized_projects(self) -> list[dict[str, Any]]:
        summaries = []
        for p in self.projects:
            description = p.description or ""
            if len(description) > 100:
                description = description[:100] + "..."
            summaries.append(
                {
                    "name": p.name,
                    "status": p.status,
                    "description": description,
                    "start_date": p.start_date,
                    "due_date": p.due_date,
                    "services": p.services,
                    "tags": [t.name for t in p.tags],
                    "tasks": [
                        {
                            "title": t.title,
                            "completed": t.completed,
                            "assignedTo": t.assignee_names,
                        }
                        for t in p.tasks
                    ],
                }
            )
        return summaries

    @property
    def summarized_goals(self) -> list[dict[str, Any]]:
        return [
            {
                "title": g.title,
                "type": g.type,
                "progress": g.progress,
                "tags": [t.name for t in g.tags],
            }
            for g in self.goals
        ]

    @property
    def user_list(self) -> list[dict[str, str]]:
        return [{"id": u.id, "name": u.display_name} for u in self.users]

    @property
    def summarized_articles(self) -> list[dict[str, Any]]:
        return [{"title": a.title, "folder": a.folder_name} for a in self.articles]

    @property
    def summarized_folders(self) -> list[str]:
        return [f.name for f in self.folders]

    def display_name_for(self, user_id: str, fallback: str = "there") -> str:
        for u in self.users:
            if u.id == user_id:
                return u.display_name or fallback
        return fallback


# =============================================================================
# Conversation
# =============================================================================


class Sender(str, Enum):
    """Who authored a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class ConversationTurn(BaseModel):
    """One persisted message in the assistant conversation."""

    sender: Sender
    content: str
    created_at: datetime | None = None


class ConversationStatus(str, Enum):
    """Per-user conversation state for the confirmation workflow."""

    IDLE = "idle"
    AWAITING_CONFIRMATION = "awaiting_confirmation"


class ConversationState(BaseModel):
    """Persisted confirmation state. pending_action is the raw action payload."""

    status: ConversationStatus = ConversationStatus.IDLE
    pending_action: dict[str, Any] | None = None
    requested_at: datetime | None = None

    @property
    def is_awaiting(self) -> bool:
        return self.status == ConversationStatus.AWAITING_CONFIRMATION and bool(
            self.pending_action
        )


# =============================================================================
# Dispatch API
# =============================================================================


class DispatchRequest(BaseModel):
    """Request body for POST /assistant/dispatch."""

    feature: str
    payload: dict[str, Any] = Field(default_factory=dict)


class AnalyzeProjectsPayload(BaseModel):
    """Payload for the analyze-projects feature."""

    model_config = ConfigDict(populate_by_name=True)

    request: str = ""
    attachment_url: str | None = Field(default=None, alias="attachmentUrl")
    attachment_type: str | None = Field(default=None, alias="attachmentType")


class DispatchResponse(BaseModel):
    """Successful dispatch response."""

    result: str


class DispatchError(BaseModel):
    """Failed dispatch response."""

    error: str
    kind: Literal["authentication", "configuration", "quota", "invalid_request", "failure"]
