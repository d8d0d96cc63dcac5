"""In-memory stand-ins for the workspace, history, state and LLM layers."""

from datetime import datetime, timezone
from typing import Any

from portal_assistant.core.errors import ExtractionError, MutationError
from portal_assistant.core.llm import UserTurn
from portal_assistant.core.place_search import PlaceDetails
from portal_assistant.core.schemas_workspace import (
    ArticleSummary,
    ConversationState,
    ConversationStatus,
    ConversationTurn,
    FolderRef,
    GoalSummary,
    ProjectSummary,
    TagRef,
    TaskRef,
    UserRef,
)

USER_ID = "user-rina"


def sample_users() -> list[UserRef]:
    return [
        UserRef(id=USER_ID, first_name="Rina", last_name="Wijaya", email="rina@example.com"),
        UserRef(id="user-budi", first_name="Budi", last_name="Santoso", email="budi@example.com"),
        UserRef(id="user-sari", first_name="Sari", last_name="Putri", email="sari@example.com"),
    ]


def sample_tags() -> list[TagRef]:
    return [
        TagRef(id="tag-urgent", name="Urgent", color="#FF0000"),
        TagRef(id="tag-health", name="Health", color="#00AA00"),
    ]


def sample_projects() -> list[ProjectSummary]:
    return [
        ProjectSummary(
            id="proj-gala",
            name="Gala Dinner 2025",
            slug="gala-dinner-2025",
            status="Planning",
            description="Annual gala dinner",
            budget=50000,
            venue="Hotel Mulia",
            services=["Venue"],
            tags=[TagRef(id="tag-urgent", name="Urgent", color="#FF0000")],
            assigned_user_ids=[USER_ID],
            tasks=[
                TaskRef(id="task-menu", title="Finalize menu", assignee_ids=["user-sari"]),
                TaskRef(id="task-invites", title="Send invitations"),
            ],
        ),
        ProjectSummary(id="proj-launch-a", name="Launch Alpha", slug="launch-alpha"),
        ProjectSummary(id="proj-launch-b", name="Launch Beta", slug="launch-beta"),
    ]


def sample_goals() -> list[GoalSummary]:
    return [
        GoalSummary(
            id="goal-run",
            title="Run 5K",
            type="frequency",
            frequency="Daily",
            icon="Activity",
            color="#112233",
            unit="km",
            tags=[TagRef(id="tag-health", name="Health", color="#00AA00")],
        ),
    ]


def sample_folders() -> list[FolderRef]:
    return [
        FolderRef(id="folder-guides", name="Guides", slug="guides"),
        FolderRef(id="folder-notes-1", name="Meeting Notes", slug="meeting-notes"),
        FolderRef(id="folder-notes-2", name="Client Notes", slug="client-notes"),
    ]


def sample_articles() -> list[ArticleSummary]:
    return [
        ArticleSummary(
            id="article-onboarding",
            title="Onboarding Checklist",
            slug="onboarding-checklist",
            folder_id="folder-guides",
            folder_name="Guides",
        ),
    ]


class FakeWorkspaceStore:
    """Mirrors WorkspaceStore's methods over in-memory lists.

    ``fail_on`` maps a method name to the database message it should raise
    as MutationError; ``read_failures`` names read methods that raise.
    """

    def __init__(self):
        self.projects = sample_projects()
        self.users = sample_users()
        self.goals = sample_goals()
        self.tags = sample_tags()
        self.articles = sample_articles()
        self.folders = sample_folders()
        self.fail_on: dict[str, str] = {}
        self.read_failures: set[str] = set()
        self.deleted_ids: set[str] = set()
        self.calls: list[tuple[str, Any]] = []
        self.default_folder_id = "folder-default"

    def _record(self, name: str, payload: Any) -> None:
        if name in self.fail_on:
            raise MutationError(self.fail_on[name])
        self.calls.append((name, payload))

    def _read(self, name: str, value: list[Any]) -> list[Any]:
        if name in self.read_failures:
            raise RuntimeError(f"{name} unavailable")
        return list(value)

    def calls_to(self, name: str) -> list[Any]:
        return [payload for call, payload in self.calls if call == name]

    # Reads

    def get_projects_with_tasks(self) -> list[ProjectSummary]:
        return self._read("get_projects_with_tasks", self.projects)

    def get_users(self) -> list[UserRef]:
        return self._read("get_users", self.users)

    def get_goals(self) -> list[GoalSummary]:
        return self._read("get_goals", self.goals)

    def get_tags(self) -> list[TagRef]:
        return self._read("get_tags", self.tags)

    def get_articles(self) -> list[ArticleSummary]:
        return self._read("get_articles", self.articles)

    def get_folders(self) -> list[FolderRef]:
        return self._read("get_folders", self.folders)

    def exists(self, table: str, row_id: str) -> bool:
        return row_id not in self.deleted_ids

    # Projects

    def insert_project(self, fields: dict[str, Any]) -> dict[str, Any]:
        self._record("insert_project", fields)
        return {"id": "proj-new", "slug": "new-project", **fields}

    def add_project_services(self, project_id: str, service_titles: list[str]) -> None:
        self._record("add_project_services", (project_id, service_titles))

    def add_project_members(self, project_id: str, user_ids: list[str]) -> None:
        self._record("add_project_members", (project_id, user_ids))

    def update_project(self, project_id: str, params: dict[str, Any]) -> None:
        self._record("update_project", (project_id, params))

    def delete_project(self, project_id: str) -> None:
        self._record("delete_project", project_id)
        self.deleted_ids.add(project_id)

    # Tasks

    def create_task(self, project_id: str, title: str, assignee_ids: list[str]) -> dict[str, Any]:
        self._record("create_task", (project_id, title, assignee_ids))
        return {"id": "task-new", "title": title}

    def assign_task(self, task_id: str, user_ids: list[str]) -> None:
        self._record("assign_task", (task_id, user_ids))

    def unassign_task(self, task_id: str, user_ids: list[str]) -> None:
        self._record("unassign_task", (task_id, user_ids))

    # Goals

    def create_goal(self, params: dict[str, Any]) -> dict[str, Any]:
        self._record("create_goal", params)
        return {"id": "goal-new", "slug": "new-goal", "title": params["p_title"]}

    def update_goal(self, goal_id: str, params: dict[str, Any]) -> None:
        self._record("update_goal", (goal_id, params))

    def delete_goal(self, goal_id: str) -> None:
        self._record("delete_goal", goal_id)
        self.deleted_ids.add(goal_id)

    # Knowledge base

    def create_folder(self, fields: dict[str, Any]) -> dict[str, Any]:
        self._record("create_folder", fields)
        return {"id": "folder-new", "slug": "new-folder", **fields}

    def get_default_folder_id(self) -> str:
        self._record("get_default_folder_id", None)
        return self.default_folder_id

    def create_article(self, fields: dict[str, Any]) -> dict[str, Any]:
        self._record("create_article", fields)
        return {"id": "article-new", "slug": "new-article", **fields}

    def update_article(self, article_id: str, fields: dict[str, Any]) -> None:
        self._record("update_article", (article_id, fields))

    def delete_article(self, article_id: str) -> None:
        self._record("delete_article", article_id)
        self.deleted_ids.add(article_id)


class FakeHistoryStore:
    def __init__(self, turns: list[ConversationTurn] | None = None):
        self.turns: list[ConversationTurn] = list(turns or [])
        self.fail_reads = False

    def append(self, user_id: str, turn: ConversationTurn) -> None:
        self.turns.append(turn)

    def recent(self, user_id: str, limit: int) -> list[ConversationTurn]:
        if self.fail_reads:
            raise RuntimeError("history unavailable")
        return list(self.turns[-limit:])

    def rewrite_latest_user_turn(self, user_id: str, content: str) -> None:
        for i in range(len(self.turns) - 1, -1, -1):
            if self.turns[i].sender.value == "user":
                self.turns[i] = self.turns[i].model_copy(update={"content": content})
                return


class FakeStateStore:
    def __init__(self):
        self.states: dict[str, ConversationState] = {}

    def get(self, user_id: str) -> ConversationState:
        return self.states.get(user_id, ConversationState())

    def await_confirmation(self, user_id: str, pending_action: dict[str, Any]) -> None:
        self.states[user_id] = ConversationState(
            status=ConversationStatus.AWAITING_CONFIRMATION,
            pending_action=pending_action,
            requested_at=datetime.now(timezone.utc),
        )

    def clear(self, user_id: str) -> None:
        self.states[user_id] = ConversationState()


class FakeCompletion:
    """Returns scripted completions in order and records every call."""

    def __init__(self, replies: list[str] | None = None, provider: str = "anthropic"):
        self.replies = list(replies or [])
        self.calls: list[dict[str, Any]] = []
        self.provider = provider
        self.error: Exception | None = None

    async def complete(self, system_prompt, history, user_turn, **kwargs) -> str:
        self.calls.append(
            {"system_prompt": system_prompt, "history": list(history), "user_turn": user_turn, **kwargs}
        )
        if self.error is not None:
            raise self.error
        return self.replies.pop(0) if self.replies else ""


class FakeExtractor:
    """Attachment normalizer with a canned result or error."""

    def __init__(self, turn: UserTurn | None = None, error: ExtractionError | None = None):
        self.turn = turn
        self.error = error

    async def normalize_attachment(self, request_text, url, mime) -> UserTurn:
        if self.error is not None and url:
            raise self.error
        if self.turn is not None and url:
            return self.turn
        return UserTurn(text=request_text or "")


class FakeImageSearch:
    def __init__(self, url: str | None = "https://images.unsplash.com/photo-1"):
        self.url = url
        self.queries: list[str] = []

    async def find_one(self, query: str) -> str | None:
        self.queries.append(query)
        return self.url


class FakePlaceSearch:
    def __init__(self, details: PlaceDetails | None = None, error: Exception | None = None):
        self.details = details or PlaceDetails(name="Kopi Kenangan", address="Jl. Sudirman 1")
        self.error = error
        self.queries: list[str] = []

    async def lookup(self, query: str) -> PlaceDetails:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.details
