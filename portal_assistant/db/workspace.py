"""Workspace data access: projects, tasks, goals, tags and knowledge base.

Reads return typed snapshot models. Writes are atomic per call and raise
MutationError carrying the database's own message on failure; the executor
folds that message into its reply.
"""

from typing import Any

from supabase import Client

from portal_assistant.core.errors import MutationError
from portal_assistant.core.logging import get_logger
from portal_assistant.core.schemas_workspace import (
    ArticleSummary,
    FolderRef,
    GoalSummary,
    ProjectSummary,
    TagRef,
    TaskRef,
    UserRef,
)

logger = get_logger(__name__)

DASHBOARD_PROJECT_LIMIT = 100


def _error_message(e: Exception) -> str:
    """Best human-readable message from a postgrest/httpx error."""
    message = getattr(e, "message", None)
    return str(message or e)


def _first_row(data: Any) -> dict[str, Any] | None:
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        return data
    return None


def _tags_from_row(raw: Any) -> list[TagRef]:
    tags = []
    for t in raw or []:
        if isinstance(t, dict) and t.get("id") and t.get("name"):
            tags.append(TagRef(id=str(t["id"]), name=t["name"], color=t.get("color")))
    return tags


def _project_from_row(row: dict[str, Any]) -> ProjectSummary:
    tasks = []
    for t in row.get("tasks") or []:
        assigned = t.get("assignedTo") or t.get("assignees") or []
        tasks.append(
            TaskRef(
                id=str(t["id"]),
                title=t.get("title") or "",
                completed=bool(t.get("completed")),
                assignee_names=[a.get("name", "") for a in assigned if isinstance(a, dict)],
                assignee_ids=[str(a["id"]) for a in assigned if isinstance(a, dict) and a.get("id")],
            )
        )

    services = []
    for s in row.get("services") or []:
        if isinstance(s, str):
            services.append(s)
        elif isinstance(s, dict) and s.get("service_title"):
            services.append(s["service_title"])

    members = row.get("assignedTo") or []

    return ProjectSummary(
        id=str(row["id"]),
        name=row.get("name") or "",
        slug=row.get("slug"),
        status=row.get("status"),
        description=row.get("description"),
        category=row.get("category"),
        budget=row.get("budget"),
        start_date=row.get("start_date"),
        due_date=row.get("due_date"),
        venue=row.get("venue"),
        payment_status=row.get("payment_status"),
        payment_due_date=row.get("payment_due_date"),
        tasks=tasks,
        services=services,
        tags=_tags_from_row(row.get("tags")),
        assigned_user_ids=[str(m["id"]) for m in members if isinstance(m, dict) and m.get("id")],
    )


def _goal_from_row(row: dict[str, Any]) -> GoalSummary:
    return GoalSummary(
        id=str(row["id"]),
        title=row.get("title") or "",
        slug=row.get("slug"),
        description=row.get("description"),
        type=row.get("type"),
        frequency=row.get("frequency"),
        specific_days=row.get("specific_days"),
        target_quantity=row.get("target_quantity"),
        target_period=row.get("target_period"),
        target_value=row.get("target_value"),
        unit=row.get("unit"),
        icon=row.get("icon"),
        color=row.get("color"),
        progress=len(row.get("completions") or []),
        tags=_tags_from_row(row.get("tags")),
    )


def _article_from_row(row: dict[str, Any]) -> ArticleSummary:
    folder = row.get("kb_folders") or {}
    return ArticleSummary(
        id=str(row["id"]),
        title=row.get("title") or "",
        slug=row.get("slug"),
        folder_id=row.get("folder_id"),
        folder_name=folder.get("name") if isinstance(folder, dict) else row.get("folder_name"),
        header_image_url=row.get("header_image_url"),
    )


class WorkspaceStore:
    """Supabase-backed workspace store for one (already authorized) caller."""

    def __init__(self, client: Client):
        self.client = client

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_projects_with_tasks(self) -> list[ProjectSummary]:
        response = self.client.rpc(
            "get_dashboard_projects", {"p_limit": DASHBOARD_PROJECT_LIMIT, "p_offset": 0}
        ).execute()
        return [_project_from_row(r) for r in response.data or []]

    def get_users(self) -> list[UserRef]:
        response = self.client.table("profiles").select("id, first_name, last_name, email").execute()
        return [
            UserRef(
                id=str(r["id"]),
                first_name=r.get("first_name"),
                last_name=r.get("last_name"),
                email=r.get("email") or "",
            )
            for r in response.data or []
        ]

    def get_goals(self) -> list[GoalSummary]:
        response = self.client.rpc("get_user_goals").execute()
        return [_goal_from_row(r) for r in response.data or []]

    def get_tags(self) -> list[TagRef]:
        response = self.client.table("tags").select("id, name, color").execute()
        return _tags_from_row(response.data)

    def get_articles(self) -> list[ArticleSummary]:
        response = self.client.rpc("get_user_kb_articles").execute()
        return [_article_from_row(r) for r in response.data or []]

    def get_folders(self) -> list[FolderRef]:
        response = self.client.rpc("get_user_kb_folders").execute()
        return [
            FolderRef(id=str(r["id"]), name=r.get("name") or "", slug=r.get("slug"))
            for r in response.data or []
        ]

    def exists(self, table: str, row_id: str) -> bool:
        """Re-check a row by id right before a destructive write."""
        response = self.client.table(table).select("id").eq("id", row_id).limit(1).execute()
        return bool(response.data)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def insert_project(self, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.table("projects").insert(fields).execute()
        except Exception as e:
            logger.error(f"Failed to create project {fields.get('name')}: {e}")
            raise MutationError(_error_message(e)) from e

        project = _first_row(response.data)
        if not project:
            raise MutationError("No data returned from create_project")
        logger.info(f"Created project {project.get('id')}: {fields.get('name')}")
        return project

    def add_project_services(self, project_id: str, service_titles: list[str]) -> None:
        rows = [{"project_id": project_id, "service_title": title} for title in service_titles]
        try:
            self.client.table("project_services").insert(rows).execute()
        except Exception as e:
            logger.error(f"Failed to add services to project {project_id}: {e}")
            raise MutationError(_error_message(e)) from e

    def add_project_members(self, project_id: str, user_ids: list[str]) -> None:
        rows = [{"project_id": project_id, "user_id": uid, "role": "member"} for uid in user_ids]
        try:
            self.client.table("project_members").insert(rows).execute()
        except Exception as e:
            logger.error(f"Failed to add members to project {project_id}: {e}")
            raise MutationError(_error_message(e)) from e

    def update_project(self, project_id: str, params: dict[str, Any]) -> None:
        """Full-row update through the update_project_details RPC."""
        try:
            self.client.rpc("update_project_details", {"p_project_id": project_id, **params}).execute()
        except Exception as e:
            logger.error(f"Failed to update project {project_id}: {e}")
            raise MutationError(_error_message(e)) from e

    def delete_project(self, project_id: str) -> None:
        self._delete("projects", project_id)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def create_task(self, project_id: str, title: str, assignee_ids: list[str]) -> dict[str, Any]:
        try:
            response = self.client.rpc(
                "create_task_with_assignees",
                {
                    "p_project_id": project_id,
                    "p_title": title,
                    "p_assignee_ids": assignee_ids or None,
                },
            ).execute()
        except Exception as e:
            logger.error(f"Failed to create task {title!r} in project {project_id}: {e}")
            raise MutationError(_error_message(e)) from e
        return _first_row(response.data) or {}

    def assign_task(self, task_id: str, user_ids: list[str]) -> None:
        rows = [{"task_id": task_id, "user_id": uid} for uid in user_ids]
        try:
            self.client.table("task_assignees").insert(rows).execute()
        except Exception as e:
            logger.error(f"Failed to assign task {task_id}: {e}")
            raise MutationError(_error_message(e)) from e

    def unassign_task(self, task_id: str, user_ids: list[str]) -> None:
        try:
            (
                self.client.table("task_assignees")
                .delete()
                .eq("task_id", task_id)
                .in_("user_id", user_ids)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to unassign task {task_id}: {e}")
            raise MutationError(_error_message(e)) from e

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def create_goal(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.rpc("create_goal_and_link_tags", params).execute()
        except Exception as e:
            logger.error(f"Failed to create goal {params.get('p_title')!r}: {e}")
            raise MutationError(_error_message(e)) from e

        goal = _first_row(response.data)
        if not goal:
            raise MutationError("No data returned from create_goal_and_link_tags")
        return goal

    def update_goal(self, goal_id: str, params: dict[str, Any]) -> None:
        try:
            self.client.rpc("update_goal_with_tags", {"p_goal_id": goal_id, **params}).execute()
        except Exception as e:
            logger.error(f"Failed to update goal {goal_id}: {e}")
            raise MutationError(_error_message(e)) from e

    def delete_goal(self, goal_id: str) -> None:
        self._delete("goals", goal_id)

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------

    def create_folder(self, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.table("kb_folders").insert(fields).execute()
        except Exception as e:
            logger.error(f"Failed to create folder {fields.get('name')!r}: {e}")
            raise MutationError(_error_message(e)) from e

        folder = _first_row(response.data)
        if not folder:
            raise MutationError("No data returned from create_folder")
        return folder

    def get_default_folder_id(self) -> str:
        """Return the id of the user's default folder, creating it if needed."""
        try:
            response = self.client.rpc("create_default_kb_folder").execute()
        except Exception as e:
            logger.error(f"Failed to get default folder: {e}")
            raise MutationError(_error_message(e)) from e

        data = response.data
        folder_id = data if isinstance(data, str) else (_first_row(data) or {}).get("id")
        if not folder_id:
            raise MutationError("No data returned from create_default_kb_folder")
        return str(folder_id)

    def create_article(self, fields: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self.client.table("kb_articles").insert(fields).execute()
        except Exception as e:
            logger.error(f"Failed to create article {fields.get('title')!r}: {e}")
            raise MutationError(_error_message(e)) from e

        article = _first_row(response.data)
        if not article:
            raise MutationError("No data returned from create_article")
        return article

    def update_article(self, article_id: str, fields: dict[str, Any]) -> None:
        try:
            self.client.table("kb_articles").update(fields).eq("id", article_id).execute()
        except Exception as e:
            logger.error(f"Failed to update article {article_id}: {e}")
            raise MutationError(_error_message(e)) from e

    def delete_article(self, article_id: str) -> None:
        self._delete("kb_articles", article_id)

    # ------------------------------------------------------------------

    def _delete(self, table: str, row_id: str) -> None:
        try:
            self.client.table(table).delete().eq("id", row_id).execute()
        except Exception as e:
            logger.error(f"Failed to delete {table} row {row_id}: {e}")
            raise MutationError(_error_message(e)) from e
        logger.info(f"Deleted {table} row {row_id}")
