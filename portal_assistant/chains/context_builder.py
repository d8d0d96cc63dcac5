"""Build the per-turn workspace snapshot.

Six independent reads run concurrently. A failed read degrades to an empty
list for that entity so one broken table never blocks the assistant.

Usage:
    from portal_assistant.chains.context_builder import build_context

    context = await build_context(store, auth.user_id)
"""

import asyncio
from typing import Any, Callable

from portal_assistant.core.logging import get_logger
from portal_assistant.core.schemas_workspace import WorkspaceContext
from portal_assistant.db.workspace import WorkspaceStore

logger = get_logger(__name__)


def _read_or_empty(name: str, read: Callable[[], list[Any]], user_id: str) -> list[Any]:
    try:
        return read()
    except Exception as e:
        logger.warning(f"Context read '{name}' failed for user {user_id}, using empty list: {e}")
        return []


async def build_context(store: WorkspaceStore, user_id: str) -> WorkspaceContext:
    """
    Assemble a WorkspaceContext for one turn.

    Args:
        store: Workspace store scoped to the caller
        user_id: Caller id (used for log lines only)

    Returns:
        Immutable snapshot; never raises on individual read failures
    """
    projects, users, goals, tags, articles, folders = await asyncio.gather(
        asyncio.to_thread(_read_or_empty, "projects", store.get_projects_with_tasks, user_id),
        asyncio.to_thread(_read_or_empty, "users", store.get_users, user_id),
        asyncio.to_thread(_read_or_empty, "goals", store.get_goals, user_id),
        asyncio.to_thread(_read_or_empty, "tags", store.get_tags, user_id),
        asyncio.to_thread(_read_or_empty, "articles", store.get_articles, user_id),
        asyncio.to_thread(_read_or_empty, "folders", store.get_folders, user_id),
    )

    logger.debug(
        f"Context built for user {user_id}: {len(projects)} projects, {len(users)} users, "
        f"{len(goals)} goals, {len(tags)} tags, {len(articles)} articles, {len(folders)} folders"
    )

    return WorkspaceContext(
        projects=projects,
        users=users,
        goals=goals,
        tags=tags,
        articles=articles,
        folders=folders,
    )
