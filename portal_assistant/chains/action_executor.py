"""Execute a resolved action against the workspace store.

Every branch returns a displayable message; nothing raises to the caller.
Store calls run on a worker thread so a slow write never blocks the event
loop and stays inside the caller's timeout.
Database failures become "I failed to ... The database said: <message>".
Multi-step actions run their sub-steps in order without rollback: a failed
sub-step is appended to the success message as a "but I couldn't ..." note.

Usage:
    from portal_assistant.chains.action_executor import execute

    message = await execute(resolved, store, auth.user_id)
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from portal_assistant.chains.entity_resolver import ResolvedAction
from portal_assistant.core.errors import MutationError, UpstreamError
from portal_assistant.core.image_search import ImageSearch
from portal_assistant.core.logging import get_logger
from portal_assistant.core.place_search import PlaceSearch
from portal_assistant.core.reference_data import DEFAULT_TAG_COLOR
from portal_assistant.core.schemas_actions import ActionKind
from portal_assistant.db.workspace import WorkspaceStore

logger = get_logger(__name__)


@dataclass
class _Run:
    store: WorkspaceStore
    user_id: str
    image_search: ImageSearch
    place_search: PlaceSearch


def _failed(verb: str, e: MutationError) -> str:
    return f"I failed to {verb}. The database said: {e.message}"


def _names(names: list[str]) -> str:
    return ", ".join(names)


def _ambiguous_users(resolved: ResolvedAction) -> str:
    """'"Budi" could be Budi Santoso or Budi Hartono', one clause per name."""
    return "; ".join(
        f'"{name}" could be {" or ".join(candidates)}'
        for name, candidates in resolved.ambiguous_users.items()
    )


def _unresolved_note(resolved: ResolvedAction, purpose: str) -> str:
    parts = []
    if resolved.unresolved_users:
        users = f"these users {purpose}" if purpose else "these users"
        parts.append(f"I couldn't find {users}: {_names(resolved.unresolved_users)}")
    if resolved.ambiguous_users:
        parts.append(
            "some names match more than one user, please be more specific "
            f"({_ambiguous_users(resolved)})"
        )
    if not parts:
        return ""
    return " but " + " and ".join(parts)


def _merge(updates: Any, field: str, current: Any) -> Any:
    """Present keys override (falsy values included), absent keys pass through."""
    return getattr(updates, field) if field in updates.model_fields_set else current


def _custom_tags(resolved: ResolvedAction) -> list[dict[str, str]]:
    return [{"name": t.name, "color": t.color or DEFAULT_TAG_COLOR} for t in resolved.new_tags]


def _tag_ids(current: list[Any], resolved: ResolvedAction) -> list[str]:
    """Current tag ids, union added, minus removed, order preserved."""
    removed = {t.id for t in resolved.remove_tags}
    ids: list[str] = []
    for tag in list(current) + resolved.add_tags:
        if tag.id not in removed and tag.id not in ids:
            ids.append(tag.id)
    return ids


# =============================================================================
# Projects
# =============================================================================


async def _create_project(resolved: ResolvedAction, run: _Run) -> str:
    details = resolved.action.project_details
    if not details.name or not details.name.strip():
        return "I need a name to create a project."

    fields = {
        "name": details.name.strip(),
        "description": details.description,
        "start_date": details.start_date,
        "due_date": details.due_date,
        "venue": details.venue,
        "budget": details.budget,
        "category": "General",
        "created_by": run.user_id,
    }
    try:
        project = await asyncio.to_thread(
            run.store.insert_project, {k: v for k, v in fields.items() if v is not None}
        )
    except MutationError as e:
        return _failed("create the project", e)

    project_id = str(project["id"])
    notes = ""

    if details.services:
        try:
            await asyncio.to_thread(run.store.add_project_services, project_id, details.services)
        except MutationError as e:
            notes += f" but I couldn't add the services: {e.message}"

    if resolved.users:
        try:
            await asyncio.to_thread(
                run.store.add_project_members, project_id, [u.id for u in resolved.users]
            )
        except MutationError as e:
            notes += f" but I couldn't add the members: {e.message}"
    notes += _unresolved_note(resolved, "to add as members")

    message = f'Done! I\'ve created the project "{project.get("name") or fields["name"]}"{notes}.'
    if project.get("slug"):
        message += f" You can view it at /projects/{project['slug']}"
    return message


async def _update_project(resolved: ResolvedAction, run: _Run) -> str:
    project = resolved.project
    updates = resolved.action.updates

    members = [m for m in project.assigned_user_ids]
    for user in resolved.users:
        if user.id not in members:
            members.append(user.id)
    removed_members = {u.id for u in resolved.removed_users}
    members = [m for m in members if m not in removed_members]

    services = list(project.services)
    if "services" in updates.model_fields_set and updates.services is not None:
        services = list(updates.services)
    for title in updates.add_services:
        if title.lower() not in {s.lower() for s in services}:
            services.append(title)
    removed_services = {s.lower() for s in updates.remove_services}
    services = [s for s in services if s.lower() not in removed_services]

    params = {
        "p_name": _merge(updates, "name", project.name),
        "p_description": _merge(updates, "description", project.description),
        "p_category": _merge(updates, "category", project.category),
        "p_status": _merge(updates, "status", project.status),
        "p_budget": _merge(updates, "budget", project.budget),
        "p_start_date": _merge(updates, "start_date", project.start_date),
        "p_due_date": _merge(updates, "due_date", project.due_date),
        "p_payment_status": _merge(updates, "payment_status", project.payment_status),
        "p_payment_due_date": _merge(updates, "payment_due_date", project.payment_due_date),
        "p_venue": _merge(updates, "venue", project.venue),
        "p_members": members,
        "p_service_titles": services,
        "p_existing_tags": _tag_ids(project.tags, resolved),
        "p_custom_tags": _custom_tags(resolved),
    }
    try:
        await asyncio.to_thread(run.store.update_project, project.id, params)
    except MutationError as e:
        return _failed("update the project", e)

    notes = _unresolved_note(resolved, "to add or remove as members")
    return f'I\'ve updated the project "{params["p_name"]}"{notes}.'


async def _delete_project(resolved: ResolvedAction, run: _Run) -> str:
    project = resolved.project
    if not await asyncio.to_thread(run.store.exists, "projects", project.id):
        return f'The project "{project.name}" no longer exists, so there was nothing to delete.'
    try:
        await asyncio.to_thread(run.store.delete_project, project.id)
    except MutationError as e:
        return _failed("delete the project", e)
    return f'Done! I\'ve deleted the project "{project.name}".'


# =============================================================================
# Tasks
# =============================================================================


async def _create_task(resolved: ResolvedAction, run: _Run) -> str:
    title = (resolved.action.task_title or "").strip()
    if not title:
        return "I need both a project name and a task title to create a task."

    project = resolved.project
    try:
        await asyncio.to_thread(
            run.store.create_task, project.id, title, [u.id for u in resolved.users]
        )
    except MutationError as e:
        return _failed("create the task", e)

    notes = _unresolved_note(resolved, "to assign")
    return f'Done! I\'ve created the task "{title}" in the "{project.name}" project{notes}.'


async def _assign_task(resolved: ResolvedAction, run: _Run) -> str:
    if not resolved.action.assignees:
        return "I need a project name, a task title, and at least one assignee."
    if not resolved.users:
        if resolved.ambiguous_users and not resolved.unresolved_users:
            return (
                "Those names match more than one user. Which one do you mean? "
                f"Please be more specific: {_ambiguous_users(resolved)}."
            )
        message = f"I couldn't find the users you mentioned: {_names(resolved.unresolved_users)}."
        if resolved.ambiguous_users:
            message += f" Also, please be more specific about {_ambiguous_users(resolved)}."
        return message

    task = resolved.task
    names = _names([u.display_name for u in resolved.users])
    notes = _unresolved_note(resolved, "")

    if resolved.kind == ActionKind.ASSIGN_TASK:
        already = set(task.assignee_ids)
        new_ids = [u.id for u in resolved.users if u.id not in already]
        if new_ids:
            try:
                await asyncio.to_thread(run.store.assign_task, task.id, new_ids)
            except MutationError as e:
                return _failed("assign the task", e)
        return f'OK, I\'ve assigned {names} to the task "{task.title}"{notes}.'

    try:
        await asyncio.to_thread(run.store.unassign_task, task.id, [u.id for u in resolved.users])
    except MutationError as e:
        return _failed("unassign from the task", e)
    return f'OK, I\'ve unassigned {names} from the task "{task.title}"{notes}.'


# =============================================================================
# Goals
# =============================================================================


async def _create_goal(resolved: ResolvedAction, run: _Run) -> str:
    details = resolved.action.goal_details
    if not details.title or not details.title.strip():
        return "I need a title to create a goal."

    params = {
        "p_title": details.title.strip(),
        "p_description": details.description,
        "p_icon": details.icon,
        "p_color": details.color,
        "p_type": details.type,
        "p_frequency": details.frequency,
        "p_specific_days": details.specific_days,
        "p_target_quantity": details.target_quantity,
        "p_target_period": details.target_period,
        "p_target_value": details.target_value,
        "p_unit": details.unit,
        "p_existing_tags": [t.id for t in resolved.add_tags],
        "p_custom_tags": _custom_tags(resolved),
    }
    try:
        goal = await asyncio.to_thread(run.store.create_goal, params)
    except MutationError as e:
        return _failed("create the goal", e)

    message = f'I\'ve created the goal "{goal.get("title") or params["p_title"]}".'
    if goal.get("slug"):
        message += f" You can view it at /goals/{goal['slug']}"
    return message


async def _update_goal(resolved: ResolvedAction, run: _Run) -> str:
    goal = resolved.goal
    updates = resolved.action.updates
    custom_tags = _custom_tags(resolved)

    params = {
        "p_title": _merge(updates, "title", goal.title),
        "p_description": _merge(updates, "description", goal.description),
        "p_icon": _merge(updates, "icon", goal.icon),
        "p_color": _merge(updates, "color", goal.color),
        "p_type": _merge(updates, "type", goal.type),
        "p_frequency": _merge(updates, "frequency", goal.frequency),
        "p_specific_days": _merge(updates, "specific_days", goal.specific_days),
        "p_target_quantity": _merge(updates, "target_quantity", goal.target_quantity),
        "p_target_period": _merge(updates, "target_period", goal.target_period),
        "p_target_value": _merge(updates, "target_value", goal.target_value),
        "p_unit": _merge(updates, "unit", goal.unit),
        "p_tags": _tag_ids(goal.tags, resolved),
        "p_custom_tags": custom_tags or None,
    }
    try:
        await asyncio.to_thread(run.store.update_goal, goal.id, params)
    except MutationError as e:
        return _failed("update the goal", e)
    return f'I\'ve updated the goal "{params["p_title"]}".'


async def _delete_goal(resolved: ResolvedAction, run: _Run) -> str:
    goal = resolved.goal
    if not await asyncio.to_thread(run.store.exists, "goals", goal.id):
        return f'The goal "{goal.title}" no longer exists, so there was nothing to delete.'
    try:
        await asyncio.to_thread(run.store.delete_goal, goal.id)
    except MutationError as e:
        return _failed("delete the goal", e)
    return f'I\'ve deleted the goal "{goal.title}".'


# =============================================================================
# Knowledge base
# =============================================================================


async def _header_image(query: str | None, run: _Run) -> str | None:
    if not query:
        return None
    url = await run.image_search.find_one(query)
    if url is None:
        logger.info(f"No header image found for {query!r}")
    return url


async def _create_article(resolved: ResolvedAction, run: _Run) -> str:
    details = resolved.action.article_details
    if not details.title or not details.title.strip():
        return "I need a title to create an article."

    if resolved.folder is not None:
        folder_id = resolved.folder.id
    else:
        try:
            folder_id = await asyncio.to_thread(run.store.get_default_folder_id)
        except MutationError as e:
            return f"I couldn't find or create a default folder for the article: {e.message}"

    fields = {
        "title": details.title.strip(),
        "content": {"html": details.content or ""},
        "folder_id": folder_id,
        "user_id": run.user_id,
    }
    header_image_url = await _header_image(details.header_image_search_query, run)
    if header_image_url:
        fields["header_image_url"] = header_image_url

    try:
        article = await asyncio.to_thread(run.store.create_article, fields)
    except MutationError as e:
        return _failed("create the article", e)

    message = f'I\'ve created the article "{article.get("title") or fields["title"]}".'
    if article.get("slug"):
        message += f" You can view it at /knowledge-base/pages/{article['slug']}"
    return message


async def _update_article(resolved: ResolvedAction, run: _Run) -> str:
    article = resolved.article
    updates = resolved.action.updates
    present = updates.model_fields_set

    fields: dict[str, Any] = {}
    if "title" in present and updates.title:
        fields["title"] = updates.title
    if "content" in present and updates.content is not None:
        fields["content"] = {"html": updates.content}
    if resolved.folder is not None:
        fields["folder_id"] = resolved.folder.id

    header_image_url = await _header_image(updates.header_image_search_query, run)
    if header_image_url:
        fields["header_image_url"] = header_image_url

    if not fields:
        return f'There was nothing to change on the article "{article.title}".'

    try:
        await asyncio.to_thread(run.store.update_article, article.id, fields)
    except MutationError as e:
        return _failed("update the article", e)
    return f'I\'ve updated the article "{fields.get("title", article.title)}".'


async def _delete_article(resolved: ResolvedAction, run: _Run) -> str:
    article = resolved.article
    if not await asyncio.to_thread(run.store.exists, "kb_articles", article.id):
        return f'The article "{article.title}" no longer exists, so there was nothing to delete.'
    try:
        await asyncio.to_thread(run.store.delete_article, article.id)
    except MutationError as e:
        return _failed("delete the article", e)
    return f'I\'ve deleted the article "{article.title}".'


async def _create_folder(resolved: ResolvedAction, run: _Run) -> str:
    details = resolved.action.folder_details
    if not details.name or not details.name.strip():
        return "I need a name to create a folder."

    fields = {
        "name": details.name.strip(),
        "description": details.description,
        "icon": details.icon,
        "color": details.color,
        "category": details.category,
        "user_id": run.user_id,
    }
    try:
        folder = await asyncio.to_thread(
            run.store.create_folder, {k: v for k, v in fields.items() if v is not None}
        )
    except MutationError as e:
        return _failed("create the folder", e)

    message = f'I\'ve created the folder "{folder.get("name") or fields["name"]}".'
    if folder.get("slug"):
        message += f" You can view it at /knowledge-base/folders/{folder['slug']}"
    return message


# =============================================================================
# External lookups
# =============================================================================


async def _search_external(resolved: ResolvedAction, run: _Run) -> str:
    query = (resolved.action.query or "").strip()
    if not query:
        return "I need a place name or website to search for."
    try:
        details = await run.place_search.lookup(query)
    except UpstreamError as e:
        return f"I had trouble searching for that. The error was: {e.message}"
    return details.to_markdown()


_HANDLERS: dict[ActionKind, Callable[[ResolvedAction, _Run], Awaitable[str]]] = {
    ActionKind.CREATE_PROJECT: _create_project,
    ActionKind.UPDATE_PROJECT: _update_project,
    ActionKind.DELETE_PROJECT: _delete_project,
    ActionKind.CREATE_TASK: _create_task,
    ActionKind.ASSIGN_TASK: _assign_task,
    ActionKind.UNASSIGN_TASK: _assign_task,
    ActionKind.CREATE_GOAL: _create_goal,
    ActionKind.UPDATE_GOAL: _update_goal,
    ActionKind.DELETE_GOAL: _delete_goal,
    ActionKind.CREATE_ARTICLE: _create_article,
    ActionKind.UPDATE_ARTICLE: _update_article,
    ActionKind.DELETE_ARTICLE: _delete_article,
    ActionKind.CREATE_FOLDER: _create_folder,
    ActionKind.SEARCH_EXTERNAL: _search_external,
}


async def execute(
    resolved: ResolvedAction,
    store: WorkspaceStore,
    acting_user_id: str,
    *,
    image_search: ImageSearch | None = None,
    place_search: PlaceSearch | None = None,
) -> str:
    """
    Perform one resolved action.

    Args:
        resolved: Action with names bound to snapshot records
        store: Workspace store scoped to the caller
        acting_user_id: The caller; owner of created records
        image_search: Header image lookup (defaults to Unsplash)
        place_search: Place/website lookup (defaults to Google Places)

    Returns:
        Outcome message for the user
    """
    run = _Run(
        store=store,
        user_id=acting_user_id,
        image_search=image_search or ImageSearch(),
        place_search=place_search or PlaceSearch(),
    )
    handler = _HANDLERS[resolved.kind]
    logger.info(f"Executing {resolved.kind.value} for user {acting_user_id}")
    try:
        return await handler(resolved, run)
    except Exception as e:
        logger.exception(f"Unexpected error during {resolved.kind.value}")
        return f"I encountered an unexpected error while trying to perform the action: {e}"
