"""Resolve free-text entity names in an action against the context snapshot.

Matching is case-insensitive: an exact match wins, otherwise a single
substring match resolves. No match and several matches both raise
ResolutionError with a message the user can act on.

User-name lists resolve per element. Names that match nobody, and names that
match several users, are carried separately on the result so the executor can
report them, instead of failing the action.

Tag names match exactly. An unknown tag name is a new tag, not an error.
"""

from dataclasses import dataclass, field
from typing import Callable, Sequence, TypeVar

from pydantic import BaseModel

from portal_assistant.core.errors import ResolutionError
from portal_assistant.core.logging import get_logger
from portal_assistant.core.schemas_actions import (
    ActionKind,
    NewTag,
    action_kind,
)
from portal_assistant.core.schemas_workspace import (
    ArticleSummary,
    FolderRef,
    GoalSummary,
    ProjectSummary,
    TagRef,
    TaskRef,
    UserRef,
    WorkspaceContext,
)

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class ResolvedAction:
    """An action with every referenced name bound to a snapshot record."""

    action: BaseModel
    kind: ActionKind
    project: ProjectSummary | None = None
    task: TaskRef | None = None
    goal: GoalSummary | None = None
    article: ArticleSummary | None = None
    folder: FolderRef | None = None
    users: list[UserRef] = field(default_factory=list)
    removed_users: list[UserRef] = field(default_factory=list)
    unresolved_users: list[str] = field(default_factory=list)
    ambiguous_users: dict[str, list[str]] = field(default_factory=dict)
    add_tags: list[TagRef] = field(default_factory=list)
    new_tags: list[NewTag] = field(default_factory=list)
    remove_tags: list[TagRef] = field(default_factory=list)

    @property
    def target_name(self) -> str | None:
        """Display name of the primary record, if the action targets one."""
        for record, attr in (
            (self.project, "name"),
            (self.goal, "title"),
            (self.article, "title"),
        ):
            if record is not None:
                return getattr(record, attr)
        return None

    def bind_users(self, users: Sequence[UserRef], names: Sequence[str]) -> list[UserRef]:
        """Resolve ``names``, recording the ones that did not bind to one user."""
        found, not_found, ambiguous = resolve_users(users, names)
        self.unresolved_users.extend(not_found)
        self.ambiguous_users.update(ambiguous)
        return found


def match_one(
    items: Sequence[T],
    value: str | None,
    key: Callable[[T], str],
    *,
    label: str,
    field_name: str,
) -> T:
    """
    Pick the single item whose key matches ``value``.

    Raises:
        ResolutionError: kind NOT_FOUND when nothing matches, AMBIGUOUS when
            several items match and none matches exactly
    """
    needle = (value or "").strip().lower()
    if not needle:
        raise ResolutionError(
            f"I need a {label} name to do that.",
            kind=ResolutionError.NOT_FOUND,
            field=field_name,
            value=value or "",
        )

    exact = [item for item in items if key(item).strip().lower() == needle]
    if len(exact) == 1:
        return exact[0]

    candidates = exact or [item for item in items if needle in key(item).lower()]
    if len(candidates) == 1:
        return candidates[0]

    if not candidates:
        raise ResolutionError(
            f'I couldn\'t find a {label} named "{value}".',
            kind=ResolutionError.NOT_FOUND,
            field=field_name,
            value=value,
        )

    names = [key(item) for item in candidates]
    quoted = ", ".join(f'"{n}"' for n in names)
    raise ResolutionError(
        f'"{value}" matches more than one {label}: {quoted}. '
        f"Which one do you mean? Please be more specific.",
        kind=ResolutionError.AMBIGUOUS,
        field=field_name,
        value=value,
        candidates=names,
    )


def _match_user(users: Sequence[UserRef], name: str) -> UserRef:
    """
    One user by display name or email.

    Raises:
        ResolutionError: NOT_FOUND when nobody matches, AMBIGUOUS when several do
    """
    needle = name.strip().lower()

    def keys(user: UserRef) -> tuple[str, str]:
        return user.display_name.lower(), (user.email or "").lower()

    candidates: list[UserRef] = []
    if needle:
        candidates = [u for u in users if needle in keys(u)]
        if not candidates:
            candidates = [u for u in users if any(needle in k for k in keys(u) if k)]
    if len(candidates) == 1:
        return candidates[0]

    if candidates:
        message, kind = f'"{name}" matches more than one user.', ResolutionError.AMBIGUOUS
    else:
        message, kind = f'I couldn\'t find a user named "{name}".', ResolutionError.NOT_FOUND
    raise ResolutionError(
        message,
        kind=kind,
        field="users",
        value=name,
        candidates=[u.display_name for u in candidates],
    )


def resolve_users(
    users: Sequence[UserRef], names: Sequence[str]
) -> tuple[list[UserRef], list[str], dict[str, list[str]]]:
    """
    Resolve each name independently.

    Returns:
        (resolved users, names that matched nobody, ambiguous name -> candidate names)
    """
    resolved: list[UserRef] = []
    not_found: list[str] = []
    ambiguous: dict[str, list[str]] = {}
    for name in names or []:
        try:
            user = _match_user(users, name)
        except ResolutionError as e:
            if e.kind == ResolutionError.AMBIGUOUS:
                ambiguous[name] = e.candidates
            else:
                not_found.append(name)
            continue
        if user.id not in {u.id for u in resolved}:
            resolved.append(user)
    return resolved, not_found, ambiguous


def _tag_by_name(tags: Sequence[TagRef], name: str) -> TagRef | None:
    needle = name.strip().lower()
    for tag in tags:
        if tag.name.lower() == needle:
            return tag
    return None


def _split_tags(tags: Sequence[TagRef], names: Sequence[str]) -> tuple[list[TagRef], list[NewTag]]:
    existing: list[TagRef] = []
    new: list[NewTag] = []
    for name in names or []:
        if not name or not name.strip():
            continue
        tag = _tag_by_name(tags, name)
        if tag is not None:
            existing.append(tag)
        elif name.strip().lower() not in {t.name.lower() for t in new}:
            new.append(NewTag(name=name.strip()))
    return existing, new


def _resolve_project(context: WorkspaceContext, name: str | None) -> ProjectSummary:
    return match_one(
        context.projects, name, lambda p: p.name, label="project", field_name="project_name"
    )


def _resolve_task(project: ProjectSummary, title: str | None) -> TaskRef:
    try:
        return match_one(
            project.tasks, title, lambda t: t.title, label="task", field_name="task_title"
        )
    except ResolutionError as e:
        if e.kind != ResolutionError.NOT_FOUND or not title:
            raise
        raise ResolutionError(
            f'I couldn\'t find a task named "{title}" in the "{project.name}" project.',
            kind=e.kind,
            field=e.field,
            value=e.value,
        ) from e


def _resolve_folder(context: WorkspaceContext, name: str | None) -> FolderRef:
    return match_one(context.folders, name, lambda f: f.name, label="folder", field_name="folder_name")


def resolve(action: BaseModel, context: WorkspaceContext) -> ResolvedAction:
    """
    Bind the names in ``action`` to records in ``context``.

    Pure function of its inputs.

    Raises:
        ResolutionError: When a required entity is missing or ambiguous
    """
    kind = action_kind(action)
    resolved = ResolvedAction(action=action, kind=kind)

    if kind == ActionKind.CREATE_PROJECT:
        resolved.users = resolved.bind_users(context.users, action.project_details.members)

    elif kind == ActionKind.UPDATE_PROJECT:
        project = _resolve_project(context, action.project_name)
        resolved.project = project
        updates = action.updates
        resolved.users = resolved.bind_users(context.users, updates.add_members)
        resolved.removed_users = resolved.bind_users(context.users, updates.remove_members)
        resolved.add_tags, resolved.new_tags = _split_tags(context.tags, updates.add_tags)
        resolved.remove_tags, _ = _split_tags(list(context.tags) + project.tags, updates.remove_tags)

    elif kind == ActionKind.DELETE_PROJECT:
        resolved.project = _resolve_project(context, action.project_name)

    elif kind in (ActionKind.CREATE_TASK, ActionKind.ASSIGN_TASK, ActionKind.UNASSIGN_TASK):
        project = _resolve_project(context, action.project_name)
        resolved.project = project
        if kind != ActionKind.CREATE_TASK:
            resolved.task = _resolve_task(project, action.task_title)
        resolved.users = resolved.bind_users(context.users, action.assignees)

    elif kind == ActionKind.CREATE_GOAL:
        names = [t.name for t in action.goal_details.tags]
        resolved.add_tags, new_tags = _split_tags(context.tags, names)
        colors = {t.name.lower(): t.color for t in action.goal_details.tags}
        resolved.new_tags = [
            NewTag(name=t.name, color=colors.get(t.name.lower())) for t in new_tags
        ]

    elif kind == ActionKind.UPDATE_GOAL:
        goal = match_one(
            context.goals, action.goal_title, lambda g: g.title, label="goal", field_name="goal_title"
        )
        resolved.goal = goal
        resolved.add_tags, resolved.new_tags = _split_tags(context.tags, action.updates.add_tags)
        resolved.remove_tags, _ = _split_tags(
            list(context.tags) + goal.tags, action.updates.remove_tags
        )

    elif kind == ActionKind.DELETE_GOAL:
        resolved.goal = match_one(
            context.goals, action.goal_title, lambda g: g.title, label="goal", field_name="goal_title"
        )

    elif kind == ActionKind.CREATE_ARTICLE:
        folder_name = action.article_details.folder_name
        if folder_name and folder_name.strip():
            try:
                resolved.folder = _resolve_folder(context, folder_name)
            except ResolutionError as e:
                if e.kind == ResolutionError.AMBIGUOUS:
                    raise
                # Unknown folder: the article goes to the default folder
                logger.info(f"Folder {folder_name!r} not found, using default folder")

    elif kind == ActionKind.UPDATE_ARTICLE:
        resolved.article = match_one(
            context.articles,
            action.article_title,
            lambda a: a.title,
            label="article",
            field_name="article_title",
        )
        if "folder_name" in action.updates.model_fields_set and action.updates.folder_name:
            resolved.folder = _resolve_folder(context, action.updates.folder_name)

    elif kind == ActionKind.DELETE_ARTICLE:
        resolved.article = match_one(
            context.articles,
            action.article_title,
            lambda a: a.title,
            label="article",
            field_name="article_title",
        )

    return resolved
