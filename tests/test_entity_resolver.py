"""Tests for resolving entity names against the workspace snapshot."""

import pytest

from portal_assistant.chains.entity_resolver import match_one, resolve, resolve_users
from portal_assistant.core.errors import ResolutionError
from portal_assistant.core.schemas_actions import ActionKind, decode_action
from portal_assistant.core.schemas_workspace import UserRef, WorkspaceContext
from tests.fakes.fake_workspace import (
    sample_articles,
    sample_folders,
    sample_goals,
    sample_projects,
    sample_tags,
    sample_users,
)


@pytest.fixture
def context() -> WorkspaceContext:
    return WorkspaceContext(
        projects=sample_projects(),
        users=sample_users(),
        goals=sample_goals(),
        tags=sample_tags(),
        articles=sample_articles(),
        folders=sample_folders(),
    )


class TestMatchOne:
    def test_exact_match_is_case_insensitive(self):
        projects = sample_projects()
        match = match_one(projects, "gala dinner 2025", lambda p: p.name, label="project", field_name="project_name")
        assert match.id == "proj-gala"

    def test_single_substring_match_resolves(self):
        projects = sample_projects()
        match = match_one(projects, "gala", lambda p: p.name, label="project", field_name="project_name")
        assert match.id == "proj-gala"

    def test_exact_match_beats_substring_candidates(self):
        items = ["Launch", "Launch Alpha"]
        assert match_one(items, "launch", lambda s: s, label="project", field_name="project_name") == "Launch"

    def test_no_match_raises_not_found(self):
        with pytest.raises(ResolutionError) as exc:
            match_one(sample_projects(), "Wedding", lambda p: p.name, label="project", field_name="project_name")
        assert exc.value.kind == ResolutionError.NOT_FOUND
        assert exc.value.message == 'I couldn\'t find a project named "Wedding".'

    def test_several_matches_raise_ambiguous_with_candidates(self):
        with pytest.raises(ResolutionError) as exc:
            match_one(sample_projects(), "launch", lambda p: p.name, label="project", field_name="project_name")
        err = exc.value
        assert err.kind == ResolutionError.AMBIGUOUS
        assert err.candidates == ["Launch Alpha", "Launch Beta"]
        assert '"Launch Alpha"' in err.message and '"Launch Beta"' in err.message
        assert "Which one do you mean?" in err.message

    def test_empty_name_is_not_found(self):
        with pytest.raises(ResolutionError) as exc:
            match_one(sample_projects(), "  ", lambda p: p.name, label="project", field_name="project_name")
        assert exc.value.kind == ResolutionError.NOT_FOUND


def test_resolve_users_collects_unresolved_names():
    resolved, not_found, ambiguous = resolve_users(sample_users(), ["budi", "sari@example.com", "Joko"])
    assert [u.id for u in resolved] == ["user-budi", "user-sari"]
    assert not_found == ["Joko"]
    assert ambiguous == {}


def test_resolve_users_deduplicates():
    resolved, not_found, _ = resolve_users(sample_users(), ["Budi Santoso", "budi"])
    assert [u.id for u in resolved] == ["user-budi"]
    assert not_found == []


def test_resolve_users_matches_partial_email():
    resolved, not_found, _ = resolve_users(sample_users(), ["budi@"])
    assert [u.id for u in resolved] == ["user-budi"]
    assert not_found == []


def test_resolve_users_separates_ambiguous_from_not_found():
    users = sample_users() + [
        UserRef(id="user-budi-h", first_name="Budi", last_name="Hartono", email="hartono@example.com")
    ]
    resolved, not_found, ambiguous = resolve_users(users, ["Budi", "Sari", "Joko"])
    assert [u.id for u in resolved] == ["user-sari"]
    assert not_found == ["Joko"]
    assert ambiguous == {"Budi": ["Budi Santoso", "Budi Hartono"]}


def test_exact_email_beats_partial_name():
    users = sample_users() + [
        UserRef(id="user-budi-h", first_name="Budi", last_name="Hartono", email="hartono@example.com")
    ]
    resolved, _, ambiguous = resolve_users(users, ["hartono@example.com"])
    assert [u.id for u in resolved] == ["user-budi-h"]
    assert ambiguous == {}


def test_create_task_resolves_project_and_assignees(context):
    action = decode_action(
        {
            "action": "CREATE_TASK",
            "project_name": "gala dinner",
            "task_title": "Book band",
            "assignees": ["Budi", "Nobody"],
        }
    )
    resolved = resolve(action, context)
    assert resolved.kind == ActionKind.CREATE_TASK
    assert resolved.project.id == "proj-gala"
    assert resolved.task is None
    assert [u.id for u in resolved.users] == ["user-budi"]
    assert resolved.unresolved_users == ["Nobody"]
    assert resolved.target_name == "Gala Dinner 2025"


def test_assign_task_reports_missing_task_with_project_name(context):
    action = decode_action(
        {
            "action": "ASSIGN_TASK",
            "project_name": "Gala Dinner 2025",
            "task_title": "Hire DJ",
            "assignees": ["Budi"],
        }
    )
    with pytest.raises(ResolutionError) as exc:
        resolve(action, context)
    assert exc.value.message == 'I couldn\'t find a task named "Hire DJ" in the "Gala Dinner 2025" project.'


def test_update_project_splits_known_and_new_tags(context):
    action = decode_action(
        {
            "action": "UPDATE_PROJECT",
            "project_name": "Gala Dinner 2025",
            "updates": {"add_tags": ["health", "VIP"], "remove_tags": ["Urgent"], "remove_members": ["Rina"]},
        }
    )
    resolved = resolve(action, context)
    assert [t.id for t in resolved.add_tags] == ["tag-health"]
    assert [t.name for t in resolved.new_tags] == ["VIP"]
    assert [t.id for t in resolved.remove_tags] == ["tag-urgent"]
    assert [u.id for u in resolved.removed_users] == ["user-rina"]


def test_update_goal_not_found(context):
    action = decode_action({"action": "UPDATE_GOAL", "goal_title": "Learn piano", "updates": {"unit": "hours"}})
    with pytest.raises(ResolutionError) as exc:
        resolve(action, context)
    assert exc.value.kind == ResolutionError.NOT_FOUND
    assert exc.value.field == "goal_title"


def test_create_goal_keeps_colors_of_new_tags(context):
    action = decode_action(
        {
            "action": "CREATE_GOAL",
            "goal_details": {
                "title": "Read 12 books",
                "tags": [{"name": "Health"}, {"name": "Learning", "color": "#4ECDC4"}],
            },
        }
    )
    resolved = resolve(action, context)
    assert [t.id for t in resolved.add_tags] == ["tag-health"]
    assert [(t.name, t.color) for t in resolved.new_tags] == [("Learning", "#4ECDC4")]


def test_create_article_unknown_folder_falls_back_to_default(context):
    action = decode_action(
        {"action": "CREATE_ARTICLE", "article_details": {"title": "Vendors", "folder_name": "Recipes"}}
    )
    resolved = resolve(action, context)
    assert resolved.folder is None


def test_create_article_ambiguous_folder_raises(context):
    action = decode_action(
        {"action": "CREATE_ARTICLE", "article_details": {"title": "Vendors", "folder_name": "notes"}}
    )
    with pytest.raises(ResolutionError) as exc:
        resolve(action, context)
    assert exc.value.kind == ResolutionError.AMBIGUOUS


def test_update_article_requires_existing_folder(context):
    action = decode_action(
        {
            "action": "UPDATE_ARTICLE",
            "article_title": "onboarding",
            "updates": {"folder_name": "Recipes"},
        }
    )
    with pytest.raises(ResolutionError) as exc:
        resolve(action, context)
    assert exc.value.field == "folder_name"


def test_search_external_needs_no_resolution(context):
    action = decode_action({"action": "SEARCH_MAPS_AND_WEBSITE", "query": "dyad.sh"})
    resolved = resolve(action, context)
    assert resolved.kind == ActionKind.SEARCH_EXTERNAL
    assert resolved.target_name is None
