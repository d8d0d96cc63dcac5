"""Tests for system prompt composition."""

from datetime import datetime, timezone

from portal_assistant.chains.prompts import SCRAPE_PREFIX, compose_system_prompt, render_action_grammar
from portal_assistant.core.schemas_actions import ActionKind
from portal_assistant.core.schemas_workspace import WorkspaceContext
from tests.fakes.fake_workspace import sample_goals, sample_projects, sample_users

NOW = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)


def _context() -> WorkspaceContext:
    return WorkspaceContext(projects=sample_projects(), users=sample_users(), goals=sample_goals())


def test_grammar_lists_every_action_kind():
    grammar = render_action_grammar()
    for kind in ActionKind:
        assert f"{kind.value}:" in grammar


def test_prompt_contains_name_timestamp_and_context():
    prompt = compose_system_prompt(_context(), "Rina Wijaya", now=NOW)
    assert "Rina Wijaya" in prompt
    assert NOW.isoformat() in prompt
    assert "Gala Dinner 2025" in prompt
    assert "Finalize menu" in prompt
    assert "Run 5K" in prompt
    assert SCRAPE_PREFIX in prompt


def test_prompt_names_sensitive_actions():
    prompt = compose_system_prompt(_context(), "Rina", now=NOW)
    assert "DELETE_PROJECT, CREATE_TASK, DELETE_GOAL, DELETE_ARTICLE" in prompt


def test_prompt_project_summary_hides_ids():
    prompt = compose_system_prompt(_context(), "Rina", now=NOW)
    assert "proj-gala" not in prompt
    assert "task-menu" not in prompt


def test_long_descriptions_are_truncated():
    project = sample_projects()[0].model_copy(update={"description": "x" * 150})
    context = WorkspaceContext(projects=[project])
    summary = context.summarized_projects[0]
    assert summary["description"] == "x" * 100 + "..."


def test_missing_display_name_falls_back():
    prompt = compose_system_prompt(WorkspaceContext(), "", now=NOW)
    assert "Address the user, there," in prompt
