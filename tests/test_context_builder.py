"""Tests for the per-turn workspace snapshot."""

import pytest

from portal_assistant.chains.context_builder import build_context
from tests.fakes.fake_workspace import USER_ID, FakeWorkspaceStore


@pytest.mark.asyncio
async def test_build_context_reads_every_entity():
    store = FakeWorkspaceStore()
    context = await build_context(store, USER_ID)

    assert len(context.projects) == 3
    assert len(context.users) == 3
    assert [g.title for g in context.goals] == ["Run 5K"]
    assert len(context.tags) == 2
    assert [a.title for a in context.articles] == ["Onboarding Checklist"]
    assert len(context.folders) == 3
    assert context.available_services
    assert context.available_icons


@pytest.mark.asyncio
async def test_failed_read_degrades_to_empty_list():
    store = FakeWorkspaceStore()
    store.read_failures = {"get_goals", "get_tags"}

    context = await build_context(store, USER_ID)

    assert context.goals == []
    assert context.tags == []
    assert len(context.projects) == 3


@pytest.mark.asyncio
async def test_display_name_lookup():
    context = await build_context(FakeWorkspaceStore(), USER_ID)
    assert context.display_name_for(USER_ID) == "Rina Wijaya"
    assert context.display_name_for("someone-else") == "there"
