"""Tests for LLM usage tracking."""

from unittest.mock import MagicMock, patch

from portal_assistant.core.llm_usage import _estimate_cost, log_llm_usage


def test_cost_for_known_model():
    # 1M input at $3 + 1M output at $15
    assert _estimate_cost("claude-sonnet-4-5-20250929", 1_000_000, 1_000_000) == 18.0


def test_unknown_model_costs_nothing():
    assert _estimate_cost("mystery-model", 1000, 1000) == 0.0


def test_usage_row_is_inserted():
    client = MagicMock()
    with patch("portal_assistant.core.llm_usage.get_supabase", return_value=client):
        log_llm_usage("assistant", "gpt-4o", "openai", 100, 20, duration_ms=350, user_id="u1")

    client.table.assert_called_once_with("llm_usage_log")
    row = client.table.return_value.insert.call_args.args[0]
    assert row["workflow"] == "assistant"
    assert row["user_id"] == "u1"
    assert row["tokens_output"] == 20


def test_usage_logging_never_raises():
    with patch("portal_assistant.core.llm_usage.get_supabase", side_effect=RuntimeError("no db")):
        log_llm_usage("assistant", "gpt-4o", "openai", 1, 1)
