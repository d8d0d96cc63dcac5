"""Pytest configuration and fixtures."""

import os
from unittest.mock import patch

import pytest

# Settings are read at import time by some modules; set the required values first
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ASSISTANT_ENV"] = "test"

    from portal_assistant.core.config import get_settings

    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def no_usage_logging():
    """Keep completion tests from writing usage rows to Supabase."""
    with patch("portal_assistant.core.llm.log_llm_usage"), patch(
        "portal_assistant.core.text_extractors.log_llm_usage"
    ):
        yield
