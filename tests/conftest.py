"""Pytest configuration for all tests."""

import pytest

from src.autotask.config import AutoTaskSettings


@pytest.fixture
def sample_config_env(monkeypatch):
    """Set the environment variables a deployment would provide."""
    monkeypatch.setenv("AUTOTASK_GITHUB_WEBHOOK_SECRET", "test-webhook-secret-0123456789")
    monkeypatch.setenv("AUTOTASK_LINEAR_API_KEY", "lin_api_test_key")
    monkeypatch.setenv("AUTOTASK_LINEAR_TEAM_ID", "team-1")
    monkeypatch.setenv("AUTOTASK_LLM_API_KEY", "sk-test-key")
    monkeypatch.setenv("AUTOTASK_LINEAR_DEFAULT_LABEL_IDS", "label-a, label-b")


@pytest.fixture
def app_settings() -> AutoTaskSettings:
    """Fully configured settings built without touching the environment."""
    return AutoTaskSettings(
        github_webhook_secret="test-webhook-secret-0123456789",
        linear_api_key="lin_api_test_key",
        linear_team_id="team-1",
        llm_api_key="sk-test-key",
        _env_file=None,
    )
