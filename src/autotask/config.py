"""Service configuration using pydantic-settings.

This module defines the AutoTaskSettings class that reads configuration
from environment variables with the AUTOTASK_ prefix (an optional .env
file is also honoured). The webhook secret and Linear API key must be set
for the service to start; everything else has a usable default.

It also builds the configuration report served at ``/config``, which tells
operators which settings are present without exposing secret values.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_LINEAR_API_URL = "https://api.linear.app/graphql"


class AutoTaskSettings(BaseSettings):
    """AutoTask configuration from environment variables.

    All environment variables are prefixed with AUTOTASK_ (e.g.,
    AUTOTASK_LINEAR_API_KEY).

    Required fields (must be set via environment variables):
    - github_webhook_secret: Shared secret for webhook signature checks
    - linear_api_key: Linear personal API key used for all tracker calls
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTOTASK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # GitHub Configuration
    # -------------------------------------------------------------------------
    # Secret shared with the GitHub webhook for X-Hub-Signature-256
    github_webhook_secret: str

    # -------------------------------------------------------------------------
    # Linear Configuration
    # -------------------------------------------------------------------------
    linear_api_key: str

    linear_api_url: str = DEFAULT_LINEAR_API_URL

    # Team that owns created issues and labels
    linear_team_id: Optional[str] = None

    linear_default_assignee_id: Optional[str] = None

    # Priority used when a created task carries none (1 = urgent, 4 = low)
    linear_default_priority: int = 3

    # Comma separated label ids applied to created tasks without labels
    linear_default_label_ids: str = ""

    # -------------------------------------------------------------------------
    # LLM Configuration
    # -------------------------------------------------------------------------
    # Left empty, the LLM is reported as not configured by the health check
    llm_api_key: str = ""

    # Any OpenAI-compatible endpoint, e.g. https://openrouter.ai/api/v1
    llm_base_url: Optional[str] = None

    llm_provider: str = "openai"

    llm_model: str = "gpt-4o-mini"

    llm_max_tokens: int = 2000

    llm_temperature: float = 0.3

    # -------------------------------------------------------------------------
    # Pipeline Configuration
    # -------------------------------------------------------------------------
    # Free-text project context appended to every analysis prompt
    project_description: Optional[str] = None

    # Comma separated event sinks: logging, metrics
    event_sinks: str = "logging,metrics"

    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"

    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator("github_webhook_secret")
    @classmethod
    def validate_webhook_secret(cls, v: str) -> str:
        """Validate that webhook secret is not empty."""
        if not v or not v.strip():
            raise ValueError("github_webhook_secret cannot be empty")
        return v

    @field_validator("linear_api_key")
    @classmethod
    def validate_linear_api_key(cls, v: str) -> str:
        """Validate that the Linear API key is not empty."""
        if not v or not v.strip():
            raise ValueError("linear_api_key cannot be empty")
        return v

    @field_validator("linear_api_url")
    @classmethod
    def validate_linear_api_url(cls, v: str) -> str:
        """Validate that the Linear API URL is an http(s) URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("linear_api_url must start with http:// or https://")
        return v

    @field_validator("llm_base_url")
    @classmethod
    def validate_llm_base_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate the optional LLM base URL; blank means provider default."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("llm_base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("linear_default_priority")
    @classmethod
    def validate_default_priority(cls, v: int) -> int:
        """Validate that the default priority is a Linear priority (1-4)."""
        if not 1 <= v <= 4:
            raise ValueError("linear_default_priority must be between 1 and 4")
        return v

    @field_validator("llm_max_tokens")
    @classmethod
    def validate_max_tokens(cls, v: int) -> int:
        """Validate that max tokens is positive."""
        if v < 1:
            raise ValueError("llm_max_tokens must be at least 1")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate that temperature is in the range accepted by chat APIs."""
        if not 0.0 <= v <= 2.0:
            raise ValueError("llm_temperature must be between 0.0 and 2.0")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    @property
    def default_label_ids(self) -> List[str]:
        """Default label ids parsed from the comma separated setting."""
        return [
            label_id.strip()
            for label_id in self.linear_default_label_ids.split(",")
            if label_id.strip()
        ]

    @property
    def event_sink_names(self) -> List[str]:
        """Configured event sink names, lower-cased."""
        return [
            name.strip().lower()
            for name in self.event_sinks.split(",")
            if name.strip()
        ]

    @property
    def llm_configured(self) -> bool:
        """Whether an LLM API key is present."""
        return bool(self.llm_api_key.strip())


def get_settings() -> AutoTaskSettings:
    """Create and return AutoTaskSettings instance.

    Returns:
        AutoTaskSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    return AutoTaskSettings()


def redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters.

    Args:
        value: The secret value to redact.
        visible_chars: Number of characters to show at the start.

    Returns:
        Redacted string with asterisks replacing hidden characters.
    """
    if not value:
        return ""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _key_prefix(value: str) -> Optional[str]:
    return f"{value[:8]}..." if value else None


def build_configuration_report(settings: AutoTaskSettings) -> Dict[str, Any]:
    """Summarize configuration presence for operators.

    The report never includes secret values: only presence flags, secret
    lengths and short key prefixes. The three essential settings (webhook
    secret, Linear API key, LLM API key) determine the score and status.

    Args:
        settings: Loaded settings.

    Returns:
        dict with status, configurationScore, configuration, recommendations
        and a summary block.
    """
    essentials = [
        bool(settings.github_webhook_secret),
        bool(settings.linear_api_key),
        settings.llm_configured,
    ]
    configured = sum(essentials)
    score = round(configured / len(essentials) * 100)

    if configured == len(essentials):
        status = "fully_configured"
    elif configured > 0:
        status = "partially_configured"
    else:
        status = "misconfigured"

    recommendations = []
    if len(settings.github_webhook_secret) < 20:
        recommendations.append(
            "Use a longer AUTOTASK_GITHUB_WEBHOOK_SECRET (20+ characters recommended)"
        )
    if not settings.linear_team_id:
        recommendations.append(
            "Set AUTOTASK_LINEAR_TEAM_ID to specify which Linear team to use"
        )
    if not settings.llm_configured:
        recommendations.append(
            "Set AUTOTASK_LLM_API_KEY to enable AI-powered task analysis"
        )

    return {
        "status": status,
        "configurationScore": score,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "configuration": {
            "github": {
                "webhookSecret": bool(settings.github_webhook_secret),
                "webhookSecretLength": len(settings.github_webhook_secret),
            },
            "linear": {
                "apiKey": bool(settings.linear_api_key),
                "apiKeyPrefix": _key_prefix(settings.linear_api_key),
                "teamId": bool(settings.linear_team_id),
                "defaultAssigneeId": bool(settings.linear_default_assignee_id),
                "defaultPriority": settings.linear_default_priority,
            },
            "ai": {
                "provider": settings.llm_provider,
                "apiKey": settings.llm_configured,
                "apiKeyPrefix": _key_prefix(settings.llm_api_key),
                "model": settings.llm_model,
                "baseUrl": settings.llm_base_url,
            },
            "app": {
                "logLevel": settings.log_level,
                "eventSinks": settings.event_sink_names,
            },
        },
        "recommendations": recommendations,
        "summary": {
            "configured": configured,
            "required": len(essentials),
        },
    }
