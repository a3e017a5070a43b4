"""Configuration schema using Pydantic."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AgentDefaults(Base):
    """Default agent configuration."""

    workspace: str = "~/.purrclaw/workspace"
    model: str = "deepseek-chat"
    max_tokens: int = 8192
    temperature: float = 0.7
    max_iterations: int = Field(default=20, ge=1)
    context_window: int = Field(default=65536, ge=1024)
    summary_message_threshold: int = Field(default=20, ge=1)
    summary_keep_last: int = Field(default=4, ge=1)


class AgentsConfig(Base):
    """Agent configuration."""

    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class ProviderConfig(Base):
    """LLM provider configuration."""

    api_key: str = ""
    api_base: str | None = None
    model: str | None = None
    extra_headers: dict[str, str] | None = None


ProviderName = Literal["deepseek", "openai", "openai_compat", "openrouter", "anthropic"]


class ProvidersConfig(Base):
    """Configuration for LLM providers."""

    primary: ProviderName = "deepseek"
    fallback: ProviderName | None = None
    deepseek: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openai_compat: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)

    def get(self, name: str) -> ProviderConfig | None:
        return getattr(self, name, None)


class WebSearchConfig(Base):
    """Web search tool configuration."""

    api_key: str = ""  # Brave Search API key
    max_results: int = 5


class WebToolsConfig(Base):
    """Web tools configuration."""

    search: WebSearchConfig = Field(default_factory=WebSearchConfig)


class ExecToolConfig(Base):
    """Shell exec tool configuration."""

    timeout: int = 60


class ToolsConfig(Base):
    """Tools configuration."""

    tool_timeout_seconds: float = Field(default=45.0, gt=0)
    web: WebToolsConfig = Field(default_factory=WebToolsConfig)
    exec: ExecToolConfig = Field(default_factory=ExecToolConfig)
    restrict_to_workspace: bool = True


class SubagentsConfig(Base):
    """Background subagent configuration."""

    max_concurrent_per_session: int = Field(default=3, ge=1)
    timeout_seconds: float = Field(default=120.0, ge=5)
    max_task_length: int = Field(default=8000, ge=1)
    retention_hours: float = Field(default=24.0, gt=0)
    cleanup_interval_seconds: float = Field(default=600.0, gt=0)


class RemindersConfig(Base):
    """Reminder scheduler configuration."""

    min_seconds: int = Field(default=5, ge=0)
    max_seconds: int = Field(default=60 * 60 * 24 * 30, ge=1)


class Config(BaseSettings):
    """Root configuration for purrclaw."""

    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    subagents: SubagentsConfig = Field(default_factory=SubagentsConfig)
    reminders: RemindersConfig = Field(default_factory=RemindersConfig)

    model_config = SettingsConfigDict(
        env_prefix="PURRCLAW_",
        env_nested_delimiter="__",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @property
    def workspace_path(self) -> Path:
        """Get expanded workspace path."""
        return Path(self.agents.defaults.workspace).expanduser()

    @property
    def db_path(self) -> Path:
        """SQLite database location inside the workspace."""
        return self.workspace_path / "data" / "purrclaw.db"
