import pytest
from pydantic import ValidationError

from purrclaw.config.schema import Config, SubagentsConfig


def test_defaults_match_runtime_limits():
    cfg = Config()
    assert cfg.agents.defaults.max_iterations == 20
    assert cfg.agents.defaults.context_window == 65536
    assert cfg.agents.defaults.summary_message_threshold == 20
    assert cfg.agents.defaults.summary_keep_last == 4
    assert cfg.tools.tool_timeout_seconds == 45
    assert cfg.subagents.max_concurrent_per_session == 3
    assert cfg.subagents.timeout_seconds == 120
    assert cfg.reminders.min_seconds == 5
    assert cfg.reminders.max_seconds == 30 * 24 * 3600


def test_camel_case_aliases_are_accepted():
    cfg = Config.model_validate({
        "agents": {"defaults": {"maxIterations": 7, "contextWindow": 4096}},
        "providers": {"primary": "openai", "fallback": "deepseek", "openai": {"apiKey": "sk-test"}},
        "tools": {"toolTimeoutSeconds": 10},
    })
    assert cfg.agents.defaults.max_iterations == 7
    assert cfg.agents.defaults.context_window == 4096
    assert cfg.providers.primary == "openai"
    assert cfg.providers.fallback == "deepseek"
    assert cfg.providers.get("openai").api_key == "sk-test"
    assert cfg.tools.tool_timeout_seconds == 10


def test_unknown_provider_name_is_rejected():
    with pytest.raises(ValidationError):
        Config.model_validate({"providers": {"primary": "nope"}})


def test_subagent_timeout_has_floor():
    with pytest.raises(ValidationError):
        SubagentsConfig(timeout_seconds=1)


def test_db_path_lives_in_workspace(tmp_path):
    cfg = Config()
    cfg.agents.defaults.workspace = str(tmp_path)
    assert cfg.workspace_path == tmp_path
    assert cfg.db_path == tmp_path / "data" / "purrclaw.db"
