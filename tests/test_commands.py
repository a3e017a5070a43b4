import shutil
from pathlib import Path
from unittest.mock import patch

import pytest
from typer import Exit
from typer.testing import CliRunner

from purrclaw.cli.commands import _make_provider, app
from purrclaw.config.schema import Config

runner = CliRunner()


@pytest.fixture
def mock_paths():
    """Mock config/workspace paths for test isolation."""
    with patch("purrclaw.config.loader.get_config_path") as mock_cp, \
         patch("purrclaw.config.loader.save_config") as mock_sc, \
         patch("purrclaw.config.loader.load_config") as mock_lc, \
         patch("purrclaw.utils.helpers.get_workspace_path") as mock_ws:

        base_dir = Path("./test_onboard_data")
        if base_dir.exists():
            shutil.rmtree(base_dir)
        base_dir.mkdir()

        config_file = base_dir / "config.json"
        workspace_dir = base_dir / "workspace"

        mock_cp.return_value = config_file
        mock_ws.return_value = workspace_dir
        mock_lc.return_value = Config()
        mock_sc.side_effect = lambda config: config_file.write_text("{}")

        yield config_file, workspace_dir

        if base_dir.exists():
            shutil.rmtree(base_dir)


def test_onboard_fresh_install(mock_paths):
    """No existing config — should create from scratch."""
    config_file, workspace_dir = mock_paths

    result = runner.invoke(app, ["onboard"])

    assert result.exit_code == 0
    assert "Created config" in result.stdout
    assert "Created workspace" in result.stdout
    assert "purrclaw is ready" in result.stdout
    assert config_file.exists()
    assert (workspace_dir / "AGENTS.md").exists()
    assert (workspace_dir / "SOUL.md").exists()
    assert (workspace_dir / "data").is_dir()


def test_onboard_existing_config_refresh(mock_paths):
    """Config exists, user declines overwrite — should refresh (load-merge-save)."""
    config_file, workspace_dir = mock_paths
    config_file.write_text('{"existing": true}')

    result = runner.invoke(app, ["onboard"], input="n\n")

    assert result.exit_code == 0
    assert "Config already exists" in result.stdout
    assert "existing values preserved" in result.stdout
    assert (workspace_dir / "AGENTS.md").exists()


def test_onboard_existing_config_overwrite(mock_paths):
    """Config exists, user confirms overwrite — should reset to defaults."""
    config_file, workspace_dir = mock_paths
    config_file.write_text('{"existing": true}')

    result = runner.invoke(app, ["onboard"], input="y\n")

    assert result.exit_code == 0
    assert "Config reset to defaults" in result.stdout
    assert workspace_dir.exists()


def test_onboard_existing_workspace_safe_create(mock_paths):
    """Workspace exists — should not recreate, but still add missing templates."""
    config_file, workspace_dir = mock_paths
    workspace_dir.mkdir(parents=True)
    (workspace_dir / "SOUL.md").write_text("custom soul", encoding="utf-8")
    config_file.write_text("{}")

    result = runner.invoke(app, ["onboard"], input="n\n")

    assert result.exit_code == 0
    assert "Created workspace" not in result.stdout
    assert "Created AGENTS.md" in result.stdout
    assert (workspace_dir / "SOUL.md").read_text(encoding="utf-8") == "custom soul"


def test_status_shows_provider_lines(monkeypatch, tmp_path):
    cfg = Config()
    cfg.agents.defaults.workspace = str(tmp_path)
    cfg.providers.deepseek.api_key = "sk-deep"
    cfg.providers.fallback = "openai"

    fake_config_path = tmp_path / "config.json"
    fake_config_path.write_text("{}", encoding="utf-8")

    monkeypatch.setattr("purrclaw.config.loader.get_config_path", lambda: fake_config_path)
    monkeypatch.setattr("purrclaw.config.loader.load_config", lambda: cfg)

    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Model: deepseek-chat" in result.stdout
    assert "Primary provider: deepseek" in result.stdout
    assert "Fallback provider: openai" in result.stdout
    assert "deepseek: ✓" in result.stdout


def test_make_provider_exits_when_key_missing():
    with pytest.raises(Exit):
        _make_provider(Config())


def test_make_provider_surfaces_provider_creation_error(monkeypatch):
    cfg = Config()
    cfg.providers.primary = "anthropic"
    cfg.providers.anthropic.api_key = "test-key"

    monkeypatch.setattr(
        "purrclaw.providers.litellm_provider.LiteLLMProvider.__init__",
        lambda *args, **kwargs: (_ for _ in ()).throw(RuntimeError("provider init failed")),
    )

    with pytest.raises(RuntimeError, match="provider init failed"):
        _make_provider(cfg)


def test_agent_single_message(monkeypatch, tmp_path):
    from purrclaw.providers.base import LLMProvider, LLMResponse

    class EchoProvider(LLMProvider):
        def get_default_model(self) -> str:
            return "test/echo"

        async def chat(self, messages, tools=None, model=None, max_tokens=8192, temperature=0.7):
            return LLMResponse(content=f"echo: {messages[-1]['content']}")

    cfg = Config()
    cfg.agents.defaults.workspace = str(tmp_path / "workspace")
    monkeypatch.setattr("purrclaw.config.loader.load_config", lambda: cfg)
    monkeypatch.setattr("purrclaw.cli.commands._make_provider", lambda config: EchoProvider())

    result = runner.invoke(app, ["agent", "-m", "ping", "--no-markdown"])

    assert result.exit_code == 0
    assert "echo: ping" in result.stdout
    assert (tmp_path / "workspace" / "data" / "purrclaw.db").exists()
