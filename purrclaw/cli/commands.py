"""CLI commands for purrclaw."""

import asyncio
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown

from purrclaw import __logo__, __version__

app = typer.Typer(
    name="purrclaw",
    help=f"{__logo__} purrclaw - Conversational Agent Runtime",
    no_args_is_help=True,
)

console = Console()
EXIT_COMMANDS = {"exit", "quit", "/exit", "/quit", ":q"}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} purrclaw v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """purrclaw - Conversational Agent Runtime."""
    pass


# ============================================================================
# Onboard / Setup
# ============================================================================


@app.command()
def onboard():
    """Initialize purrclaw configuration and workspace."""
    from purrclaw.config import loader
    from purrclaw.config.schema import Config
    from purrclaw.utils import helpers

    config_path = loader.get_config_path()

    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if typer.confirm("Overwrite with defaults?"):
            loader.save_config(Config())
            console.print(f"[green]✓[/green] Config reset to defaults at {config_path}")
        else:
            config = loader.load_config()
            loader.save_config(config)
            console.print(f"[green]✓[/green] Config refreshed at {config_path} (existing values preserved)")
    else:
        loader.save_config(Config())
        console.print(f"[green]✓[/green] Created config at {config_path}")

    workspace = helpers.get_workspace_path()
    if not workspace.exists():
        workspace.mkdir(parents=True, exist_ok=True)
        console.print(f"[green]✓[/green] Created workspace at {workspace}")

    _create_workspace_templates(workspace)

    console.print(f"\n{__logo__} purrclaw is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your API key to [cyan]~/.purrclaw/config.json[/cyan]")
    console.print('     e.g. "providers": {"deepseek": {"apiKey": "sk-..."}}')
    console.print('  2. Chat: [cyan]purrclaw agent -m "Hello!"[/cyan]')


def _create_workspace_templates(workspace: Path):
    """Create default workspace bootstrap files if missing."""
    templates = {
        "AGENTS.md": """# Agent Instructions

You are a helpful AI assistant. Be concise, accurate, and friendly.

## Guidelines

- Always explain what you're doing before taking actions
- Ask for clarification when the request is ambiguous
- Use tools to help accomplish tasks
- Remember important information with memory_write
- Use reminder_create for anything the user wants to be reminded of later
- Delegate long independent work with spawn_subagent and poll it with subagent_status
""",
        "SOUL.md": """# Soul

I am PurrClaw, a lightweight AI assistant.

## Personality

- Helpful and friendly
- Concise and to the point
- Curious and eager to learn

## Values

- Accuracy over speed
- User privacy and safety
- Transparency in actions
""",
        "USER.md": """# User

Information about the user goes here.

## Preferences

- Communication style: (casual/formal)
- Timezone: (your timezone)
- Language: (your preferred language)
""",
    }

    for filename, content in templates.items():
        file_path = workspace / filename
        if not file_path.exists():
            file_path.write_text(content, encoding="utf-8")
            console.print(f"  [dim]Created {filename}[/dim]")

    (workspace / "data").mkdir(exist_ok=True)


def _make_provider(config):
    """Create the configured provider, exiting with a hint when keys are missing."""
    from purrclaw.providers.factory import create_provider

    try:
        return create_provider(config)
    except RuntimeError as e:
        if "No API key configured" not in str(e):
            raise
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _make_runtime(config):
    """Wire store, provider, scheduler, subagents, reminders and the agent loop."""
    from purrclaw.agent.loop import AgentLoop
    from purrclaw.agent.scheduler import SessionScheduler
    from purrclaw.agent.subagent import SubagentManager
    from purrclaw.reminders.service import ReminderService
    from purrclaw.session.store import SQLiteStore

    provider = _make_provider(config)
    defaults = config.agents.defaults
    store = SQLiteStore(config.db_path)
    subagents = SubagentManager(
        max_concurrent_per_session=config.subagents.max_concurrent_per_session,
        timeout_seconds=config.subagents.timeout_seconds,
        max_task_length=config.subagents.max_task_length,
        retention_seconds=config.subagents.retention_hours * 3600,
        cleanup_interval_seconds=config.subagents.cleanup_interval_seconds,
    )
    reminders = ReminderService(
        store,
        min_seconds=config.reminders.min_seconds,
        max_seconds=config.reminders.max_seconds,
    )
    agent_loop = AgentLoop(
        provider=provider,
        workspace=config.workspace_path,
        store=store,
        model=defaults.model,
        max_iterations=defaults.max_iterations,
        temperature=defaults.temperature,
        max_tokens=defaults.max_tokens,
        context_window=defaults.context_window,
        summary_message_threshold=defaults.summary_message_threshold,
        summary_keep_last=defaults.summary_keep_last,
        tool_timeout=config.tools.tool_timeout_seconds,
        brave_api_key=config.tools.web.search.api_key or None,
        exec_config=config.tools.exec,
        restrict_to_workspace=config.tools.restrict_to_workspace,
        scheduler=SessionScheduler(),
        subagents=subagents,
        reminders=reminders,
    )
    return agent_loop


async def _start_runtime(agent_loop) -> None:
    agent_loop.workspace.mkdir(parents=True, exist_ok=True)
    await agent_loop.store.init()

    async def _notify(channel: str, chat_id: str, text: str) -> None:
        console.print(f"\n[bold yellow]{text}[/bold yellow] [dim]({channel}:{chat_id})[/dim]")

    agent_loop.reminders.set_notifier(_notify)
    await agent_loop.reminders.start()
    agent_loop.subagents.start()


async def _stop_runtime(agent_loop) -> None:
    await agent_loop.reminders.stop()
    await agent_loop.subagents.stop()
    await agent_loop.scheduler.drain()
    await agent_loop.close()


def _print_agent_response(response: str, render_markdown: bool) -> None:
    content = response or ""
    body = Markdown(content) if render_markdown else content
    console.print()
    console.print(f"[cyan]{__logo__} purrclaw[/cyan]")
    console.print(body)
    console.print()


# ============================================================================
# Agent Commands
# ============================================================================


@app.command()
def agent(
    message: str = typer.Option(None, "--message", "-m", help="Message to send to the agent"),
    session_id: str = typer.Option("cli:direct", "--session", "-s", help="Session ID"),
    markdown: bool = typer.Option(True, "--markdown/--no-markdown", help="Render assistant output as Markdown"),
    logs: bool = typer.Option(False, "--logs/--no-logs", help="Show purrclaw runtime logs during chat"),
):
    """Interact with the agent directly."""
    from purrclaw.config.loader import load_config

    config = load_config()
    agent_loop = _make_runtime(config)

    if logs:
        logger.enable("purrclaw")
    else:
        logger.disable("purrclaw")

    channel, _, chat_id = session_id.partition(":")
    channel, chat_id = channel or "cli", chat_id or "direct"

    async def _on_update(text: str, is_final: bool) -> None:
        if not is_final and text:
            console.print(f"  [dim]↳ {text}[/dim]")

    async def run_once():
        await _start_runtime(agent_loop)
        try:
            with console.status("[dim]purrclaw is thinking...[/dim]", spinner="dots"):
                response = await agent_loop.process_direct(
                    message, session_id, channel=channel, chat_id=chat_id, on_update=_on_update
                )
            _print_agent_response(response, render_markdown=markdown)
        finally:
            await _stop_runtime(agent_loop)

    async def run_interactive():
        await _start_runtime(agent_loop)
        console.print(f"{__logo__} Interactive mode (type [bold]exit[/bold] or [bold]Ctrl+C[/bold] to quit)\n")
        try:
            while True:
                try:
                    user_input = await asyncio.to_thread(console.input, "[bold blue]You:[/bold blue] ")
                except (EOFError, KeyboardInterrupt):
                    console.print("\nGoodbye!")
                    break
                command = user_input.strip()
                if not command:
                    continue
                if command.lower() in EXIT_COMMANDS:
                    console.print("\nGoodbye!")
                    break
                try:
                    response = await agent_loop.process_direct(
                        user_input, session_id, channel=channel, chat_id=chat_id, on_update=_on_update
                    )
                except Exception as e:
                    console.print(f"[red]Error: {e}[/red]")
                    continue
                _print_agent_response(response, render_markdown=markdown)
        finally:
            await _stop_runtime(agent_loop)

    if message:
        asyncio.run(run_once())
    else:
        asyncio.run(run_interactive())


# ============================================================================
# Status Commands
# ============================================================================


@app.command()
def status():
    """Show purrclaw status."""
    from purrclaw.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()
    workspace = config.workspace_path

    console.print(f"{__logo__} purrclaw Status\n")

    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")
    console.print(f"Workspace: {workspace} {'[green]✓[/green]' if workspace.exists() else '[red]✗[/red]'}")
    console.print(f"Database: {config.db_path} {'[green]✓[/green]' if config.db_path.exists() else '[dim]not created[/dim]'}")

    if config_path.exists():
        console.print(f"Model: {config.agents.defaults.model}")
        console.print(f"Primary provider: {config.providers.primary}")
        console.print(f"Fallback provider: {config.providers.fallback or '[dim]none[/dim]'}")

        for name in ("deepseek", "openai", "openai_compat", "openrouter", "anthropic"):
            p = config.providers.get(name)
            has_key = bool(p and p.api_key)
            console.print(f"{name}: {'[green]✓[/green]' if has_key else '[dim]not set[/dim]'}")


if __name__ == "__main__":
    app()
