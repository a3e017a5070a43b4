import asyncio
from typing import Any

from purrclaw.agent.tools.base import Tool, ToolContext, ToolResult
from purrclaw.agent.tools.executor import ToolExecutor
from purrclaw.agent.tools.registry import ToolRegistry
from purrclaw.agent.tools.shell import ExecTool
from purrclaw.providers.base import ToolCallRequest

CTX = ToolContext(session_key="cli:test", channel="cli", chat_id="test")


class SleepTool(Tool):
    def __init__(self):
        self.cancelled = False

    @property
    def name(self) -> str:
        return "sleep"

    @property
    def description(self) -> str:
        return "Sleep then echo"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"seconds": {"type": "number"}, "label": {"type": "string"}},
            "required": ["seconds", "label"],
        }

    async def execute(self, context: ToolContext, seconds: float, label: str, **kwargs: Any) -> ToolResult:
        try:
            await asyncio.sleep(seconds)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return ToolResult.ok(label)


class BrokenTool(Tool):
    @property
    def name(self) -> str:
        return "broken"

    @property
    def description(self) -> str:
        return "Always raises"

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, context: ToolContext, **kwargs: Any) -> ToolResult:
        raise RuntimeError("disk on fire")


def _executor(*tools, timeout=1.0):
    registry = ToolRegistry()
    for tool in tools:
        registry.register(tool)
    return ToolExecutor(registry, default_timeout=timeout)


async def test_unknown_tool_is_error_result():
    result = await _executor().execute("nope", {}, CTX)

    assert result.is_error
    assert "not found" in result.for_llm


async def test_invalid_params_are_error_result():
    result = await _executor(SleepTool()).execute("sleep", {"seconds": "soon"}, CTX)

    assert result.is_error
    assert "missing required label" in result.for_llm
    assert "seconds should be number" in result.for_llm


async def test_tool_exception_is_error_result():
    result = await _executor(BrokenTool()).execute("broken", {}, CTX)

    assert result.is_error
    assert "disk on fire" in result.for_llm


async def test_timeout_cancels_the_tool():
    tool = SleepTool()
    ctx = ToolContext(session_key="cli:test", timeout=0.05)

    result = await _executor(tool).execute("sleep", {"seconds": 5, "label": "late"}, ctx)

    assert result.is_error
    assert "timed out" in result.for_llm
    assert tool.cancelled is True


async def test_execute_all_keeps_call_order():
    calls = [
        ToolCallRequest(id="c1", name="sleep", arguments={"seconds": 0.01, "label": "one"}),
        ToolCallRequest(id="c2", name="sleep", arguments={"seconds": 0.1, "label": "two"}),
        ToolCallRequest(id="c3", name="broken", arguments={}),
        ToolCallRequest(id="c4", name="sleep", arguments={"seconds": 0.0, "label": "four"}),
    ]

    results = await _executor(SleepTool(), BrokenTool()).execute_all(calls, CTX)

    assert [r.for_llm for r in results[:2]] == ["one", "two"]
    assert results[2].is_error
    assert results[3].for_llm == "four"


async def test_execute_all_runs_concurrently():
    calls = [
        ToolCallRequest(id=f"c{i}", name="sleep", arguments={"seconds": 0.2, "label": str(i)})
        for i in range(5)
    ]
    loop = asyncio.get_running_loop()
    started = loop.time()

    await _executor(SleepTool()).execute_all(calls, CTX)

    assert loop.time() - started < 0.8


async def test_registry_definitions_use_function_schema():
    registry = ToolRegistry()
    registry.register(SleepTool())

    definitions = registry.get_definitions()

    assert definitions[0]["type"] == "function"
    assert definitions[0]["function"]["name"] == "sleep"
    assert registry.tool_names == ["sleep"]
    assert "sleep" in registry


async def test_exec_tool_blocks_dangerous_commands(tmp_path):
    tool = ExecTool(working_dir=str(tmp_path), restrict_to_workspace=True)

    result = await tool.execute(CTX, command="sudo rm -rf /")

    assert result.is_error
    assert "safety guard" in result.for_llm


async def test_exec_tool_reports_output_and_exit_code(tmp_path):
    tool = ExecTool(working_dir=str(tmp_path))

    ok = await tool.execute(CTX, command="echo hello")
    failed = await tool.execute(CTX, command="exit 3")

    assert ok.for_llm.strip() == "hello"
    assert failed.is_error
    assert "Exit code: 3" in failed.for_llm


async def test_exec_tool_is_killed_when_executor_times_out(tmp_path):
    ctx = ToolContext(session_key="cli:test", timeout=0.2)
    executor = _executor(ExecTool(timeout=30, working_dir=str(tmp_path)))
    marker = tmp_path / "marker"

    result = await executor.execute("exec", {"command": f"sleep 1 && touch {marker}"}, ctx)
    await asyncio.sleep(1.2)

    assert result.is_error
    assert not marker.exists()
