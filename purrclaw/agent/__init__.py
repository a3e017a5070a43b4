"""Agent core module."""

from purrclaw.agent.compaction import ContextManager
from purrclaw.agent.context import ContextBuilder
from purrclaw.agent.loop import AgentLoop
from purrclaw.agent.scheduler import SessionScheduler
from purrclaw.agent.subagent import SubagentManager

__all__ = ["AgentLoop", "ContextBuilder", "ContextManager", "SessionScheduler", "SubagentManager"]
