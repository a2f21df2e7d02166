"""
Agent Router for the dealership squad.

Deterministic decision table: (current agent, context) -> next agent.
No side effects; callers apply the result to the call session.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from .agents import Agent, AgentCatalog, build_default_catalog

logger = logging.getLogger(__name__)

Context = Mapping[str, Any]


class AgentRouter:
    """
    Decides which agent handles the next turn.

    Unknown current agents are treated as the lead qualifier so a live
    caller always lands somewhere. Missing context fields fall through to
    the default branch of the agent's rule.
    """

    def __init__(self, catalog: Optional[AgentCatalog] = None):
        self.catalog = catalog or build_default_catalog()
        self._rules: Dict[Agent, Callable[[Context], Agent]] = {
            Agent.LEAD_QUALIFIER: self._from_lead_qualifier,
            Agent.SALES_AGENT: self._from_sales_agent,
            Agent.TEST_DRIVE_COORDINATOR: lambda ctx: Agent.SALES_AGENT,
            Agent.FINANCE_SPECIALIST: self._from_finance_specialist,
            Agent.MANAGER: self._from_manager,
            Agent.FOLLOW_UP_AGENT: self._from_follow_up,
        }

    def route(self, current_agent: Any, context: Optional[Context] = None) -> Agent:
        """
        Compute the next agent.

        Args:
            current_agent: Agent or agent name; unknown values map to leadQualifier
            context: Conversation context (intent, customerType, urgency, stage)

        Returns:
            The next Agent
        """
        agent = Agent.parse(current_agent)
        if agent is None:
            logger.warning(f"Unknown current agent {current_agent!r}, routing as leadQualifier")
            agent = Agent.LEAD_QUALIFIER

        if agent.is_terminal:
            return agent

        ctx = context if isinstance(context, Mapping) else {}
        return self._rules[agent](ctx)

    @staticmethod
    def _from_lead_qualifier(ctx: Context) -> Agent:
        if ctx.get("urgency") == "high":
            return Agent.MANAGER
        if ctx.get("intent") == "buy" and ctx.get("customerType") == "qualified":
            return Agent.SALES_AGENT
        if ctx.get("intent") == "browse":
            return Agent.FOLLOW_UP_AGENT
        return Agent.SALES_AGENT

    @staticmethod
    def _from_sales_agent(ctx: Context) -> Agent:
        intent = ctx.get("intent")
        if intent == "testDrive":
            return Agent.TEST_DRIVE_COORDINATOR
        if intent == "financing":
            return Agent.FINANCE_SPECIALIST
        if ctx.get("urgency") == "high" or intent == "escalate":
            return Agent.MANAGER
        return Agent.SALES_AGENT

    @staticmethod
    def _from_finance_specialist(ctx: Context) -> Agent:
        intent = ctx.get("intent")
        if intent == "declined":
            return Agent.MANAGER
        return Agent.SALES_AGENT

    @staticmethod
    def _from_manager(ctx: Context) -> Agent:
        if ctx.get("intent") == "resolved":
            return Agent.SALES_AGENT
        return Agent.FOLLOW_UP_AGENT

    @staticmethod
    def _from_follow_up(ctx: Context) -> Agent:
        if ctx.get("intent") == "interested":
            return Agent.SALES_AGENT
        return Agent.END_CALL

    def transfer_message(self, agent: Agent) -> str:
        """Spoken line announcing a handoff to ``agent``."""
        if agent == Agent.END_CALL:
            return "Thank you for calling! We'll be in touch if anything comes up. Have a great day."
        if agent == Agent.HUMAN_TRANSFER:
            return "I'll connect you with one of our team members right away. Please hold for just a moment."
        name = self.catalog.display_name(agent)
        return f"I'll transfer you to our {name} who can better assist you with that."
