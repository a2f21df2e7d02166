"""
Agent catalog for the dealership squad.

The catalog is built once at startup and handed to the router and the
HTTP layer explicitly. Entries are frozen.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional


class Agent(str, Enum):
    """Conversational personas a call can be assigned to."""
    LEAD_QUALIFIER = "leadQualifier"
    SALES_AGENT = "salesAgent"
    TEST_DRIVE_COORDINATOR = "testDriveCoordinator"
    FINANCE_SPECIALIST = "financeSpecialist"
    MANAGER = "manager"
    FOLLOW_UP_AGENT = "followUpAgent"
    END_CALL = "endCall"
    HUMAN_TRANSFER = "humanTransfer"

    @classmethod
    def parse(cls, value: Any) -> Optional["Agent"]:
        """Return the matching agent or None for unknown names."""
        if isinstance(value, Agent):
            return value
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_terminal(self) -> bool:
        return self in (Agent.END_CALL, Agent.HUMAN_TRANSFER)


@dataclass(frozen=True)
class AgentConfig:
    """Static description of one agent persona."""
    agent: Agent
    name: str
    role: str
    transfer_conditions: Mapping[str, Agent] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent": self.agent.value,
            "name": self.name,
            "role": self.role,
            "transfer_conditions": {k: v.value for k, v in self.transfer_conditions.items()},
        }


class AgentCatalog:
    """Immutable mapping of Agent -> AgentConfig."""

    def __init__(self, configs: Mapping[Agent, AgentConfig]):
        self._configs = MappingProxyType(dict(configs))

    def __getitem__(self, agent: Agent) -> AgentConfig:
        return self._configs[agent]

    def __contains__(self, agent: object) -> bool:
        return agent in self._configs

    def __iter__(self) -> Iterator[Agent]:
        return iter(self._configs)

    def __len__(self) -> int:
        return len(self._configs)

    def display_name(self, agent: Agent) -> str:
        config = self._configs.get(agent)
        return config.name if config else agent.value

    def to_dict(self) -> Dict[str, Any]:
        return {agent.value: config.to_dict() for agent, config in self._configs.items()}


def _conditions(**kwargs: Agent) -> Mapping[str, Agent]:
    return MappingProxyType(kwargs)


def build_default_catalog() -> AgentCatalog:
    """Car dealership squad configuration."""
    configs = [
        AgentConfig(
            Agent.LEAD_QUALIFIER,
            "Lead Qualifier",
            "Qualify potential customers and gather basic information",
            _conditions(qualified=Agent.SALES_AGENT, notInterested=Agent.FOLLOW_UP_AGENT,
                        urgent=Agent.MANAGER),
        ),
        AgentConfig(
            Agent.SALES_AGENT,
            "Sales Agent",
            "Handle qualified leads, show vehicles, and close sales",
            _conditions(testDrive=Agent.TEST_DRIVE_COORDINATOR, financing=Agent.FINANCE_SPECIALIST,
                        manager=Agent.MANAGER),
        ),
        AgentConfig(
            Agent.TEST_DRIVE_COORDINATOR,
            "Test Drive Coordinator",
            "Schedule and coordinate test drives",
            _conditions(scheduled=Agent.SALES_AGENT, unavailable=Agent.SALES_AGENT),
        ),
        AgentConfig(
            Agent.FINANCE_SPECIALIST,
            "Finance Specialist",
            "Handle financing, loans, and payment options",
            _conditions(approved=Agent.SALES_AGENT, declined=Agent.MANAGER),
        ),
        AgentConfig(
            Agent.MANAGER,
            "Sales Manager",
            "Handle escalated situations and special requests",
            _conditions(resolved=Agent.SALES_AGENT, followUp=Agent.FOLLOW_UP_AGENT),
        ),
        AgentConfig(
            Agent.FOLLOW_UP_AGENT,
            "Follow Up Agent",
            "Follow up with prospects and maintain relationships",
            _conditions(interested=Agent.SALES_AGENT, notInterested=Agent.END_CALL),
        ),
        AgentConfig(Agent.END_CALL, "End Call", "Close the conversation politely"),
        AgentConfig(Agent.HUMAN_TRANSFER, "Dealership Team", "Live transfer to a team member"),
    ]
    return AgentCatalog({c.agent: c for c in configs})
