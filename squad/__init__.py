"""
Squad module: agent personas, routing between them, and salesperson assignment.
"""

from .agents import Agent, AgentConfig, AgentCatalog, build_default_catalog
from .router import AgentRouter
from .assignment import (
    Salesperson,
    AssignmentPolicy,
    RoundRobinPolicy,
    LeastLoadedPolicy,
    ExpertiseMatchPolicy,
    create_policy,
    build_roster,
)

__all__ = [
    "Agent",
    "AgentConfig",
    "AgentCatalog",
    "build_default_catalog",
    "AgentRouter",
    "Salesperson",
    "AssignmentPolicy",
    "RoundRobinPolicy",
    "LeastLoadedPolicy",
    "ExpertiseMatchPolicy",
    "create_policy",
    "build_roster",
]
