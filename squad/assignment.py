"""
Salesperson assignment for qualified leads.

The roster is immutable configuration; policies decide who gets the lead.
"""

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Salesperson:
    """A member of the sales team."""
    name: str
    email: str
    phone: str
    expertise: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Salesperson":
        return cls(
            name=data["name"],
            email=data.get("email", ""),
            phone=data.get("phone", ""),
            expertise=tuple(data.get("expertise") or ()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "expertise": list(self.expertise),
        }

    def knows(self, make: Optional[str]) -> bool:
        if not make:
            return False
        return make.strip().lower() in {m.lower() for m in self.expertise}


DEFAULT_ROSTER: Tuple[Salesperson, ...] = (
    Salesperson("John Smith", "john.smith@dealership.com", "+1-555-0123",
                ("Toyota", "Honda", "Nissan")),
    Salesperson("Sarah Johnson", "sarah.johnson@dealership.com", "+1-555-0124",
                ("Mercedes-Benz", "BMW", "Audi")),
    Salesperson("Mike Wilson", "mike.wilson@dealership.com", "+1-555-0125",
                ("Ford", "Chevrolet", "GMC")),
)


def build_roster(entries: Iterable[Mapping[str, Any]]) -> Tuple[Salesperson, ...]:
    roster = tuple(Salesperson.from_dict(e) for e in entries)
    return roster or DEFAULT_ROSTER


class AssignmentPolicy(ABC):
    """Chooses a salesperson for a lead."""

    def __init__(self, roster: Sequence[Salesperson]):
        if not roster:
            raise ValueError("Salesperson roster is empty")
        self.roster: Tuple[Salesperson, ...] = tuple(roster)

    @abstractmethod
    def assign(self, customer: Optional[Mapping[str, Any]] = None) -> Salesperson:
        ...


class RoundRobinPolicy(AssignmentPolicy):
    """Rotate through the roster."""

    def __init__(self, roster: Sequence[Salesperson]):
        super().__init__(roster)
        self._cycle = itertools.cycle(self.roster)
        self._lock = threading.Lock()

    def assign(self, customer: Optional[Mapping[str, Any]] = None) -> Salesperson:
        with self._lock:
            return next(self._cycle)


class LeastLoadedPolicy(AssignmentPolicy):
    """Pick whoever has the fewest assignments so far; ties go to roster order."""

    def __init__(self, roster: Sequence[Salesperson]):
        super().__init__(roster)
        self._load: Counter = Counter()
        self._lock = threading.Lock()

    def assign(self, customer: Optional[Mapping[str, Any]] = None) -> Salesperson:
        with self._lock:
            chosen = min(self.roster, key=lambda p: self._load[p.name])
            self._load[chosen.name] += 1
            return chosen

    def load(self) -> Dict[str, int]:
        return {p.name: self._load[p.name] for p in self.roster}


class ExpertiseMatchPolicy(AssignmentPolicy):
    """Match the preferred make to a specialist, otherwise fall back to least loaded."""

    def __init__(self, roster: Sequence[Salesperson]):
        super().__init__(roster)
        self._fallback = LeastLoadedPolicy(roster)

    def assign(self, customer: Optional[Mapping[str, Any]] = None) -> Salesperson:
        make = _preferred_make(customer)
        specialists: List[Salesperson] = [p for p in self.roster if p.knows(make)]
        if specialists:
            return specialists[0]
        return self._fallback.assign(customer)


def _preferred_make(customer: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not customer:
        return None
    return customer.get("preferred_make") or customer.get("preferredMake")


POLICIES = {
    "round_robin": RoundRobinPolicy,
    "least_loaded": LeastLoadedPolicy,
    "expertise": ExpertiseMatchPolicy,
}


def create_policy(name: str, roster: Sequence[Salesperson]) -> AssignmentPolicy:
    policy_cls = POLICIES.get(name)
    if policy_cls is None:
        logger.warning(f"Unknown assignment policy {name!r}, using expertise match")
        policy_cls = ExpertiseMatchPolicy
    return policy_cls(roster)
