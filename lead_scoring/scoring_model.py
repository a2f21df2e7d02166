"""
Lead Scoring Model for the dealership squad.

Rule-based, additive scoring of caller-supplied attributes. Each bucket is
independently capped and the total is clamped to 0-100.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeadQualification:
    """Lead qualification result."""
    score: int  # 0-100
    qualified: bool
    action_items: List[str] = field(default_factory=list)
    breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "score": self.score,
            "qualified": self.qualified,
            "action_items": list(self.action_items),
            "breakdown": dict(self.breakdown),
        }


def parse_amount(value: Any) -> float:
    """Parse a budget-like value ("$35,000", 35000, "35k") into a float, 0 if unusable."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().lower().replace(",", "").replace("$", "")
    match = re.match(r"^(\d+(?:\.\d+)?)\s*(k)?$", text)
    if not match:
        return 0.0
    amount = float(match.group(1))
    if match.group(2):
        amount *= 1000
    return amount


class LeadScorer:
    """
    Scores leads from partially populated caller attributes.

    Scoring Rules (0-100):
    - Budget: >=50k +30, >=35k +25, >=25k +20, >=15k +15, >0 +10
    - Timeline: today/now/immediate +25, week/soon +20, month +15, quarter +10
    - Intent: buy +20, finance +15, test_drive +10, browse +5
    - Vehicle specificity: stock number +15, year+make+model +12,
      make+model +10, make or type alone +5
    - Contact: email+phone +10, phone +7, email +5

    Qualification is independent of the score:
    qualified = budget > threshold OR urgency == "high"
    """

    BUDGET_TIERS = [(50000, 30), (35000, 25), (25000, 20), (15000, 15)]
    BUDGET_ANY = 10

    # Whole words only: "know" must not read as "now"
    TIMELINE_RULES = [
        (re.compile(r"\b(today|now|immediate|immediately|asap)\b"), 25),
        (re.compile(r"\b(weeks?|weekend|soon)\b"), 20),
        (re.compile(r"\bmonths?\b"), 15),
        (re.compile(r"\bquarters?\b"), 10),
    ]

    INTENT_SCORES = {
        "buy": 20,
        "finance": 15,
        "test_drive": 10,
        "browse": 5,
    }

    MAX_SCORE = 100

    def __init__(self, budget_threshold: float = 20000):
        """
        Initialize the lead scorer.

        Args:
            budget_threshold: Budget above which a lead counts as qualified
        """
        self.budget_threshold = budget_threshold

    def score(self, customer_info: Optional[Mapping[str, Any]]) -> LeadQualification:
        """
        Calculate lead score, qualification and action items.

        Missing fields are zero-weight, never errors.

        Args:
            customer_info: Caller attributes (camelCase keys as sent by the voice platform)

        Returns:
            LeadQualification
        """
        info = customer_info or {}
        breakdown = {
            "budget": self._score_budget(info),
            "timeline": self._score_timeline(info),
            "intent": self._score_intent(info),
            "vehicle": self._score_vehicle(info),
            "contact": self._score_contact(info),
        }
        total = min(sum(breakdown.values()), self.MAX_SCORE)

        return LeadQualification(
            score=total,
            qualified=self.is_qualified(info),
            action_items=self.action_items(info),
            breakdown=breakdown,
        )

    def is_qualified(self, info: Mapping[str, Any]) -> bool:
        budget = parse_amount(info.get("budget"))
        return budget > self.budget_threshold or info.get("urgency") == "high"

    def _score_budget(self, info: Mapping[str, Any]) -> int:
        budget = parse_amount(info.get("budget"))
        for floor, points in self.BUDGET_TIERS:
            if budget >= floor:
                return points
        return self.BUDGET_ANY if budget > 0 else 0

    def _score_timeline(self, info: Mapping[str, Any]) -> int:
        timeline = str(info.get("timeline") or "").lower()
        if not timeline:
            return 0
        for pattern, points in self.TIMELINE_RULES:
            if pattern.search(timeline):
                return points
        return 0

    def _score_intent(self, info: Mapping[str, Any]) -> int:
        return self.INTENT_SCORES.get(str(info.get("intent") or ""), 0)

    def _score_vehicle(self, info: Mapping[str, Any]) -> int:
        make = info.get("preferredMake")
        model = info.get("preferredModel")
        if info.get("stockNumber"):
            return 15
        if info.get("preferredYear") and make and model:
            return 12
        if make and model:
            return 10
        if make or info.get("vehicleType"):
            return 5
        return 0

    def _score_contact(self, info: Mapping[str, Any]) -> int:
        email = info.get("email")
        phone = info.get("phoneNumber")
        if email and phone:
            return 10
        if phone:
            return 7
        if email:
            return 5
        return 0

    def action_items(self, info: Mapping[str, Any]) -> List[str]:
        """Follow-up hints, urgent items first and data-completeness items last."""
        items: List[str] = []
        timeline = str(info.get("timeline") or "").lower()

        if info.get("intent") == "buy" or "today" in timeline:
            items.append("Priority follow-up - customer ready to buy")

        if info.get("stockNumber"):
            items.append(f"Check availability of stock #{info['stockNumber']}")

        if parse_amount(info.get("budget")) > 40000:
            items.append("Discuss financing options and warranties")

        if info.get("preferredMake") and info.get("preferredModel"):
            items.append(f"Show all {info['preferredMake']} {info['preferredModel']} options")

        if info.get("intent") == "test_drive":
            items.append("Schedule test drive appointment")

        if not info.get("email"):
            items.append("Collect email address for follow-up")

        return items
