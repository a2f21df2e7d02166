"""
Tool-call response types.

Every answer to the voice platform carries at least one spoken result.
A directive tells the platform what to do with the call next.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class DirectiveType(str, Enum):
    NEXT_AGENT = "next_agent"
    END_CALL = "end_call"
    TRANSFER_PHONE = "transfer_phone"


@dataclass(frozen=True)
class Directive:
    """Routing instruction paired with the spoken result."""
    type: DirectiveType
    agent: Optional[str] = None
    phone_number: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        if self.agent:
            data["agent"] = self.agent
        if self.phone_number:
            data["phoneNumber"] = self.phone_number
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class ToolResult:
    tool_call_id: str
    result: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"toolCallId": self.tool_call_id, "result": self.result, **self.extra}


@dataclass
class ToolCallResponse:
    """What the dispatcher hands back to the HTTP layer."""
    results: List[ToolResult]
    directive: Optional[Directive] = None
    function_name: Optional[str] = None
    unsupported: bool = False
    error: bool = False

    @classmethod
    def single(
        cls,
        tool_call_id: str,
        result: str,
        directive: Optional[Directive] = None,
        **extra: Any,
    ) -> "ToolCallResponse":
        return cls(results=[ToolResult(tool_call_id, result, dict(extra))], directive=directive)

    @property
    def text(self) -> str:
        return self.results[0].result if self.results else ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"results": [r.to_dict() for r in self.results]}
        if self.directive is not None:
            data["directive"] = self.directive.to_dict()
        if self.unsupported:
            data["unsupported"] = True
        return data
