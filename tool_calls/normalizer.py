"""
Inbound tool-call request shapes.

The voice platform has delivered tool arguments in three layouts over
time. Each layout is its own shape class; ``normalize`` picks exactly one,
in precedence order, and never merges fields across shapes:

1. ParametersShape   {"parameters": {...}}
2. ToolCallEnvelopeShape {"message": {"toolCalls": [{"id", "function": {"name", "arguments"}}]}}
3. FlatShape         {...arguments at the root...}

Anything else becomes an UnrecognizedShape, which still yields empty
canonical arguments so the dispatcher can answer the caller.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_TOOL_CALL_ID = "default"


class ShapeKind(str, Enum):
    PARAMETERS = "parameters"
    TOOL_CALL_ENVELOPE = "tool_call_envelope"
    FLAT = "flat"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class CanonicalArgs:
    """Arguments every handler works from."""
    function_name: Optional[str]
    tool_call_id: str
    call_id: Optional[str]
    customer_info: Dict[str, Any]
    context: Dict[str, Any]
    arguments: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.arguments.get(key, default)


def _as_dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _canonical(function_name: Optional[str], tool_call_id: Optional[str],
               arguments: Mapping[str, Any], fallback_call_id: Optional[str] = None) -> CanonicalArgs:
    args = _as_dict(arguments)
    context = _as_dict(args.get("conversationContext")) or _as_dict(args.get("context"))
    return CanonicalArgs(
        function_name=function_name,
        tool_call_id=tool_call_id or args.get("toolCallId") or DEFAULT_TOOL_CALL_ID,
        call_id=args.get("callId") or fallback_call_id,
        customer_info=_as_dict(args.get("customerInfo")),
        context=context,
        arguments=args,
    )


@dataclass(frozen=True)
class ParametersShape:
    parameters: Dict[str, Any]
    function_name: Optional[str] = None
    kind: ShapeKind = ShapeKind.PARAMETERS

    def canonical(self) -> CanonicalArgs:
        return _canonical(self.function_name, None, self.parameters)


@dataclass(frozen=True)
class ToolCallEnvelopeShape:
    tool_call: Dict[str, Any]
    platform_call_id: Optional[str] = None
    function_name: Optional[str] = None
    kind: ShapeKind = ShapeKind.TOOL_CALL_ENVELOPE

    def canonical(self) -> CanonicalArgs:
        function = _as_dict(self.tool_call.get("function"))
        arguments = function.get("arguments")
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments) if arguments.strip() else {}
            except json.JSONDecodeError:
                logger.warning("Tool call arguments are not valid JSON, ignoring them")
                arguments = {}
        return _canonical(
            function.get("name") or self.function_name,
            self.tool_call.get("id"),
            _as_dict(arguments),
            fallback_call_id=self.platform_call_id,
        )


@dataclass(frozen=True)
class FlatShape:
    body: Dict[str, Any]
    function_name: Optional[str] = None
    kind: ShapeKind = ShapeKind.FLAT

    def canonical(self) -> CanonicalArgs:
        return _canonical(self.function_name, None, self.body)


@dataclass(frozen=True)
class UnrecognizedShape:
    reason: str
    function_name: Optional[str] = None
    kind: ShapeKind = ShapeKind.UNRECOGNIZED

    def canonical(self) -> CanonicalArgs:
        return _canonical(self.function_name, None, {})


def _first_tool_call(body: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
    message = body.get("message")
    if not isinstance(message, Mapping):
        return None
    tool_calls = message.get("toolCalls") or message.get("toolCallList")
    if isinstance(tool_calls, list) and tool_calls and isinstance(tool_calls[0], Mapping):
        return dict(tool_calls[0])
    return None


def normalize(raw: Any, function_name: Optional[str] = None):
    """
    Classify a raw request body.

    Args:
        raw: Decoded JSON body
        function_name: Function named by the endpoint path, if any

    Returns:
        One of ParametersShape, ToolCallEnvelopeShape, FlatShape, UnrecognizedShape
    """
    if not isinstance(raw, Mapping):
        return UnrecognizedShape(reason=f"body is {type(raw).__name__}", function_name=function_name)
    if not raw:
        return UnrecognizedShape(reason="empty body", function_name=function_name)

    name = function_name or raw.get("function") or raw.get("name")
    if not isinstance(name, str):
        name = None

    parameters = raw.get("parameters")
    if isinstance(parameters, Mapping):
        return ParametersShape(parameters=dict(parameters), function_name=name)

    tool_call = _first_tool_call(raw)
    if tool_call is not None:
        call = _as_dict(_as_dict(raw.get("message")).get("call"))
        return ToolCallEnvelopeShape(
            tool_call=tool_call, platform_call_id=call.get("id"), function_name=name
        )

    if "message" in raw and isinstance(raw["message"], Mapping):
        return UnrecognizedShape(reason="message without tool calls", function_name=name)

    return FlatShape(body=dict(raw), function_name=name)
