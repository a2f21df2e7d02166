"""
Tool-call handling for the voice platform.
"""

from .normalizer import (
    CanonicalArgs,
    FlatShape,
    ParametersShape,
    ShapeKind,
    ToolCallEnvelopeShape,
    UnrecognizedShape,
    normalize,
)
from .responses import Directive, DirectiveType, ToolCallResponse, ToolResult
from .dispatcher import FALLBACKS, ToolCallDispatcher, UNSUPPORTED_TEXT, monthly_payment, resolve_agent

__all__ = [
    "CanonicalArgs",
    "FlatShape",
    "ParametersShape",
    "ShapeKind",
    "ToolCallEnvelopeShape",
    "UnrecognizedShape",
    "normalize",
    "Directive",
    "DirectiveType",
    "ToolCallResponse",
    "ToolResult",
    "ToolCallDispatcher",
    "FALLBACKS",
    "UNSUPPORTED_TEXT",
    "monthly_payment",
    "resolve_agent",
]
