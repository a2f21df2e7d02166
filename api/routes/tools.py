"""
Tool-call Routes for the voice platform.

Every endpoint answers 200 with a spoken result, whatever the body looks like.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from tool_calls.responses import ToolCallResponse

from ..middleware import metrics
from ..services import Services, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning(f"Tool call body on {request.url.path} is not JSON")
        return None


def _record(response: ToolCallResponse) -> None:
    if response.unsupported:
        outcome = "unsupported"
    elif response.error:
        outcome = "error"
    else:
        outcome = "ok"
    metrics.record_tool_call(response.function_name, outcome)

    extra = response.results[0].extra if response.results else {}
    if "leadScore" in extra:
        metrics.record_lead_score(extra["leadScore"])
    metrics.record_communications_scheduled(extra.get("communicationsScheduled") or 0)


async def _handle(request: Request, services: Services, function_name: str = None) -> Dict[str, Any]:
    body = await _read_body(request)
    response = await services.dispatcher.dispatch(body, function_name)
    _record(response)
    return response.to_dict()


@router.post("/vapi-tools")
async def tool_call(request: Request, services: Services = Depends(get_services)):
    """Tool call with the function named in the body."""
    return await _handle(request, services)


@router.post("/vapi-tools/tool-calls")
async def tool_call_envelope(request: Request, services: Services = Depends(get_services)):
    """Tool call wrapped in the platform's message.toolCalls envelope."""
    return await _handle(request, services)


@router.post("/vapi-tools/function/{function_name}")
async def named_tool_call(function_name: str, request: Request, services: Services = Depends(get_services)):
    """Tool call with the function named in the path."""
    return await _handle(request, services, function_name)


@router.get("/vapi-tools/functions")
async def list_functions(services: Services = Depends(get_services)):
    return {"functions": services.dispatcher.supported_functions}
