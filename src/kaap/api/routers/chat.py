"""Chat endpoint.

One entry point serves three actions selected by ``action``:

- ``chat`` (default): server-sent events from the first model that can
  serve the turn
- ``test``: connectivity check for a model/credential pairing
- ``multi``: answers from several models plus a merged answer
"""

import json
from collections.abc import AsyncIterator
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from kaap.llm.errors import ChatError, classify_error
from kaap.services import TurnStream

from ..dependencies import Orchestrator
from ..schemas import ChatRequest, ConnectionTestResponse, FinishEvent, MultiResponse

logger = structlog.get_logger()

router = APIRouter(tags=["chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def _event(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def stream_events(stream: TurnStream, request_id: str) -> AsyncIterator[str]:
    """Serialize a turn stream as server-sent events.

    Errors after the first event cannot change the HTTP status, so they
    are reported as an ``error`` event. The provider stream is closed
    however the response ends, including client disconnects.

    Args:
        stream: Established turn stream
        request_id: Request ID for logging

    Yields:
        SSE ``data:`` lines, terminated by ``[DONE]``
    """
    try:
        yield _event({"type": "start", "model": stream.model_id})
        try:
            async for delta in stream:
                if delta.text:
                    yield _event({"type": "text-delta", "delta": delta.text, "model": stream.model_id})
        except ChatError as e:
            logger.warning("chat_stream_failed", request_id=request_id, model=stream.model_id, error=e.details)
            yield _event(
                {"type": "error", "error": e.message, "code": classify_error(e.details).code, "model": stream.model_id}
            )
        except Exception as e:
            logger.exception("chat_stream_failed", request_id=request_id, model=stream.model_id, error=str(e))
            yield _event(
                {"type": "error", "error": str(e), "code": classify_error(str(e)).code, "model": stream.model_id}
            )
        else:
            yield _event(FinishEvent.from_completion(stream.completion()).model_dump(by_alias=True))
            logger.info(
                "chat_stream_completed",
                request_id=request_id,
                model=stream.model_id,
                input_tokens=stream.usage.input_tokens,
                output_tokens=stream.usage.output_tokens,
            )
        yield "data: [DONE]\n\n"
    finally:
        await stream.aclose()


@router.post(
    "/chat",
    response_model=None,
    responses={
        200: {"description": "Event stream (chat), test result (test) or comparison (multi)"},
    },
)
async def chat(
    body: ChatRequest,
    request: Request,
    orchestrator: Orchestrator,
) -> Any:
    """Handle one chat turn.

    Args:
        body: Turn payload with the action discriminator
        request: Request instance
        orchestrator: Turn orchestrator

    Returns:
        StreamingResponse for ``chat``; JSON body for ``test`` and ``multi``

    Raises:
        ChatError: Turn failed before any output (rendered by the handler)
    """
    request_id = getattr(request.state, "request_id", "unknown")

    if body.action == "test":
        result = await orchestrator.test(body.to_connection_test())
        return ConnectionTestResponse(model=result.model, text=result.text).model_dump()

    if body.action == "multi":
        multi_result = await orchestrator.multi(body.to_multi_turn())
        return MultiResponse.from_result(multi_result).model_dump(by_alias=True, mode="json")

    stream = await orchestrator.chat(body.to_chat_turn())
    return StreamingResponse(
        stream_events(stream, request_id),
        media_type="text/event-stream",
        headers={**STREAM_HEADERS, "X-Model": stream.model_id},
    )
