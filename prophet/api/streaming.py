"""
Streaming Helpers
=================
Shared plumbing for the Server-Sent Events endpoints and the process-wide
inference gateway.
"""
import json
from typing import Optional

from prophet.llm.gateway import HttpInferenceGateway

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}

_gateway: Optional[HttpInferenceGateway] = None


def get_gateway() -> HttpInferenceGateway:
    """Process-wide gateway so the HTTP connection pool is shared across requests."""
    global _gateway
    if _gateway is None:
        _gateway = HttpInferenceGateway()
    return _gateway


async def close_gateway() -> None:
    global _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None


def sse_event(event: str, data: dict) -> str:
    """Format one SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"
