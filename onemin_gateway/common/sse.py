"""
Server-Sent Events framing
"""

from __future__ import annotations

import json
from typing import Any, Optional

SSE_DONE = b"data: [DONE]\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(data: Any, event: Optional[str] = None) -> bytes:
    """
    Frame one SSE event.

    Args:
        data: JSON-serialisable payload
        event: Optional event name (`event:` line)
    """
    payload = json.dumps(data, ensure_ascii=False)
    if event:
        return f"event: {event}\ndata: {payload}\n\n".encode("utf-8")
    return f"data: {payload}\n\n".encode("utf-8")
