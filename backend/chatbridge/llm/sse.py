"""
Server-Sent-Events line framing.

WHAT: Turn one raw SSE line into a payload, a terminal marker, or nothing
WHY: Every SSE provider shares the same framing rules
HOW: Skip blanks/comments/event lines, strip the data prefix, recognize [DONE]
"""

from dataclasses import dataclass

DONE_TOKEN = "[DONE]"


@dataclass(frozen=True)
class SSELine:
    """A framed SSE line: either a JSON payload or the [DONE] marker."""
    payload: str = ""
    done: bool = False


def frame_sse_line(raw: str, *, require_data_prefix: bool = False) -> SSELine | None:
    """
    Frame one SSE line.

    Args:
        raw: The line as read from the body (without newline)
        require_data_prefix: Drop lines lacking a `data:` prefix instead of
            treating them as bare payloads

    Returns:
        SSELine, or None when the line carries nothing (blank, comment,
        `event:`/`id:`/`retry:` field)
    """
    line = raw.strip()
    if not line or line.startswith(":"):
        return None

    if line.startswith("data:"):
        payload = line[len("data:"):].strip()
    elif line.startswith(("event:", "id:", "retry:")):
        return None
    elif require_data_prefix:
        return None
    else:
        payload = line

    if not payload:
        return None
    if payload == DONE_TOKEN:
        return SSELine(done=True)
    return SSELine(payload=payload)
