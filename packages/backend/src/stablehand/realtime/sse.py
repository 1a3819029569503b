"""SSE (Server-Sent Events) wire format.

Learn: text/event-stream frames are plain text blocks separated by a blank
line. We use two kinds:

    event: horses:updated
    data: {"id": 7, "name": "Juniper"}

    : heartbeat

The comment form (leading colon) is ignored by EventSource, which makes it
a cheap keep-alive for proxies that kill idle connections.
"""

import json
from typing import Any, Iterable, Iterator, Optional

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable nginx response buffering
}


def _dumps(data: Any) -> str:
    # Compact JSON never contains a raw newline, so one data: line suffices
    return json.dumps(data, separators=(",", ":"), default=str)


def format_event(name: str, data: Any) -> str:
    """Format one named event as an SSE frame."""
    return f"event: {name}\ndata: {_dumps(data)}\n\n"


def format_comment(text: str) -> str:
    """Format a comment frame (ignored by consumers)."""
    return f": {text}\n\n"


HEARTBEAT_FRAME = format_comment("heartbeat")


def parse_stream(lines: Iterable[str]) -> Iterator[tuple[Optional[str], Any]]:
    """Parse SSE lines into (event_name, data) tuples.

    Consumer-side counterpart of format_event(), used by the CLI tail
    command. Comment lines are skipped; `data:` lines are JSON-decoded
    (falling back to the raw string). Frames without data are dropped.
    """
    event: Optional[str] = None
    data_lines: list[str] = []

    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line:
            if data_lines:
                text = "\n".join(data_lines)
                try:
                    yield event, json.loads(text)
                except json.JSONDecodeError:
                    yield event, text
            event, data_lines = None, []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)
