from __future__ import annotations

import logging
import re
from typing import Iterable, Iterator

from .llm import ChatCompletionError


logger = logging.getLogger("consultation.relay")

LINE_BREAK = re.compile(r"\r\n|\r|\n")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def format_event(fragment: str) -> str:
    """
    Encode one streamed fragment as one server-sent event.

    Each line of the fragment becomes its own ``data:`` field; EventSource
    clients rejoin the fields with ``\\n`` so the event data is the fragment
    itself. An empty fragment yields an empty string (no event).
    """
    if not fragment:
        return ""
    lines = LINE_BREAK.split(fragment)
    return "".join(f"data: {line}\n" for line in lines) + "\n"


def relay_events(fragments: Iterable[str]) -> Iterator[str]:
    """
    Forward upstream fragments as SSE events, stopping quietly on upstream failure.
    """
    sent = 0
    try:
        for fragment in fragments:
            event = format_event(fragment)
            if not event:
                continue
            sent += 1
            yield event
    except ChatCompletionError as exc:
        logger.warning("Upstream stream failed after %d events: %s", sent, exc)
        return
    finally:
        close = getattr(fragments, "close", None)
        if close is not None:
            close()
    logger.debug("Relayed %d events", sent)
