"""Dispatch of engine push events (progress and completion)."""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .base import ConversionResult, ProgressEvent

logger = logging.getLogger(__name__)

PROGRESS_EVENT = "conversion-progress"
COMPLETE_EVENT = "conversion-complete"

ProgressHandler = Callable[[ProgressEvent], None]
CompleteHandler = Callable[[ConversionResult], None]


class EngineEventRouter:
    """Fan-out of decoded engine events to registered handlers."""

    def __init__(self):
        self._progress_handlers: List[ProgressHandler] = []
        self._complete_handlers: List[CompleteHandler] = []

    def on_progress(self, handler: ProgressHandler) -> None:
        self._progress_handlers.append(handler)

    def on_complete(self, handler: CompleteHandler) -> None:
        self._complete_handlers.append(handler)

    def dispatch(self, event: str, payload: Dict[str, Any]) -> None:
        """Validate a raw payload and hand it to the handlers of its event.

        Unknown event names and malformed payloads are logged and dropped.
        """
        try:
            if event == PROGRESS_EVENT:
                progress = ProgressEvent.model_validate(payload)
                for handler in list(self._progress_handlers):
                    handler(progress)
            elif event == COMPLETE_EVENT:
                result = ConversionResult.model_validate(payload)
                for handler in list(self._complete_handlers):
                    handler(result)
            else:
                logger.debug("Ignoring engine event %r", event)
        except ValidationError as e:
            logger.warning("Malformed %s payload: %s", event, e)


def parse_sse_block(lines: List[str]) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Decode one server-sent event block into (event name, JSON payload).

    Returns:
        None for comment-only or data-less blocks
    """
    event = "message"
    data_lines = []
    for line in lines:
        if not line or line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if field == "event":
            event = value
        elif field == "data":
            data_lines.append(value)

    if not data_lines:
        return None
    try:
        return event, json.loads("\n".join(data_lines))
    except json.JSONDecodeError:
        logger.warning("Undecodable %s event data", event)
        return None
