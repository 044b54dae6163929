from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from loguru import logger


@dataclass
class EngineEvent:
    type: str
    payload: Dict[str, Any]


EventSink = Callable[[EngineEvent], Awaitable[None]]


async def default_event_sink(event: EngineEvent) -> None:
    logger.debug("Engine event: {}", event)
