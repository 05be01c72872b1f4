"""Best-effort Redis pub/sub broadcasts for downstream consumers."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

ANALYSIS_COMPLETED_CHANNEL = "pubsub:analysis_completed"
LEVEL_UP_CHANNEL = "pubsub:level_up"


async def publish_event(redis: object | None, channel: str, payload: dict[str, Any]) -> bool:
    """Publish ``payload`` as JSON. Never raises; returns False when skipped or failed."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish %s broadcast", channel, exc_info=True)
        return False
    return True
