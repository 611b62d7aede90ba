"""Redis pub/sub publisher for collaboration events.

Channel: "{EVENT_CHANNEL_PREFIX}:{collaboration_id}". Publishing happens after
commit; a failure is logged and swallowed because the transition it reports
is already durable and visible through the history endpoint.
"""

import json
import logging

from redis.exceptions import RedisError

from config.settings import settings
from src.cs_common.redis_client import get_redis
from src.cs_flow.domain.events import FlowStateChanged, Milestone

logger = logging.getLogger(__name__)


def channel_for(collaboration_id: str) -> str:
    return f"{settings.EVENT_CHANNEL_PREFIX}:{collaboration_id}"


class RedisEventPublisher:
    async def publish(
        self, collaboration_id: str, events: list[FlowStateChanged | Milestone]
    ) -> None:
        if not events:
            return
        channel = channel_for(collaboration_id)
        try:
            redis = await get_redis()
            for event in events:
                await redis.publish(channel, json.dumps(event.to_dict()))
        except (RedisError, OSError):
            logger.warning(
                "Failed to publish %d event(s) on %s", len(events), channel, exc_info=True
            )
