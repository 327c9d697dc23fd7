"""Models listing endpoint - OpenAI compatible."""

import logging
import time

from ...core.registry import get_state

logger = logging.getLogger("turnproxy")

_LISTED_AT = int(time.time())


async def list_models() -> dict:
    """List configured models in OpenAI API format.

    GET /v1/models
    GET /models
    """
    logger.info("Received models list request")

    resolver = get_state().resolver
    models = []
    for route in resolver.routes:
        models.append({
            "id": route.name,
            "object": "model",
            "created": _LISTED_AT,
            "owned_by": route.owned_by,
        })

    return {
        "object": "list",
        "data": models,
    }
