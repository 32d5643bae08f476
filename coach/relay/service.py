"""Relay business logic: forward one turn to the generation API."""

import logging
import time

from coach.llm.client import LLMConfigurationError, LLMError, get_llm_client
from coach.relay.errors import RelayError

logger = logging.getLogger(__name__)


async def relay_turn(history: list[dict], system_prompt: str) -> str:
    """Send ``history`` with ``system_prompt`` and return the reply text.

    Raises RelayError carrying the status code and message for the caller.
    """
    try:
        client = get_llm_client()
    except LLMConfigurationError as e:
        raise RelayError(500, str(e)) from e

    start = time.time()
    try:
        reply = await client.generate(history, system_prompt)
    except LLMError as e:
        logger.error("API Error: status=%d body=%s", e.status_code, e.body)
        raise RelayError(e.status_code, f"API request failed: {e.body}") from e

    logger.info("Relayed turn: messages=%d latency_ms=%d", len(history), int((time.time() - start) * 1000))
    return reply
