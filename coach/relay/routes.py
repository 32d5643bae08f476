"""Relay endpoint: chat history in, model reply out."""

import logging

from fastapi import APIRouter, Depends

from coach.auth.dependencies import CurrentUser, get_relay_user
from coach.relay.errors import RelayError
from coach.relay.schemas import RelayErrorResponse, RelayRequest, RelayResponse
from coach.relay.service import relay_turn

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Relay"])

RELAY_PATH = "/api/v1/relay"
LEGACY_RELAY_PATH = "/.netlify/functions/callGemini"
RELAY_PATHS = (RELAY_PATH, LEGACY_RELAY_PATH)

_ERROR_RESPONSES = {
    401: {"model": RelayErrorResponse},
    500: {"model": RelayErrorResponse},
}


async def _relay(body: RelayRequest, user: CurrentUser) -> RelayResponse:
    history = [m.model_dump() for m in body.history]
    try:
        reply = await relay_turn(history, body.system_prompt)
    except RelayError:
        raise
    except Exception as e:
        logger.exception("Relay function error for user %s", user.id)
        raise RelayError(500, str(e)) from e
    return RelayResponse(response=reply)


@router.post(
    RELAY_PATH,
    response_model=RelayResponse,
    responses=_ERROR_RESPONSES,
    summary="Relay a chat turn",
    description="Forward the conversation history and a mode instruction to the generation API and return its reply.",
)
async def relay(body: RelayRequest, user: CurrentUser = Depends(get_relay_user)):
    return await _relay(body, user)


@router.post(
    LEGACY_RELAY_PATH,
    response_model=RelayResponse,
    responses=_ERROR_RESPONSES,
    include_in_schema=False,
)
async def relay_legacy_path(body: RelayRequest, user: CurrentUser = Depends(get_relay_user)):
    return await _relay(body, user)
