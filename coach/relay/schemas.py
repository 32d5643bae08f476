"""Pydantic schemas for the relay endpoint."""

from pydantic import BaseModel, ConfigDict, Field

from coach.conversations.schemas import Message


class RelayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    history: list[Message]
    system_prompt: str = Field(alias="systemPrompt")


class RelayResponse(BaseModel):
    response: str


class RelayErrorResponse(BaseModel):
    error: str
