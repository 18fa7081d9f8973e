"""
Generation Dispatch

Turns a composed context into a validated message response. The model
provider is a black box; this module owns the response schema and the
fallback policy.
"""

import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from agent_recall.llm.client import GenerationError, LLMClient, ModelClass
from agent_recall.models.memory import Content

logger = logging.getLogger("agent_recall.llm")

UTILITY_SYSTEM_PROMPT = "You are a helpful assistant. Follow the instructions exactly and respond only in JSON."


class MessageResponse(BaseModel):
    """Structured reply expected from the model."""
    response_analysis: str = Field(
        default="",
        description="Any type of analysis and reasoning for response generation comes here.",
    )
    text: str = Field(
        ...,
        description=(
            "Cleaned up response for the user. It should not include any analysis, "
            "reasoning or action names, it will be directly sent to the user."
        ),
    )
    user: str = Field(default="", description="Your name as a character.")
    action: Optional[str] = Field(default=None, description="The action to take.")


class ShouldRespond(str, Enum):
    RESPOND = "RESPOND"
    IGNORE = "IGNORE"
    STOP = "STOP"


class ShouldRespondResponse(BaseModel):
    analysis: str = Field(default="", description="A detailed analysis of your response")
    response: ShouldRespond


class GenerationDispatcher:
    def __init__(self, llm: LLMClient):
        self.llm = llm

    async def generate_message_response(
        self,
        context: str,
        tags: Optional[List[str]] = None,
        model_class: ModelClass = ModelClass.LARGE,
    ) -> Content:
        """
        Generate the agent's reply.

        Errors propagate; the caller decides whether the turn failed.
        """
        try:
            result = await self.llm.generate_object(context, MessageResponse, model_class)
        except Exception as e:
            logger.error(f"Error in generate_message_response (tags={tags or []}): {e}")
            raise

        extra = {"user": result.user} if result.user else {}
        return Content(text=result.text.strip(), action=result.action or None, **extra)

    async def generate_should_respond(
        self,
        context: str,
        model_class: ModelClass = ModelClass.SMALL,
    ) -> ShouldRespond:
        """RESPOND, IGNORE or STOP. Falls back to IGNORE if the model output is unusable."""
        try:
            result = await self.llm.generate_object(
                context,
                ShouldRespondResponse,
                model_class,
                system_prompt=UTILITY_SYSTEM_PROMPT,
            )
            return result.response
        except GenerationError as e:
            logger.error(f"Error in generate_should_respond: {e}")
            return ShouldRespond.IGNORE
