"""
Inbound Message Model

The shape platform adapters hand to the MessageProcessor.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from agent_recall.models.memory import Media


class ReceivedMessage(BaseModel):
    raw_message_id: str
    raw_user_id: str
    user_name: str = ""
    user_screen_name: str = ""
    raw_room_id: str
    source: str = Field(..., description="Platform tag, e.g. 'telegram' or 'twitter'")
    text: str = ""
    attachments: List[Media] = Field(default_factory=list)
    in_reply_to: Optional[str] = Field(
        default=None,
        description="Raw platform id of the message being replied to",
    )
    created_at: Optional[int] = Field(default=None, description="Epoch milliseconds")
    message_url: Optional[str] = None
