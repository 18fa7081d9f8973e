"""
Message Wall

Decides whether an inbound group message dismisses the agent or is not
worth a reply. Dismissals also end the agent's engagement in the room.
"""

import re
from typing import Optional

from agent_recall.interaction.interest import InterestStore

LOSE_INTEREST_WORDS = (
    "shut up",
    "stop",
    "please shut up",
    "shut up please",
    "dont talk",
    "silence",
    "stop talking",
    "be quiet",
    "hush",
    "wtf",
    "chill",
    "stfu",
    "stupid bot",
    "dumb bot",
    "stop responding",
    "god damn it",
    "god damn",
    "goddamnit",
    "can you not",
    "can you stop",
    "hate you",
    "hate this",
    "fuck up",
)

IGNORE_RESPONSE_WORDS = ("lol", "nm", "uh", "wtf", "stfu", "dumb", "jfc", "omg")

LOSE_INTEREST_LENGTH = 100
SHORT_MESSAGE_LENGTH = 10
VERY_SHORT_MESSAGE_LENGTH = 2
IGNORE_RESPONSE_LENGTH = 4

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9\s]")


class MessageWall:
    def __init__(
        self,
        character_name: str,
        interests: InterestStore,
        bot_username: Optional[str] = None,
        bot_mention: Optional[str] = None,
    ):
        self.name = character_name.lower()
        self.interests = interests
        self.bot_username = bot_username
        self.bot_mention = bot_mention
        self.targeted_phrases = tuple(
            phrase.format(name=self.name)
            for phrase in (
                "{name} stop responding",
                "{name} stop talking",
                "{name} shut up",
                "{name} stfu",
                "{name} chill",
                "stop talking {name}",
                "shut up {name}",
                "stfu {name}",
                "chill {name}",
            )
        )

    def normalize(self, content: str) -> str:
        """Lowercase, map bot mentions/username to the character name, drop punctuation."""
        text = content.lower()
        if self.bot_mention:
            text = re.sub(re.escape(self.bot_mention), self.name, text, flags=re.IGNORECASE)
        if self.bot_username:
            text = re.sub(rf"\b{re.escape(self.bot_username.lower())}\b", self.name, text)
        return _NON_ALNUM.sub("", text)

    def is_dismissive(self, room_id: str, content: str) -> bool:
        text = self.normalize(content)

        lost_interest = len(text) < LOSE_INTEREST_LENGTH and any(w in text for w in LOSE_INTEREST_WORDS)
        asked_to_stop = any(phrase in text for phrase in self.targeted_phrases)
        if lost_interest or asked_to_stop:
            self.interests.disengage(room_id)
            return True

        engaged = self.interests.is_engaged(room_id)
        if not engaged and len(text) < SHORT_MESSAGE_LENGTH:
            return True
        if engaged and len(text) < VERY_SHORT_MESSAGE_LENGTH:
            return True

        raw = content.lower()
        return len(content) < IGNORE_RESPONSE_LENGTH and any(w in raw for w in IGNORE_RESPONSE_WORDS)
