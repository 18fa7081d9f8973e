"""
Outbound Delivery Helpers

Platform adapters split long replies to fit their message limits and
record one memory per sent chunk.
"""

from typing import List, Optional
from uuid import UUID

from agent_recall.identity import to_stable_id
from agent_recall.models.memory import Content, Memory, now_ms

MAX_MESSAGE_LENGTH = 4096
CONTINUE_ACTION = "CONTINUE"


def _split_on(text: str, separator: str, max_length: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    for part in text.split(separator):
        candidate = f"{current}{separator}{part}" if current else part
        if len(candidate) <= max_length:
            current = candidate
            continue
        if current:
            chunks.append(current)
        current = part
    if current:
        chunks.append(current)
    return chunks


def split_message(text: str, max_length: int = MAX_MESSAGE_LENGTH) -> List[str]:
    """
    Split text into pieces no longer than max_length.

    Paragraph breaks are preferred, then line breaks, then spaces; a word
    longer than max_length is cut hard.
    """
    if max_length <= 0:
        raise ValueError("max_length must be positive")
    text = text.strip()
    if not text:
        return []
    if len(text) <= max_length:
        return [text]

    pieces = [text]
    for separator in ("\n\n", "\n", " "):
        next_pieces = []
        for piece in pieces:
            if len(piece) <= max_length:
                next_pieces.append(piece)
            else:
                next_pieces.extend(_split_on(piece, separator, max_length))
        pieces = next_pieces

    result = []
    for piece in pieces:
        for start in range(0, len(piece), max_length):
            chunk = piece[start:start + max_length].strip()
            if chunk:
                result.append(chunk)
    return result


def build_response_memories(
    source_memory: Memory,
    agent_id: UUID,
    content: Content,
    chunks: List[str],
    created_at: Optional[int] = None,
) -> List[Memory]:
    """
    One agent memory per delivered chunk, replying to `source_memory`.

    Every chunk but the last carries action CONTINUE; the last keeps the
    response's own action.
    """
    created_at = created_at or now_ms()
    memories = []
    for index, chunk in enumerate(chunks):
        is_last = index == len(chunks) - 1
        chunk_content = content.model_copy(update={
            "text": chunk,
            "in_reply_to": source_memory.id,
            "action": content.action if is_last else CONTINUE_ACTION,
        })
        memories.append(Memory(
            id=to_stable_id(f"{source_memory.id}-{agent_id}-{index}"),
            agent_id=agent_id,
            user_id=agent_id,
            room_id=source_memory.room_id,
            content=chunk_content,
            created_at=created_at,
        ))
    return memories
